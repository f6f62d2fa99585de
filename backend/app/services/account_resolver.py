"""Account resolver for the identity step.

Turns identity-step input into a bound (user_id, profile_id) pair without
ever creating a duplicate identity or an orphaned profile.

Identity outcomes:
- fresh create with an active session
- "already registered" -> sign in with the same credentials and link
- sign-in refused -> CredentialsRejectedError ("log in instead")
- create without a session -> PENDING_CONFIRMATION (email confirmation)

Profile outcomes for a bound identity:
- none -> create one, entry at Profile
- exists and completed -> AlreadyOnboardedError
- exists and incomplete -> reuse, entry at completed_step + 1

Invited profiles are found by the SHA-256 of their possession token and
bound with a conditional update; any cross-binding is fatal.
"""

import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

import structlog

from app.core.errors import (
    AlreadyOnboardedError,
    APIError,
    FatalBindingError,
    InviteExpiredError,
    InviteNotFoundError,
)
from app.core.results import Err, Ok, Result
from app.core.session_tokens import hash_token
from app.providers.errors import AlreadyRegisteredError, ProviderError
from app.providers.identity.base import IdentityAccount, IdentitySession, IdentityStore
from app.schemas.onboarding import OnboardingStep
from app.services.profile_store import ProfileRecord, ProfileStore
from app.services.remote_errors import to_api_error

logger = structlog.get_logger()


class ResolutionStatus(str, Enum):
    """Named outcome of account resolution."""

    CREATED = "created"
    LINKED = "linked"
    RESUMED = "resumed"
    PENDING_CONFIRMATION = "pending_confirmation"


@dataclass(frozen=True)
class ResolvedAccount:
    """A resolved identity and, unless pending confirmation, its profile.

    Attributes:
        status: Which branch resolved the account.
        user_id: Identity store user id.
        entry_step: Step the talent continues at.
        profile: Bound profile (None while pending confirmation).
        session: Identity session (None while pending confirmation).
    """

    status: ResolutionStatus
    user_id: uuid.UUID
    entry_step: OnboardingStep
    profile: ProfileRecord | None = None
    session: IdentitySession | None = None

    @property
    def profile_id(self) -> uuid.UUID | None:
        return self.profile.id if self.profile else None


@dataclass(frozen=True)
class _Identity:
    account: IdentityAccount
    linked: bool


def _entry_step(record: ProfileRecord) -> OnboardingStep:
    completed = max(record.completed_step, OnboardingStep.IDENTITY)
    return OnboardingStep(completed + 1)


class AccountResolver:
    """Resolves identity-step input against the identity and profile stores."""

    def __init__(self, identity: IdentityStore, profiles: ProfileStore) -> None:
        self._identity = identity
        self._profiles = profiles

    async def _obtain_identity(
        self, email: str, password: str, display_name: str
    ) -> Result[_Identity]:
        """Create the identity, or sign in when it already exists."""
        try:
            account = await self._identity.create_account(
                email, password, {"full_name": display_name, "role": "talent"}
            )
            return Ok(_Identity(account=account, linked=False))
        except AlreadyRegisteredError:
            logger.info("identity_already_registered")
        except ProviderError as e:
            return Err(to_api_error("create_account", e))

        try:
            account = await self._identity.sign_in(email, password)
        except ProviderError as e:
            logger.info("identity_sign_in_rejected", error_type=type(e).__name__)
            return Err(to_api_error("sign_in", e))
        return Ok(_Identity(account=account, linked=True))

    async def _record_metadata(
        self, user_id: uuid.UUID, email: str, display_name: str | None
    ) -> Result[None]:
        try:
            await self._profiles.upsert_identity_metadata(
                user_id, email=email, full_name=display_name
            )
        except APIError as e:
            return Err(e)
        return Ok(None)

    async def resolve_or_create_account(
        self, email: str, password: str, display_name: str
    ) -> Result[ResolvedAccount]:
        """Resolve a self-signup identity step.

        Args:
            email: Contact email, also the identity login.
            password: Identity password.
            display_name: Name recorded on the identity metadata record.

        Returns:
            Ok(ResolvedAccount) for every named outcome; Err with
            CredentialsRejectedError, AlreadyOnboardedError or
            TransientRemoteError otherwise.
        """
        obtained = await self._obtain_identity(email, password, display_name)
        if isinstance(obtained, Err):
            return obtained
        account = obtained.value.account
        linked = obtained.value.linked

        recorded = await self._record_metadata(account.user_id, email, display_name)
        if isinstance(recorded, Err):
            return recorded

        if account.session is None:
            logger.info("account_pending_confirmation", user_id=str(account.user_id))
            return Ok(
                ResolvedAccount(
                    status=ResolutionStatus.PENDING_CONFIRMATION,
                    user_id=account.user_id,
                    entry_step=OnboardingStep.IDENTITY,
                )
            )

        try:
            existing = await self._profiles.get_profile(user_id=account.user_id)
            if existing is None:
                # Losing a concurrent create returns the winner's row.
                existing, created = await self._profiles.create_for_user(
                    account.user_id
                )
            else:
                created = False
        except APIError as e:
            return Err(e)

        if existing.onboarding_completed:
            logger.info("account_already_onboarded", profile_id=str(existing.id))
            return Err(AlreadyOnboardedError(str(existing.id)))

        if created:
            status = ResolutionStatus.LINKED if linked else ResolutionStatus.CREATED
        else:
            status = ResolutionStatus.RESUMED

        resolved = ResolvedAccount(
            status=status,
            user_id=account.user_id,
            entry_step=_entry_step(existing),
            profile=existing,
            session=account.session,
        )
        logger.info(
            "account_resolved",
            status=status.value,
            user_id=str(resolved.user_id),
            profile_id=str(existing.id),
            entry_step=int(resolved.entry_step),
        )
        return Ok(resolved)

    async def resolve_invited_account(
        self,
        invite_token: str,
        email: str,
        password: str,
        display_name: str | None = None,
    ) -> Result[ResolvedAccount]:
        """Resolve the identity step for an administrator pre-created profile.

        Args:
            invite_token: Possession token from the invitation link.
            email: Contact email, also the identity login.
            password: Identity password.
            display_name: Name for the metadata record; defaults to the name
                the administrator entered.

        Returns:
            Ok(ResolvedAccount) or Err with InviteNotFoundError,
            InviteExpiredError, CredentialsRejectedError or
            TransientRemoteError.

        Raises:
            FatalBindingError: The identity owns a different profile, or the
                invited profile is bound to a different identity.
        """
        try:
            invited = await self._profiles.get_by_invite_token_hash(
                hash_token(invite_token)
            )
        except APIError as e:
            return Err(e)
        if invited is None or invited.onboarding_completed:
            return Err(InviteNotFoundError())
        if invited.invite_expires_at and invited.invite_expires_at < datetime.now(UTC):
            return Err(InviteExpiredError())

        name = display_name or invited.invited_full_name or ""
        obtained = await self._obtain_identity(email, password, name)
        if isinstance(obtained, Err):
            return obtained
        account = obtained.value.account

        recorded = await self._record_metadata(account.user_id, email, name or None)
        if isinstance(recorded, Err):
            return recorded

        if account.session is None:
            return Ok(
                ResolvedAccount(
                    status=ResolutionStatus.PENDING_CONFIRMATION,
                    user_id=account.user_id,
                    entry_step=OnboardingStep.IDENTITY,
                )
            )

        try:
            owned = await self._profiles.get_profile(user_id=account.user_id)
        except APIError as e:
            return Err(e)
        if owned is not None and owned.id != invited.id:
            raise FatalBindingError(
                f"user {account.user_id} owns profile {owned.id}, "
                f"invited profile {invited.id}"
            )
        if invited.user_id is not None and invited.user_id != account.user_id:
            raise FatalBindingError(
                f"invited profile {invited.id} bound to {invited.user_id}, "
                f"not {account.user_id}"
            )

        try:
            bound = await self._profiles.bind_user(invited.id, account.user_id)
        except APIError as e:
            return Err(e)
        if bound is None:
            raise FatalBindingError(
                f"invited profile {invited.id} was bound concurrently"
            )

        status = (
            ResolutionStatus.LINKED if obtained.value.linked else ResolutionStatus.CREATED
        )
        logger.info(
            "invited_account_resolved",
            status=status.value,
            user_id=str(account.user_id),
            profile_id=str(bound.id),
        )
        return Ok(
            ResolvedAccount(
                status=status,
                user_id=account.user_id,
                entry_step=_entry_step(bound),
                profile=bound,
                session=account.session,
            )
        )
