"""Completion gate: the terminal transition of onboarding.

Marks the profile as having finished onboarding. It never activates the
talent: is_active stays under administrator control. After the write the
progress cache is cleared and the admin notification hook runs; a failing
hook is logged and never fails the completion.
"""

import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from app.core.config import settings
from app.core.email import send_onboarding_completed_email
from app.core.errors import APIError, MFARequiredError, NotFoundError, StepOrderError
from app.core.results import Err, Ok, Result
from app.schemas.onboarding import OnboardingStep
from app.services.profile_store import ProfileRecord, ProfileStore
from app.services.progress_cache import ProgressCache

logger = structlog.get_logger()

CompletionHook = Callable[..., Awaitable[None]]


@dataclass(frozen=True)
class SecurityPolicy:
    """Whether the Security step may be skipped.

    Supplied per entry point rather than inferred from account privileges.
    """

    required: bool

    @classmethod
    def for_self_signup(cls) -> "SecurityPolicy":
        return cls(required=settings.mfa_required_self_signup)

    @classmethod
    def for_invited(cls) -> "SecurityPolicy":
        return cls(required=settings.mfa_required_invited)

    @classmethod
    def for_profile(cls, record: ProfileRecord) -> "SecurityPolicy":
        """Invited profiles keep their invitation until completion."""
        if record.invite_expires_at is not None:
            return cls.for_invited()
        return cls.for_self_signup()


class CompletionGate:
    """Finalizes onboarding for a profile."""

    def __init__(
        self,
        profiles: ProfileStore,
        cache: ProgressCache,
        hook: CompletionHook = send_onboarding_completed_email,
    ) -> None:
        self._profiles = profiles
        self._cache = cache
        self._hook = hook

    async def complete(
        self,
        session_key: str,
        profile_id: uuid.UUID,
        *,
        mfa_verified: bool,
        skipped: bool,
        policy: SecurityPolicy,
    ) -> Result[ProfileRecord]:
        """Mark onboarding complete.

        Completing an already completed profile is a no-op success.

        Args:
            session_key: Onboarding session whose progress cache is cleared.
            profile_id: Profile to complete.
            mfa_verified: A verified second factor exists.
            skipped: The talent chose to skip the Security step.
            policy: Security policy for this profile's entry point.

        Returns:
            Ok(completed ProfileRecord), or Err with MFARequiredError,
            StepOrderError, NotFoundError or TransientRemoteError.
        """
        if not mfa_verified and (policy.required or not skipped):
            return Err(MFARequiredError())

        try:
            record = await self._profiles.get_profile(profile_id=profile_id)
        except APIError as e:
            return Err(e)
        if record is None:
            return Err(NotFoundError("Profile", str(profile_id)))

        if record.onboarding_completed:
            self._cache.clear(session_key)
            return Ok(record)

        if record.completed_step < OnboardingStep.MEDIA:
            return Err(StepOrderError(OnboardingStep.SECURITY, record.completed_step))

        try:
            completed = await self._profiles.mark_completed(profile_id)
        except APIError as e:
            return Err(e)
        if completed is None:
            return Err(NotFoundError("Profile", str(profile_id)))

        self._cache.clear(session_key)
        logger.info(
            "onboarding_completed",
            profile_id=str(profile_id),
            mfa_verified=mfa_verified,
            skipped=skipped,
        )
        await self._run_hook(completed)
        return Ok(completed)

    async def _run_hook(self, record: ProfileRecord) -> None:
        try:
            email = (
                await self._profiles.get_contact_email(record.user_id)
                if record.user_id
                else None
            )
            await self._hook(
                talent_id=str(record.id),
                talent_name=record.full_name,
                talent_email=email,
            )
        except Exception:
            logger.warning(
                "completion_hook_failed", profile_id=str(record.id), exc_info=True
            )
