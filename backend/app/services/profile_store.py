"""Profile store: durable onboarding records behind one interface.

The orchestrator, resolver and completion gate only talk to ProfileStore.
SqlProfileStore commits every write before returning, so a step is durable
before it is reported complete, and translates database failures:

- unique violation on the handle -> HandleTakenError (user-correctable)
- lost connection / operational failure -> TransientRemoteError (retryable)
"""

import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import HandleTakenError, NotFoundError, TransientRemoteError
from app.models.talent_profile import TalentProfile
from app.repositories.talent_profile_repository import TalentProfileRepository
from app.repositories.user_repository import UserRepository
from app.schemas.onboarding import (
    MediaStepData,
    MonetizationStepData,
    OnboardingStep,
    ProfileStepData,
    StepData,
)

logger = structlog.get_logger()

HANDLE_CONSTRAINT = "uq_talent_profiles_handle"


# =============================================================================
# Record
# =============================================================================


@dataclass(frozen=True)
class ProfileRecord:
    """Store-agnostic snapshot of an onboarding profile row."""

    id: uuid.UUID
    user_id: uuid.UUID | None = None
    completed_step: int = 0
    onboarding_completed: bool = False
    is_active: bool = False
    handle: str | None = None
    full_name: str | None = None
    bio: str | None = None
    categories: list[str] = field(default_factory=list)
    offering_types: list[str] = field(default_factory=list)
    price_usd: int | None = None
    fulfillment_time_hours: int | None = None
    avatar_url: str | None = None
    charity_name: str | None = None
    charity_percentage: int = 0
    promo_video_url: str | None = None
    invite_expires_at: datetime | None = None
    invited_full_name: str | None = None

    @classmethod
    def from_model(cls, profile: TalentProfile) -> "ProfileRecord":
        """Build a record from an ORM row."""
        return cls(
            id=profile.id,
            user_id=profile.user_id,
            completed_step=profile.completed_step,
            onboarding_completed=profile.onboarding_completed,
            is_active=profile.is_active,
            handle=profile.handle,
            full_name=profile.full_name,
            bio=profile.bio,
            categories=list(profile.categories or []),
            offering_types=list(profile.offering_types or []),
            price_usd=profile.price_usd,
            fulfillment_time_hours=profile.fulfillment_time_hours,
            avatar_url=profile.avatar_url,
            charity_name=profile.charity_name,
            charity_percentage=profile.charity_percentage or 0,
            promo_video_url=profile.promo_video_url,
            invite_expires_at=profile.invite_expires_at,
            invited_full_name=profile.invited_full_name,
        )

    def step_data(self) -> StepData:
        """Per-step data for every step this profile has completed."""
        data = StepData()
        if self.completed_step >= OnboardingStep.PROFILE:
            data.profile = ProfileStepData(
                full_name=self.full_name,
                handle=self.handle,
                bio=self.bio,
                categories=self.categories,
                offering_types=self.offering_types,
                price_usd=self.price_usd,
                fulfillment_time_hours=self.fulfillment_time_hours,
                avatar_url=self.avatar_url,
            )
        if self.completed_step >= OnboardingStep.MONETIZATION_POLICY:
            data.monetization_policy = MonetizationStepData(
                donate_to_charity=bool(self.charity_name),
                charity_name=self.charity_name,
                charity_percentage=self.charity_percentage,
            )
        if self.completed_step >= OnboardingStep.MEDIA:
            data.media = MediaStepData(promo_video_url=self.promo_video_url)
        return data


def profile_defaults() -> dict[str, Any]:
    """Column values for a freshly created profile."""
    return {
        "price_usd": settings.default_price_usd,
        "fulfillment_time_hours": settings.default_fulfillment_hours,
        "admin_fee_percentage": settings.default_admin_fee_percentage,
    }


# =============================================================================
# Interface
# =============================================================================


class ProfileStore(ABC):
    """Durable storage for onboarding profiles and identity metadata."""

    @abstractmethod
    async def get_profile(
        self,
        *,
        profile_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
    ) -> ProfileRecord | None:
        """Fetch a profile by id or by bound identity."""

    @abstractmethod
    async def get_by_invite_token_hash(self, token_hash: str) -> ProfileRecord | None:
        """Fetch an invited profile by the digest of its possession token."""

    @abstractmethod
    async def create_for_user(
        self, user_id: uuid.UUID
    ) -> tuple[ProfileRecord, bool]:
        """Create the profile for an identity or return the one that exists.

        Returns:
            Tuple of (record, created).
        """

    @abstractmethod
    async def upsert_profile(
        self,
        profile_id: uuid.UUID | None,
        fields: dict[str, Any],
        completed_step: int,
        *,
        user_id: uuid.UUID | None = None,
    ) -> ProfileRecord:
        """Write step data and advance completed_step (never backwards).

        With profile_id None the profile for user_id is created first.

        Raises:
            HandleTakenError: The handle belongs to another profile.
            TransientRemoteError: The store is unreachable.
            NotFoundError: profile_id does not exist.
        """

    @abstractmethod
    async def handle_taken(
        self, handle: str, exclude_profile_id: uuid.UUID | None = None
    ) -> bool:
        """Whether a different profile holds the handle."""

    @abstractmethod
    async def bind_user(
        self, profile_id: uuid.UUID, user_id: uuid.UUID
    ) -> ProfileRecord | None:
        """Bind an identity to an invited profile; None if bound elsewhere."""

    @abstractmethod
    async def mark_completed(self, profile_id: uuid.UUID) -> ProfileRecord | None:
        """Set onboarding_completed; never touches is_active."""

    @abstractmethod
    async def upsert_identity_metadata(
        self, user_id: uuid.UUID, *, email: str | None, full_name: str | None
    ) -> None:
        """Upsert the identity metadata record (role talent) by user id."""

    @abstractmethod
    async def save_phone(self, user_id: uuid.UUID, phone: str) -> None:
        """Record the MFA phone number on the identity metadata record."""

    @abstractmethod
    async def get_contact_email(self, user_id: uuid.UUID) -> str | None:
        """Email on the identity metadata record, if any."""


# =============================================================================
# SQL implementation
# =============================================================================


class SqlProfileStore(ProfileStore):
    """ProfileStore over PostgreSQL via the talent profile repositories."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    @asynccontextmanager
    async def _write(
        self, operation: str, *, handle: str | None = None
    ) -> AsyncIterator[None]:
        """Commit on success; translate database failures."""
        try:
            yield
            await self._db.commit()
        except IntegrityError as e:
            await self._db.rollback()
            if handle is not None and HANDLE_CONSTRAINT in str(e.orig):
                logger.info("handle_conflict_on_write", operation=operation)
                raise HandleTakenError(handle) from e
            raise
        except (OperationalError, InterfaceError) as e:
            logger.warning("profile_store_unavailable", operation=operation)
            raise TransientRemoteError(operation) from e

    @asynccontextmanager
    async def _read(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except (OperationalError, InterfaceError) as e:
            logger.warning("profile_store_unavailable", operation=operation)
            raise TransientRemoteError(operation) from e

    async def get_profile(
        self,
        *,
        profile_id: uuid.UUID | None = None,
        user_id: uuid.UUID | None = None,
    ) -> ProfileRecord | None:
        if profile_id is None and user_id is None:
            msg = "profile_id or user_id is required"
            raise ValueError(msg)
        async with self._read("get_profile"):
            if profile_id is not None:
                profile = await TalentProfileRepository.get_by_id(self._db, profile_id)
            else:
                profile = await TalentProfileRepository.get_by_user_id(
                    self._db, user_id
                )
        return ProfileRecord.from_model(profile) if profile else None

    async def get_by_invite_token_hash(self, token_hash: str) -> ProfileRecord | None:
        async with self._read("get_by_invite_token_hash"):
            profile = await TalentProfileRepository.get_by_invite_token_hash(
                self._db, token_hash
            )
        return ProfileRecord.from_model(profile) if profile else None

    async def create_for_user(
        self, user_id: uuid.UUID
    ) -> tuple[ProfileRecord, bool]:
        async with self._write("create_profile"):
            profile, created = await TalentProfileRepository.create_for_user(
                self._db,
                user_id,
                completed_step=OnboardingStep.IDENTITY,
                defaults=profile_defaults(),
            )
        return ProfileRecord.from_model(profile), created

    async def upsert_profile(
        self,
        profile_id: uuid.UUID | None,
        fields: dict[str, Any],
        completed_step: int,
        *,
        user_id: uuid.UUID | None = None,
    ) -> ProfileRecord:
        if profile_id is None:
            if user_id is None:
                msg = "user_id is required to create a profile"
                raise ValueError(msg)
            record, _ = await self.create_for_user(user_id)
            profile_id = record.id

        async with self._write("upsert_profile", handle=fields.get("handle")):
            profile = await TalentProfileRepository.update_step(
                self._db,
                profile_id,
                fields=fields,
                completed_step=completed_step,
            )
        if profile is None:
            raise NotFoundError("Profile", str(profile_id))
        return ProfileRecord.from_model(profile)

    async def handle_taken(
        self, handle: str, exclude_profile_id: uuid.UUID | None = None
    ) -> bool:
        async with self._read("handle_taken"):
            return await TalentProfileRepository.handle_exists(
                self._db, handle, exclude_profile_id
            )

    async def bind_user(
        self, profile_id: uuid.UUID, user_id: uuid.UUID
    ) -> ProfileRecord | None:
        async with self._write("bind_user"):
            profile = await TalentProfileRepository.bind_user(
                self._db, profile_id, user_id
            )
        return ProfileRecord.from_model(profile) if profile else None

    async def mark_completed(self, profile_id: uuid.UUID) -> ProfileRecord | None:
        async with self._write("mark_completed"):
            profile = await TalentProfileRepository.mark_completed(
                self._db, profile_id
            )
        return ProfileRecord.from_model(profile) if profile else None

    async def upsert_identity_metadata(
        self, user_id: uuid.UUID, *, email: str | None, full_name: str | None
    ) -> None:
        async with self._write("upsert_identity_metadata"):
            await UserRepository.upsert_metadata(
                self._db, user_id, email=email, full_name=full_name
            )

    async def save_phone(self, user_id: uuid.UUID, phone: str) -> None:
        async with self._write("save_phone"):
            await UserRepository.update(self._db, user_id, phone=phone)

    async def get_contact_email(self, user_id: uuid.UUID) -> str | None:
        async with self._read("get_contact_email"):
            user = await UserRepository.get_by_id(self._db, user_id)
        return user.email if user else None
