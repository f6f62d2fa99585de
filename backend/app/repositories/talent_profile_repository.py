"""Repository for talent profile (onboarding record) operations.

Every write is shaped so it is safe to repeat:
- create_for_user() is INSERT ... ON CONFLICT (user_id) DO NOTHING, then a
  re-read, so two racing resolutions share one row
- update_step() moves completed_step with GREATEST(), never backwards
- mark_completed() only ever sets onboarding_completed to true
"""

import uuid
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.talent_profile import TalentProfile
from app.models.user import User

# Step data columns writable through update_step().
# Security: id, user_id, completed_step, onboarding_completed, is_active,
# admin_fee_percentage and invitation columns have dedicated paths (or none).
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "handle",
        "full_name",
        "bio",
        "categories",
        "offering_types",
        "price_usd",
        "fulfillment_time_hours",
        "avatar_url",
        "charity_name",
        "charity_percentage",
        "promo_video_url",
    }
)

MAX_COMPLETED_STEP = 5


class TalentProfileRepository:
    """Stateless repository for TalentProfile table operations.

    All methods are static. Pass an AsyncSession for every call so the
    caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(
        db: AsyncSession, profile_id: uuid.UUID
    ) -> TalentProfile | None:
        """Fetch a profile by primary key, bypassing the identity map cache.

        Args:
            db: Async database session.
            profile_id: Profile UUID.

        Returns:
            TalentProfile if found, None otherwise.
        """
        return await db.get(TalentProfile, profile_id, populate_existing=True)

    @staticmethod
    async def get_by_user_id(
        db: AsyncSession, user_id: uuid.UUID
    ) -> TalentProfile | None:
        """Fetch the profile bound to an identity.

        Args:
            db: Async database session.
            user_id: Identity store user id.

        Returns:
            TalentProfile if the identity owns one, None otherwise.
        """
        stmt = (
            select(TalentProfile)
            .where(TalentProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def get_by_invite_token_hash(
        db: AsyncSession, token_hash: str
    ) -> TalentProfile | None:
        """Fetch an invited profile by the SHA-256 of its possession token.

        Args:
            db: Async database session.
            token_hash: Hex digest of the invite token.

        Returns:
            TalentProfile if found, None otherwise.
        """
        stmt = select(TalentProfile).where(
            TalentProfile.invite_token_hash == token_hash
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    async def handle_exists(
        db: AsyncSession,
        handle: str,
        exclude_profile_id: uuid.UUID | None = None,
    ) -> bool:
        """Check whether another profile already uses a handle.

        Args:
            db: Async database session.
            handle: Handle to probe (compared lowercased).
            exclude_profile_id: The caller's own profile, never counted.

        Returns:
            True if a different profile holds the handle.
        """
        stmt = select(TalentProfile.id).where(
            TalentProfile.handle == handle.lower()
        )
        if exclude_profile_id is not None:
            stmt = stmt.where(TalentProfile.id != exclude_profile_id)
        result = await db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    @staticmethod
    async def create_for_user(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        completed_step: int,
        defaults: dict[str, Any] | None = None,
    ) -> tuple[TalentProfile, bool]:
        """Create the profile for an identity, or return the existing one.

        Args:
            db: Async database session.
            user_id: Identity store user id (UNIQUE on the table).
            completed_step: Progress marker for a newly created row.
            defaults: Initial column values for a newly created row
                (e.g. price_usd, fulfillment_time_hours, admin fee).

        Returns:
            Tuple of (TalentProfile, created) where created is False when
            another request already created the row.
        """
        values: dict[str, Any] = dict(defaults or {})
        values.update(user_id=user_id, completed_step=completed_step)
        stmt = (
            pg_insert(TalentProfile)
            .values(**values)
            .on_conflict_do_nothing(index_elements=[TalentProfile.user_id])
            .returning(TalentProfile.id)
        )
        result = await db.execute(stmt)
        new_id = result.scalar_one_or_none()
        await db.flush()

        if new_id is not None:
            profile = await db.get(TalentProfile, new_id, populate_existing=True)
            created = True
        else:
            profile = await TalentProfileRepository.get_by_user_id(db, user_id)
            created = False

        if profile is None:  # pragma: no cover - row was inserted or existed
            msg = f"Profile for user {user_id} missing after insert"
            raise RuntimeError(msg)
        return profile, created

    @staticmethod
    async def create_invited(
        db: AsyncSession,
        *,
        invite_token_hash: str,
        invite_expires_at: datetime,
        invited_full_name: str | None = None,
        defaults: dict[str, Any] | None = None,
    ) -> TalentProfile:
        """Pre-create an unbound profile for an invited talent.

        Args:
            db: Async database session.
            invite_token_hash: SHA-256 of the possession token.
            invite_expires_at: When the invitation stops working.
            invited_full_name: Name entered by the administrator.
            defaults: Initial column values.

        Returns:
            Created TalentProfile with database-generated fields populated.
        """
        profile = TalentProfile(
            invite_token_hash=invite_token_hash,
            invite_expires_at=invite_expires_at,
            invited_full_name=invited_full_name,
            full_name=invited_full_name,
            completed_step=0,
            **(defaults or {}),
        )
        db.add(profile)
        await db.flush()
        await db.refresh(profile)
        return profile

    @staticmethod
    async def update_step(
        db: AsyncSession,
        profile_id: uuid.UUID,
        *,
        fields: dict[str, Any],
        completed_step: int,
    ) -> TalentProfile | None:
        """Write step data and advance the progress marker.

        completed_step is combined with GREATEST() so the stored value
        never decreases, even when an older step is resubmitted.

        Args:
            db: Async database session.
            profile_id: Profile UUID.
            fields: Step data columns to overwrite.
            completed_step: Step number the caller just completed.

        Returns:
            Updated TalentProfile, or None if the profile does not exist.

        Raises:
            ValueError: If an unknown field name is passed or
                completed_step is out of range.
            sqlalchemy.exc.IntegrityError: If the handle is already taken.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        if not 0 <= completed_step <= MAX_COMPLETED_STEP:
            msg = f"completed_step out of range: {completed_step}"
            raise ValueError(msg)

        stmt = (
            update(TalentProfile)
            .where(TalentProfile.id == profile_id)
            .values(
                **fields,
                completed_step=func.greatest(
                    TalentProfile.completed_step, completed_step
                ),
            )
            .returning(TalentProfile.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is None:
            return None
        await db.flush()
        return await db.get(TalentProfile, profile_id, populate_existing=True)

    @staticmethod
    async def bind_user(
        db: AsyncSession, profile_id: uuid.UUID, user_id: uuid.UUID
    ) -> TalentProfile | None:
        """Bind an identity to an unbound (or already same-bound) profile.

        The conditional WHERE makes the bind a no-op repeat for the same
        identity and a refusal for a different one.

        Args:
            db: Async database session.
            profile_id: Invited profile UUID.
            user_id: Identity store user id.

        Returns:
            The bound TalentProfile, or None if the profile is missing or
            bound to another identity.
        """
        stmt = (
            update(TalentProfile)
            .where(
                TalentProfile.id == profile_id,
                or_(
                    TalentProfile.user_id.is_(None),
                    TalentProfile.user_id == user_id,
                ),
            )
            .values(
                user_id=user_id,
                completed_step=func.greatest(TalentProfile.completed_step, 1),
            )
            .returning(TalentProfile.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is None:
            return None
        await db.flush()
        return await db.get(TalentProfile, profile_id, populate_existing=True)

    @staticmethod
    async def mark_completed(
        db: AsyncSession, profile_id: uuid.UUID
    ) -> TalentProfile | None:
        """Flip onboarding_completed and consume any invitation token.

        Never writes is_active; activation belongs to administrators.

        Args:
            db: Async database session.
            profile_id: Profile UUID.

        Returns:
            Updated TalentProfile, or None if the profile does not exist.
        """
        stmt = (
            update(TalentProfile)
            .where(TalentProfile.id == profile_id)
            .values(
                onboarding_completed=True,
                onboarding_completed_at=func.coalesce(
                    TalentProfile.onboarding_completed_at, datetime.now(UTC)
                ),
                completed_step=MAX_COMPLETED_STEP,
                invite_token_hash=None,
                invite_expires_at=None,
            )
            .returning(TalentProfile.id)
            .execution_options(synchronize_session=False)
        )
        result = await db.execute(stmt)
        if result.scalar_one_or_none() is None:
            return None
        await db.flush()
        return await db.get(TalentProfile, profile_id, populate_existing=True)

    @staticmethod
    async def list_incomplete_signed_up_between(
        db: AsyncSession, start: datetime, end: datetime
    ) -> list[tuple[TalentProfile, User]]:
        """Bound, unfinished profiles whose identity signed up in [start, end).

        Unbound invitations have no contact email yet and are never returned.

        Args:
            db: Async database session.
            start: Earliest identity creation time (inclusive).
            end: Latest identity creation time (exclusive).

        Returns:
            (profile, identity metadata) pairs, oldest signup first.
        """
        stmt = (
            select(TalentProfile, User)
            .join(User, User.id == TalentProfile.user_id)
            .where(
                TalentProfile.onboarding_completed.is_(False),
                User.created_at >= start,
                User.created_at < end,
            )
            .order_by(User.created_at)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        return [(profile, user) for profile, user in result.all()]
