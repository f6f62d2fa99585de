"""Talent profile model - the onboarding record.

One row per prospective talent. Rows are created by the account resolver
(self-service signup) or by an administrator ahead of time (invited
talent, identified by a possession token until an identity is bound).
Rows are never deleted by onboarding.
"""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

_DEFAULT_EMPTY_JSONB = text("'[]'::jsonb")


class TalentProfile(Base, TimestampMixin):
    """Onboarding record for one talent.

    Attributes:
        id: Server-generated profile id. Never invented by the orchestrator.
        user_id: Identity bound to this profile. NULL until bound; UNIQUE so
            one identity owns at most one profile.
        handle: Public username, lowercase [a-z0-9-], globally UNIQUE.
        full_name, bio, categories, offering_types, price_usd,
            fulfillment_time_hours, avatar_url: Profile step data.
        charity_name, charity_percentage: Monetization policy step data.
        promo_video_url: Media step data.
        completed_step: Last completed onboarding step (0-5). Only moves
            forward.
        onboarding_completed: One-way flag set by the completion gate.
        onboarding_completed_at: When the completion gate ran.
        is_active: Public visibility. Written only by administrators.
        admin_fee_percentage: Platform fee applied to this talent.
        invite_token_hash: SHA-256 of the invitation token (invited talent).
        invite_expires_at: Invitation expiry.
        invited_full_name: Name the administrator entered when inviting.
    """

    __tablename__ = "talent_profiles"
    __table_args__ = (
        UniqueConstraint("user_id", name="uq_talent_profiles_user_id"),
        UniqueConstraint("handle", name="uq_talent_profiles_handle"),
        UniqueConstraint(
            "invite_token_hash", name="uq_talent_profiles_invite_token_hash"
        ),
        CheckConstraint(
            "completed_step BETWEEN 0 AND 5",
            name="ck_talent_profiles_completed_step",
        ),
        CheckConstraint(
            "handle = lower(handle)",
            name="ck_talent_profiles_handle_lowercase",
        ),
        CheckConstraint(
            "charity_percentage IS NULL OR charity_percentage BETWEEN 0 AND 100",
            name="ck_talent_profiles_charity_percentage",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Profile step
    handle: Mapped[str | None] = mapped_column(
        String(30),
        nullable=True,
    )
    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    bio: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )
    categories: Mapped[list[str]] = mapped_column(
        JSONB,
        server_default=_DEFAULT_EMPTY_JSONB,
        default=list,
        nullable=False,
    )
    offering_types: Mapped[list[str]] = mapped_column(
        JSONB,
        server_default=_DEFAULT_EMPTY_JSONB,
        default=list,
        nullable=False,
    )
    price_usd: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    fulfillment_time_hours: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )
    avatar_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Monetization policy step
    charity_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    charity_percentage: Mapped[int | None] = mapped_column(
        Integer,
        nullable=True,
    )

    # Media step
    promo_video_url: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Progress
    completed_step: Mapped[int] = mapped_column(
        SmallInteger,
        nullable=False,
        server_default=text("0"),
        default=0,
    )
    onboarding_completed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    onboarding_completed_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        server_default=text("false"),
        default=False,
    )
    admin_fee_percentage: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("25"),
        default=25,
    )

    # Invitation (admin pre-created profiles)
    invite_token_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
    )
    invite_expires_at: Mapped[datetime | None] = mapped_column(
        nullable=True,
    )
    invited_full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
