"""Create identity metadata and talent profile tables.

Revision ID: 001_onboarding_tables
Revises:
Create Date: 2026-10-18

- users: identity metadata keyed by the identity store's user id
- talent_profiles: one onboarding record per talent, with a UNIQUE
  lowercase handle and a UNIQUE bound user id
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_onboarding_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # pgcrypto provides gen_random_uuid() for profile ids
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(20), nullable=True),
        sa.Column(
            "role",
            sa.String(20),
            server_default=sa.text("'talent'"),
            nullable=False,
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "role IN ('talent', 'admin', 'customer')", name="ck_users_role"
        ),
    )
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "talent_profiles",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            primary_key=True,
            server_default=sa.text("gen_random_uuid()"),
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        # Profile step
        sa.Column("handle", sa.String(30), nullable=True),
        sa.Column("full_name", sa.String(255), nullable=True),
        sa.Column("bio", sa.Text(), nullable=True),
        sa.Column(
            "categories",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "offering_types",
            postgresql.JSONB(),
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column("price_usd", sa.Integer(), nullable=True),
        sa.Column("fulfillment_time_hours", sa.Integer(), nullable=True),
        sa.Column("avatar_url", sa.Text(), nullable=True),
        # Monetization policy step
        sa.Column("charity_name", sa.String(255), nullable=True),
        sa.Column("charity_percentage", sa.Integer(), nullable=True),
        # Media step
        sa.Column("promo_video_url", sa.Text(), nullable=True),
        # Progress
        sa.Column(
            "completed_step",
            sa.SmallInteger(),
            server_default=sa.text("0"),
            nullable=False,
        ),
        sa.Column(
            "onboarding_completed",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column(
            "onboarding_completed_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column(
            "is_active",
            sa.Boolean(),
            server_default=sa.text("false"),
            nullable=False,
        ),
        sa.Column(
            "admin_fee_percentage",
            sa.Integer(),
            server_default=sa.text("25"),
            nullable=False,
        ),
        # Invitation
        sa.Column("invite_token_hash", sa.String(64), nullable=True),
        sa.Column("invite_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invited_full_name", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_talent_profiles_user_id"),
        sa.UniqueConstraint("handle", name="uq_talent_profiles_handle"),
        sa.UniqueConstraint(
            "invite_token_hash", name="uq_talent_profiles_invite_token_hash"
        ),
        sa.CheckConstraint(
            "completed_step BETWEEN 0 AND 5",
            name="ck_talent_profiles_completed_step",
        ),
        sa.CheckConstraint(
            "handle = lower(handle)",
            name="ck_talent_profiles_handle_lowercase",
        ),
        sa.CheckConstraint(
            "charity_percentage IS NULL OR charity_percentage BETWEEN 0 AND 100",
            name="ck_talent_profiles_charity_percentage",
        ),
    )

    # Admin review queue: completed but not yet activated
    op.create_index(
        "ix_talent_profiles_pending_review",
        "talent_profiles",
        ["onboarding_completed_at"],
        postgresql_where=sa.text("onboarding_completed AND NOT is_active"),
    )


def downgrade() -> None:
    op.drop_index("ix_talent_profiles_pending_review", table_name="talent_profiles")
    op.drop_table("talent_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
