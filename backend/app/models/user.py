"""User model - identity metadata companion record.

The identity store owns credentials and factors. This table keeps the
local metadata for an identity (role, contact info) keyed by the identity
store's user id, so it is always upserted by id and never by email.
"""

import uuid

from sqlalchemy import CheckConstraint, String, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

USER_ROLES = ("talent", "admin", "customer")


class User(Base, TimestampMixin):
    """Identity metadata for a talent (or other role).

    Attributes:
        id: Identity store user id (not generated locally).
        email: Contact email, lowercased. Not unique: the identity store is
            the authority on email ownership.
        full_name: Display name captured at the identity step.
        phone: E.164 phone number saved after phone factor enrollment.
        role: One of USER_ROLES. Onboarding always writes "talent".
        created_at: Creation timestamp (from TimestampMixin).
        updated_at: Last modification timestamp (from TimestampMixin).
    """

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint(
            "role IN ('talent', 'admin', 'customer')",
            name="ck_users_role",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    full_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
    )
    phone: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        server_default=text("'talent'"),
        default="talent",
    )
