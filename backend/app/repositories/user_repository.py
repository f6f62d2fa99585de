"""Repository for identity metadata records.

Provides database access for the users table. Rows are keyed by the
identity store's user id and written with INSERT ... ON CONFLICT (id) so
two racing signups for the same identity never collide on a duplicate key.
"""

import uuid

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User

# Fields that may be updated via UserRepository.update().
# Security: 'id' and 'role' are excluded; role is fixed by upsert_metadata().
_UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "email",
        "full_name",
        "phone",
    }
)


class UserRepository:
    """Stateless repository for User table operations.

    All methods are static — no instance state. Pass an AsyncSession
    for every call so the caller controls transaction boundaries.
    """

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: uuid.UUID) -> User | None:
        """Fetch identity metadata by identity store user id.

        Args:
            db: Async database session.
            user_id: Identity store user id.

        Returns:
            User if found, None otherwise.
        """
        return await db.get(User, user_id)

    @staticmethod
    async def upsert_metadata(
        db: AsyncSession,
        user_id: uuid.UUID,
        *,
        email: str | None,
        full_name: str | None,
        role: str = "talent",
    ) -> User:
        """Insert or refresh the metadata record for an identity.

        Email is normalized to lowercase. A NULL full_name never overwrites
        an existing one.

        Args:
            db: Async database session.
            user_id: Identity store user id (the conflict key).
            email: Contact email.
            full_name: Display name.
            role: Role to record.

        Returns:
            The current User row.
        """
        normalized_email = email.strip().lower() if email else None
        stmt = pg_insert(User).values(
            id=user_id,
            email=normalized_email,
            full_name=full_name,
            role=role,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[User.id],
            set_={
                "email": stmt.excluded.email,
                "full_name": stmt.excluded.full_name
                if full_name is not None
                else User.full_name,
                "role": stmt.excluded.role,
            },
        )
        await db.execute(stmt)
        await db.flush()

        user = await db.get(User, user_id, populate_existing=True)
        if user is None:  # pragma: no cover - the upsert just wrote it
            msg = f"User {user_id} missing after upsert"
            raise RuntimeError(msg)
        return user

    @staticmethod
    async def update(
        db: AsyncSession,
        user_id: uuid.UUID,
        **kwargs: str | None,
    ) -> User | None:
        """Update metadata fields.

        Only fields in _UPDATABLE_FIELDS are allowed. Unknown field names
        raise ValueError.

        Args:
            db: Async database session.
            user_id: Identity store user id.
            **kwargs: Field names and values to update.

        Returns:
            Updated User if found, None if the record does not exist.

        Raises:
            ValueError: If an unknown field name is passed.
        """
        unknown = set(kwargs) - _UPDATABLE_FIELDS
        if unknown:
            msg = f"Unknown fields: {', '.join(sorted(unknown))}"
            raise ValueError(msg)

        user = await db.get(User, user_id)
        if user is None:
            return None

        for field, value in kwargs.items():
            setattr(user, field, value)

        await db.flush()
        await db.refresh(user)
        return user
