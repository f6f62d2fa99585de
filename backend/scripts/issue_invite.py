"""Issue an onboarding invitation for a talent.

Pre-creates an unbound talent profile holding the SHA-256 of a fresh
possession token and prints the invitation link. The plain token is shown
once and never stored.

Usage:
    cd backend && python -m scripts.issue_invite "Jane Doe"
    cd backend && python -m scripts.issue_invite "Jane Doe" --ttl-days 7
"""

import argparse
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.session_tokens import generate_invite_token, hash_token
from app.repositories.talent_profile_repository import TalentProfileRepository
from app.services.profile_store import profile_defaults

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedInvite:
    """An invitation ready to send."""

    profile_id: UUID
    token: str
    expires_at: datetime

    @property
    def link(self) -> str:
        return f"{settings.frontend_url}/onboarding/invite/{self.token}"


async def issue_invite(
    session: AsyncSession,
    full_name: str | None,
    ttl_days: int | None = None,
) -> IssuedInvite:
    """Create the invited profile. The caller commits.

    Args:
        session: Async database session.
        full_name: Name the talent was invited under.
        ttl_days: Days until the link expires. Defaults to invite_ttl_days.

    Returns:
        IssuedInvite carrying the plain token.
    """
    token = generate_invite_token()
    expires_at = datetime.now(UTC) + timedelta(days=ttl_days or settings.invite_ttl_days)
    profile = await TalentProfileRepository.create_invited(
        session,
        invite_token_hash=hash_token(token),
        invite_expires_at=expires_at,
        invited_full_name=full_name,
        defaults=profile_defaults(),
    )
    logger.info("Issued invitation for profile %s", profile.id)
    return IssuedInvite(profile_id=profile.id, token=token, expires_at=expires_at)


async def main() -> None:
    """CLI entry point: issue one invitation against the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("full_name", help="Name the talent is invited under")
    parser.add_argument("--ttl-days", type=int, default=None)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        invite = await issue_invite(session, args.full_name, args.ttl_days)
        await session.commit()

    await engine.dispose()

    print(f"Profile:  {invite.profile_id}")
    print(f"Expires:  {invite.expires_at.isoformat()}")
    print(f"Link:     {invite.link}")


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
