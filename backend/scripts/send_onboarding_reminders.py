"""Email talent who started onboarding but never finished.

Meant to run once a day from a scheduler. A talent is reminded on each of
the configured days after signing up (onboarding_reminder_days, default
1, 3, 7, 14 and 30) while their profile is incomplete. The email names the
step they resume at and links to the onboarding page.

Usage:
    cd backend && python -m scripts.send_onboarding_reminders
"""

import argparse
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.email import send_onboarding_reminder_email
from app.models.talent_profile import TalentProfile
from app.repositories.talent_profile_repository import TalentProfileRepository
from app.schemas.onboarding import OnboardingStep

logger = logging.getLogger(__name__)

STEP_LABELS: dict[OnboardingStep, str] = {
    OnboardingStep.IDENTITY: "Account",
    OnboardingStep.PROFILE: "Profile",
    OnboardingStep.MONETIZATION_POLICY: "Charity",
    OnboardingStep.MEDIA: "Promo video",
    OnboardingStep.SECURITY: "Account security",
}


@dataclass(frozen=True)
class ReminderRun:
    """Outcome of one reminder pass."""

    due: int
    sent: int


def resume_step(profile: TalentProfile) -> OnboardingStep:
    """The step an unfinished profile resumes at."""
    return OnboardingStep(min(profile.completed_step + 1, OnboardingStep.SECURITY))


async def send_onboarding_reminders(
    session: AsyncSession,
    *,
    now: datetime | None = None,
    reminder_days: Sequence[int] | None = None,
) -> ReminderRun:
    """Send today's reminders.

    Args:
        session: Async database session (read only).
        now: Reference time. Defaults to the current UTC time.
        reminder_days: Whole days since signup that trigger a reminder.
            Defaults to onboarding_reminder_days.

    Returns:
        ReminderRun with the number of talent due and emails accepted.
    """
    now = now or datetime.now(UTC)
    days = sorted(set(reminder_days or settings.onboarding_reminder_days))
    if not days:
        return ReminderRun(due=0, sent=0)

    candidates = await TalentProfileRepository.list_incomplete_signed_up_between(
        session,
        start=now - timedelta(days=days[-1] + 1),
        end=now - timedelta(days=days[0]),
    )

    due = sent = 0
    for profile, user in candidates:
        days_since_signup = (now - user.created_at).days
        if days_since_signup not in days or not user.email:
            continue
        due += 1
        step = resume_step(profile)
        accepted = await send_onboarding_reminder_email(
            to=user.email,
            talent_name=profile.full_name or user.full_name,
            step_number=int(step),
            step_label=STEP_LABELS[step],
        )
        if accepted:
            sent += 1
        logger.info(
            "Reminder for profile %s (day %d, step %d): %s",
            profile.id,
            days_since_signup,
            step,
            "sent" if accepted else "failed",
        )
    return ReminderRun(due=due, sent=sent)


async def main() -> None:
    """CLI entry point: run one reminder pass against the configured database."""
    from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--days",
        type=int,
        nargs="+",
        default=None,
        help="Days after signup to remind on (overrides the configured list)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    engine = create_async_engine(settings.database_url, echo=False)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        run = await send_onboarding_reminders(session, reminder_days=args.days)

    await engine.dispose()

    print(f"Due:   {run.due}")
    print(f"Sent:  {run.sent}")


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
