"""Email sending via Resend API.

Simple HTTP POST to Resend. Used for the admin notification fired after a
talent finishes onboarding and for the scheduled reminders sent to talent
who stopped partway. A failed send never fails the caller.
"""

import logging

import httpx

from app.core.config import settings

logger = logging.getLogger(__name__)

_RESEND_API_URL = "https://api.resend.com/emails"
_RESEND_TIMEOUT = 10.0


async def send_onboarding_completed_email(
    *,
    talent_id: str,
    talent_name: str | None,
    talent_email: str | None,
) -> None:
    """Tell administrators that a talent is waiting for approval.

    The profile stays inactive until an administrator reviews it, so the
    email links straight to the review screen.

    Args:
        talent_id: Profile id of the newly completed talent.
        talent_name: Full name from the profile step, if known.
        talent_email: Contact email from the identity step, if known.
    """
    recipients = settings.admin_notification_emails
    if not recipients:
        logger.info("No admin notification recipients configured")
        return

    review_url = f"{settings.frontend_url}/admin/talent/{talent_id}"
    name = talent_name or "A new talent"

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
                },
                json={
                    "from": settings.email_from,
                    "to": recipients,
                    "subject": f"{name} finished onboarding",
                    "text": (
                        f"{name} ({talent_email or 'no email on file'}) completed "
                        "onboarding and is pending approval.\n\n"
                        f"Review the profile: {review_url}"
                    ),
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
    except Exception:
        logger.warning("Failed to send onboarding completion email", exc_info=True)


async def send_onboarding_reminder_email(
    *,
    to: str,
    talent_name: str | None,
    step_number: int,
    step_label: str,
) -> bool:
    """Nudge a talent who started onboarding but has not finished.

    Args:
        to: The talent's contact email.
        talent_name: Name to greet, if known.
        step_number: The step the talent resumes at (1-5).
        step_label: Human-readable name of that step.

    Returns:
        True if Resend accepted the message.
    """
    resume_url = f"{settings.frontend_url}/onboarding"
    greeting = talent_name or "there"

    try:
        async with httpx.AsyncClient() as client:
            resp = await client.post(
                _RESEND_API_URL,
                headers={
                    "Authorization": f"Bearer {settings.resend_api_key.get_secret_value()}",
                },
                json={
                    "from": settings.email_from,
                    "to": [to],
                    "subject": "Finish setting up your talent profile",
                    "text": (
                        f"Hi {greeting},\n\n"
                        f"You're on step {step_number} of 5 ({step_label}). "
                        "Pick up where you left off:\n\n"
                        f"{resume_url}"
                    ),
                },
                timeout=_RESEND_TIMEOUT,
            )
            resp.raise_for_status()
    except Exception:
        logger.warning("Failed to send onboarding reminder email", exc_info=True)
        return False
    return True
