"""Tests for the admin notification and talent reminder emails."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.core.config import settings
from app.core.email import (
    send_onboarding_completed_email,
    send_onboarding_reminder_email,
)

_PATCH_CLIENT = "app.core.email.httpx.AsyncClient"


@pytest.fixture
def mock_client():
    """Patched httpx.AsyncClient used as an async context manager."""
    client = MagicMock()
    client.post = AsyncMock(return_value=MagicMock(raise_for_status=MagicMock()))
    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=client)
    context.__aexit__ = AsyncMock(return_value=False)
    with patch(_PATCH_CLIENT, return_value=context):
        yield client


class TestSendOnboardingCompletedEmail:
    """Tests for send_onboarding_completed_email()."""

    @pytest.mark.asyncio
    async def test_no_recipients_sends_nothing(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "admin_notification_emails", [])

        await send_onboarding_completed_email(
            talent_id="p1", talent_name="Jane", talent_email="jane@example.com"
        )

        mock_client.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_posts_review_link(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "admin_notification_emails", ["ops@example.com"])
        monkeypatch.setattr(settings, "frontend_url", "https://app.test")

        await send_onboarding_completed_email(
            talent_id="p1", talent_name="Jane", talent_email="jane@example.com"
        )

        body = mock_client.post.call_args.kwargs["json"]
        assert body["to"] == ["ops@example.com"]
        assert body["subject"] == "Jane finished onboarding"
        assert "https://app.test/admin/talent/p1" in body["text"]
        assert "jane@example.com" in body["text"]

    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, mock_client, monkeypatch):
        """A failed notification never fails onboarding completion."""
        monkeypatch.setattr(settings, "admin_notification_emails", ["ops@example.com"])
        mock_client.post.side_effect = httpx.ConnectError("down")

        await send_onboarding_completed_email(
            talent_id="p1", talent_name=None, talent_email=None
        )


class TestSendOnboardingReminderEmail:
    """Tests for send_onboarding_reminder_email()."""

    @pytest.mark.asyncio
    async def test_posts_step_and_resume_link(self, mock_client, monkeypatch):
        monkeypatch.setattr(settings, "frontend_url", "https://app.test")

        sent = await send_onboarding_reminder_email(
            to="jane@example.com",
            talent_name="Jane",
            step_number=4,
            step_label="Promo video",
        )

        assert sent is True
        body = mock_client.post.call_args.kwargs["json"]
        assert body["to"] == ["jane@example.com"]
        assert "Hi Jane" in body["text"]
        assert "step 4 of 5 (Promo video)" in body["text"]
        assert "https://app.test/onboarding" in body["text"]

    @pytest.mark.asyncio
    async def test_failure_reported_not_raised(self, mock_client):
        mock_client.post.side_effect = httpx.ConnectError("down")

        sent = await send_onboarding_reminder_email(
            to="jane@example.com",
            talent_name=None,
            step_number=2,
            step_label="Profile",
        )

        assert sent is False
