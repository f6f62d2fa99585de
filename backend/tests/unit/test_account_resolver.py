"""Tests for the account resolver.

Every identity-step submission ends bound to exactly one identity and one
profile, whether the talent is new, returning, or coming from an invite.
"""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta

import pytest

from app.core.errors import (
    AlreadyOnboardedError,
    CredentialsRejectedError,
    FatalBindingError,
    InviteExpiredError,
    InviteNotFoundError,
    TransientRemoteError,
)
from app.core.results import Err, Ok
from app.core.session_tokens import hash_token
from app.providers.errors import TransientError
from app.schemas.onboarding import OnboardingStep
from app.services.account_resolver import AccountResolver, ResolutionStatus
from tests.conftest import TEST_DISPLAY_NAME, TEST_EMAIL, TEST_PASSWORD

_INVITE_TOKEN = "invite-token-abc"


@pytest.fixture
def resolver(mock_identity, profile_store) -> AccountResolver:
    return AccountResolver(mock_identity, profile_store)


async def _resolve(resolver, email=TEST_EMAIL, password=TEST_PASSWORD):
    return await resolver.resolve_or_create_account(email, password, TEST_DISPLAY_NAME)


# =============================================================================
# Self-signup
# =============================================================================


class TestResolveOrCreateAccount:
    """Tests for resolve_or_create_account()."""

    @pytest.mark.asyncio
    async def test_new_talent_created(self, resolver, profile_store):
        result = await _resolve(resolver)

        assert isinstance(result, Ok)
        resolved = result.value
        assert resolved.status == ResolutionStatus.CREATED
        assert resolved.entry_step == OnboardingStep.PROFILE
        assert resolved.session is not None
        assert profile_store.profiles[resolved.profile_id].completed_step == 1

    @pytest.mark.asyncio
    async def test_identity_metadata_recorded(self, resolver, profile_store):
        resolved = (await _resolve(resolver, email="Jane@Example.com")).value

        assert profile_store.users[resolved.user_id] == {
            "role": "talent",
            "email": "jane@example.com",
            "full_name": TEST_DISPLAY_NAME,
        }

    @pytest.mark.asyncio
    async def test_existing_identity_without_profile_linked(
        self, resolver, mock_identity, profile_store
    ):
        """Registered elsewhere but never onboarded: sign in and create a profile."""
        account = await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)

        resolved = (await _resolve(resolver)).value

        assert resolved.status == ResolutionStatus.LINKED
        assert resolved.user_id == account.user_id
        assert mock_identity.call_count("sign_in") == 1
        assert len(profile_store.profiles) == 1

    @pytest.mark.asyncio
    async def test_incomplete_profile_resumed(
        self, resolver, mock_identity, profile_store
    ):
        account = await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)
        existing = profile_store.add_profile(user_id=account.user_id, completed_step=2)

        resolved = (await _resolve(resolver)).value

        assert resolved.status == ResolutionStatus.RESUMED
        assert resolved.profile_id == existing.id
        assert resolved.entry_step == OnboardingStep.MONETIZATION_POLICY
        assert "create_for_user" not in profile_store.calls

    @pytest.mark.asyncio
    async def test_completed_profile_reports_already_onboarded(
        self, resolver, mock_identity, profile_store
    ):
        account = await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)
        done = profile_store.add_profile(
            user_id=account.user_id, completed_step=5, onboarding_completed=True
        )

        result = await _resolve(resolver)

        assert isinstance(result, Err)
        assert isinstance(result.error, AlreadyOnboardedError)
        assert result.error.profile_id == str(done.id)

    @pytest.mark.asyncio
    async def test_wrong_password_says_log_in(
        self, resolver, mock_identity, profile_store
    ):
        await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)

        result = await _resolve(resolver, password="not-the-password")

        assert isinstance(result.error, CredentialsRejectedError)
        assert result.error.reason == "invalid_credentials"
        assert profile_store.profiles == {}

    @pytest.mark.asyncio
    async def test_repeat_submission_is_idempotent(self, resolver, profile_store):
        first = (await _resolve(resolver)).value
        second = (await _resolve(resolver)).value

        assert second.status == ResolutionStatus.RESUMED
        assert second.profile_id == first.profile_id
        assert second.user_id == first.user_id
        assert len(profile_store.profiles) == 1

    @pytest.mark.asyncio
    async def test_concurrent_submissions_share_one_profile(
        self, resolver, profile_store
    ):
        results = await asyncio.gather(_resolve(resolver), _resolve(resolver))

        profile_ids = {r.value.profile_id for r in results}
        assert len(profile_ids) == 1
        assert len(profile_store.profiles) == 1

    @pytest.mark.asyncio
    async def test_transient_create_failure(self, resolver, mock_identity, profile_store):
        mock_identity.fail_next("create_account", TransientError("timeout"))

        result = await _resolve(resolver)

        assert isinstance(result.error, TransientRemoteError)
        assert result.error.operation == "create_account"
        assert profile_store.writes == []

    @pytest.mark.asyncio
    async def test_transient_store_failure(self, resolver, profile_store):
        profile_store.fail_next(
            "create_for_user", TransientRemoteError("create_profile")
        )

        result = await _resolve(resolver)

        assert isinstance(result.error, TransientRemoteError)
        assert profile_store.profiles == {}

    @pytest.mark.asyncio
    async def test_retry_after_transient_failure_succeeds(
        self, resolver, profile_store
    ):
        profile_store.fail_next(
            "create_for_user", TransientRemoteError("create_profile")
        )
        await _resolve(resolver)

        retried = (await _resolve(resolver)).value

        # The identity survived the first attempt
        assert retried.status == ResolutionStatus.LINKED
        assert len(profile_store.profiles) == 1


class TestEmailConfirmation:
    """Identity stores that require email confirmation before sign-in."""

    @pytest.fixture(autouse=True)
    def _require_confirmation(self, mock_identity):
        mock_identity.require_email_confirmation = True

    @pytest.mark.asyncio
    async def test_pending_confirmation_creates_no_profile(
        self, resolver, profile_store
    ):
        resolved = (await _resolve(resolver)).value

        assert resolved.status == ResolutionStatus.PENDING_CONFIRMATION
        assert resolved.entry_step == OnboardingStep.IDENTITY
        assert resolved.profile is None
        assert resolved.session is None
        assert profile_store.profiles == {}

    @pytest.mark.asyncio
    async def test_retry_before_confirming_says_not_confirmed(self, resolver):
        await _resolve(resolver)

        result = await _resolve(resolver)

        assert isinstance(result.error, CredentialsRejectedError)
        assert result.error.reason == "email_not_confirmed"

    @pytest.mark.asyncio
    async def test_after_confirming_links(self, resolver, mock_identity):
        pending = (await _resolve(resolver)).value
        mock_identity.confirm_email(TEST_EMAIL)

        resolved = (await _resolve(resolver)).value

        assert resolved.status == ResolutionStatus.LINKED
        assert resolved.user_id == pending.user_id
        assert resolved.entry_step == OnboardingStep.PROFILE


# =============================================================================
# Invited talent
# =============================================================================


class TestResolveInvitedAccount:
    """Tests for resolve_invited_account()."""

    @pytest.fixture
    def invited(self, profile_store):
        return profile_store.add_invite(hash_token(_INVITE_TOKEN))

    async def _resolve_invite(self, resolver, token=_INVITE_TOKEN, **kwargs):
        return await resolver.resolve_invited_account(
            token, kwargs.get("email", TEST_EMAIL), TEST_PASSWORD, kwargs.get("name")
        )

    @pytest.mark.asyncio
    async def test_binds_invited_profile(self, resolver, profile_store, invited):
        resolved = (await self._resolve_invite(resolver)).value

        assert resolved.status == ResolutionStatus.CREATED
        assert resolved.profile_id == invited.id
        assert resolved.entry_step == OnboardingStep.PROFILE
        assert profile_store.profiles[invited.id].user_id == resolved.user_id
        assert len(profile_store.profiles) == 1

    @pytest.mark.asyncio
    async def test_falls_back_to_invited_name(self, resolver, profile_store, invited):
        resolved = (await self._resolve_invite(resolver)).value
        assert profile_store.users[resolved.user_id]["full_name"] == "Invited Talent"

    @pytest.mark.asyncio
    async def test_existing_identity_links(
        self, resolver, mock_identity, profile_store, invited
    ):
        await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)

        resolved = (await self._resolve_invite(resolver)).value

        assert resolved.status == ResolutionStatus.LINKED
        assert resolved.profile_id == invited.id

    @pytest.mark.asyncio
    async def test_rebinding_same_identity_resumes_progress(
        self, resolver, profile_store, invited
    ):
        first = (await self._resolve_invite(resolver)).value
        await profile_store.upsert_profile(invited.id, {"handle": "invitee"}, 2)

        again = (await self._resolve_invite(resolver)).value

        assert again.user_id == first.user_id
        assert again.entry_step == OnboardingStep.MONETIZATION_POLICY

    @pytest.mark.asyncio
    async def test_unknown_token(self, resolver, invited):
        result = await self._resolve_invite(resolver, token="wrong-token")
        assert isinstance(result.error, InviteNotFoundError)

    @pytest.mark.asyncio
    async def test_expired_token(self, resolver, profile_store):
        profile_store.add_invite(
            hash_token(_INVITE_TOKEN),
            expires_at=datetime.now(UTC) - timedelta(minutes=1),
        )

        result = await self._resolve_invite(resolver)

        assert isinstance(result.error, InviteExpiredError)

    @pytest.mark.asyncio
    async def test_identity_owning_other_profile_is_fatal(
        self, resolver, mock_identity, profile_store, invited
    ):
        account = await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)
        profile_store.add_profile(user_id=account.user_id, completed_step=2)

        with pytest.raises(FatalBindingError):
            await self._resolve_invite(resolver)

        assert profile_store.profiles[invited.id].user_id is None

    @pytest.mark.asyncio
    async def test_invite_bound_to_other_identity_is_fatal(
        self, resolver, profile_store
    ):
        profile_store.add_invite(hash_token(_INVITE_TOKEN), user_id=uuid.uuid4())

        with pytest.raises(FatalBindingError) as exc_info:
            await self._resolve_invite(resolver)

        # Internal detail stays out of the client-facing message
        assert "bound to" not in exc_info.value.message
        assert "bound to" in exc_info.value.internal_message

    @pytest.mark.asyncio
    async def test_lost_bind_race_is_fatal(self, resolver, profile_store, invited):
        async def _lose(profile_id, user_id):
            return None

        profile_store.bind_user = _lose

        with pytest.raises(FatalBindingError) as exc_info:
            await self._resolve_invite(resolver)

        assert "concurrently" in exc_info.value.internal_message
