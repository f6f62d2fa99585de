"""Tests for the MFA enrollment engine.

Covers both enrollment paths (authenticator app and phone), the
verified-factor short circuit, SMS fallback, resend cooldown, cancel and
skip, and phase guards.
"""

import uuid
from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest

from app.core.config import settings
from app.core.errors import (
    ConfigurationError,
    InvalidCodeError,
    InvalidStateError,
    MFARequiredError,
    ResendCooldownError,
    StepOrderError,
    TransientRemoteError,
    UnauthorizedError,
    ValidationError,
)
from app.core.results import Err, Ok
from app.providers.errors import TransientError
from app.schemas.mfa import MFAPhase, MFAStrategy
from app.services.mfa_enrollment import (
    MFAEnrollmentState,
    MFAStateStore,
    mask_phone,
    normalize_phone,
)
from app.services.onboarding_context import OnboardingContext
from tests.flows import SESSION_KEY

_VALID_CODE = "123456"


def _profile(profile_store):
    return next(iter(profile_store.profiles.values()))


async def _at_method_select(engine, ctx):
    assert isinstance(await engine.enter(ctx), Ok)
    return await engine.begin(ctx)


async def _at_totp_verify(engine, ctx):
    await _at_method_select(engine, ctx)
    await engine.select_method(ctx, MFAStrategy.TOTP)
    return await engine.confirm_qr_scanned(ctx)


async def _at_phone_verify(engine, ctx, phone="(555) 555-0123"):
    await _at_method_select(engine, ctx)
    await engine.select_method(ctx, MFAStrategy.PHONE)
    return await engine.submit_phone(ctx, phone)


# =============================================================================
# Phone number helpers
# =============================================================================


class TestPhoneHelpers:
    """Tests for normalize_phone() and mask_phone()."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("(555) 555-0123", "+15555550123"),
            ("555.555.0123", "+15555550123"),
            ("+44 20 7946 0958", "+442079460958"),
            ("+1 555 555 0123", "+15555550123"),
        ],
    )
    def test_normalizes_to_e164(self, raw, expected):
        assert normalize_phone(raw) == expected

    @pytest.mark.parametrize("raw", ["123", "not a phone", "+0123456789", ""])
    def test_rejects_invalid_numbers(self, raw):
        with pytest.raises(ValidationError):
            normalize_phone(raw)

    def test_mask_keeps_prefix_and_last_four(self):
        assert mask_phone("+15555550123") == "+1******0123"


# =============================================================================
# State store
# =============================================================================


class TestMFAStateStore:
    """Enrollment state is scoped to session and owner."""

    def _state(self, user_id):
        return MFAEnrollmentState(
            user_id=user_id, profile_id=uuid.uuid4(), required=False
        )

    def test_get_returns_owned_state(self):
        store = MFAStateStore()
        user_id = uuid.uuid4()
        store.put("s", self._state(user_id))
        assert store.get("s", user_id) is not None

    def test_other_user_cannot_read_state(self):
        store = MFAStateStore()
        store.put("s", self._state(uuid.uuid4()))
        assert store.get("s", uuid.uuid4()) is None

    def test_expired_state_dropped(self):
        store = MFAStateStore()
        user_id = uuid.uuid4()
        store.put("s", self._state(user_id))
        store._store["s"].expires_at = datetime.now(UTC) - timedelta(seconds=1)
        assert store.get("s", user_id) is None

    def test_cleanup_expired(self):
        store = MFAStateStore()
        user_id = uuid.uuid4()
        store.put("old", self._state(user_id))
        store.put("live", self._state(user_id))
        store._store["old"].expires_at = datetime.now(UTC) - timedelta(seconds=1)

        assert store.cleanup_expired() == 1
        assert store.get("live", user_id) is not None
        assert "old" not in store._store

    def test_secrets_hidden_from_repr(self):
        state = self._state(uuid.uuid4())
        state.secret = "JBSWY3DPEHPK3PXP"
        state.phone_number = "+15555550123"
        assert "JBSWY3DPEHPK3PXP" not in repr(state)
        assert "+15555550123" not in repr(state)


# =============================================================================
# Entering the step
# =============================================================================


class TestEnter:
    """Tests for enter()."""

    @pytest.mark.asyncio
    async def test_starts_at_intro(self, mfa_engine, talent_at_security):
        view = (await mfa_engine.enter(talent_at_security)).value

        assert view.phase == MFAPhase.INTRO
        assert view.strategy == MFAStrategy.UNSET
        assert view.required is False

    @pytest.mark.asyncio
    async def test_verified_factor_completes_without_enrolling(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        mock_identity.add_verified_factor(talent_at_security.user_id, "totp")

        view = (await mfa_engine.enter(talent_at_security)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.onboarding_completed is True
        assert mock_identity.call_count("enroll_factor") == 0
        assert mock_identity.call_count("challenge_factor") == 0
        assert _profile(profile_store).onboarding_completed is True

    @pytest.mark.asyncio
    async def test_verified_factor_satisfies_required_policy(
        self, mfa_engine, mock_identity, talent_at_security, monkeypatch
    ):
        monkeypatch.setattr(settings, "mfa_required_self_signup", True)
        mock_identity.add_verified_factor(talent_at_security.user_id, "phone")

        view = (await mfa_engine.enter(talent_at_security)).value

        assert view.onboarding_completed is True
        assert view.strategy == MFAStrategy.PHONE

    @pytest.mark.asyncio
    async def test_unverified_leftovers_unenrolled(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await mock_identity.enroll_factor(talent_at_security.identity, "totp")
        await mock_identity.enroll_factor(talent_at_security.identity, "phone")

        view = (await mfa_engine.enter(talent_at_security)).value

        assert view.phase == MFAPhase.INTRO
        assert mock_identity.call_count("unenroll_factor") == 2
        assert mock_identity.factors_for(talent_at_security.user_id) == []

    @pytest.mark.asyncio
    async def test_requires_identity(self, mfa_engine):
        result = await mfa_engine.enter(OnboardingContext(session_key=SESSION_KEY))
        assert isinstance(result.error, UnauthorizedError)

    @pytest.mark.asyncio
    async def test_requires_media_step(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        record = _profile(profile_store)
        profile_store.profiles[record.id] = replace(record, completed_step=3)

        result = await mfa_engine.enter(talent_at_security)

        assert isinstance(result.error, StepOrderError)
        assert mock_identity.call_count("list_factors") == 0

    @pytest.mark.asyncio
    async def test_completed_profile_shows_complete(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        record = _profile(profile_store)
        profile_store.profiles[record.id] = replace(
            record, completed_step=5, onboarding_completed=True
        )

        view = (await mfa_engine.enter(talent_at_security)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.onboarding_completed is True
        assert mock_identity.calls == []

    @pytest.mark.asyncio
    async def test_invited_profile_must_enroll(
        self, mfa_engine, profile_store, talent_at_security
    ):
        record = _profile(profile_store)
        invited = profile_store.add_invite("hash", completed_step=4)
        del profile_store.profiles[record.id]
        profile_store.profiles[invited.id] = replace(
            invited, user_id=talent_at_security.user_id
        )

        view = (await mfa_engine.enter(talent_at_security)).value

        assert view.required is True


# =============================================================================
# Authenticator app
# =============================================================================


class TestTotpPath:
    """Enrollment with an authenticator app."""

    @pytest.mark.asyncio
    async def test_select_totp_enrolls_and_shows_qr(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await _at_method_select(mfa_engine, talent_at_security)

        view = (
            await mfa_engine.select_method(talent_at_security, MFAStrategy.TOTP)
        ).value

        assert view.phase == MFAPhase.QR_DISPLAY
        assert view.qr_payload.startswith("otpauth://totp/")
        assert view.secret
        assert view.factor_id
        assert mock_identity.call_count("enroll_factor") == 1

    @pytest.mark.asyncio
    async def test_verify_completes_onboarding(
        self, mfa_engine, profile_store, talent_at_security, completion_hook
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)

        view = (await mfa_engine.verify(talent_at_security, _VALID_CODE)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.onboarding_completed is True
        assert view.qr_payload is None
        assert view.secret is None
        record = _profile(profile_store)
        assert record.onboarding_completed is True
        assert record.is_active is False
        completion_hook.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_wrong_code_stays_in_verify(
        self, mfa_engine, profile_store, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)

        result = await mfa_engine.verify(talent_at_security, "000000")

        assert isinstance(result.error, InvalidCodeError)
        view = (await mfa_engine.view(talent_at_security)).value
        assert view.phase == MFAPhase.VERIFY
        assert _profile(profile_store).onboarding_completed is False

    @pytest.mark.asyncio
    async def test_retry_after_wrong_code(self, mfa_engine, talent_at_security):
        await _at_totp_verify(mfa_engine, talent_at_security)
        await mfa_engine.verify(talent_at_security, "000000")

        result = await mfa_engine.verify(talent_at_security, _VALID_CODE)

        assert result.value.onboarding_completed is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code", ["12345", "1234567", "12ab56", ""])
    async def test_malformed_code_not_sent(
        self, mfa_engine, mock_identity, talent_at_security, code
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)

        result = await mfa_engine.verify(talent_at_security, code)

        assert isinstance(result.error, InvalidCodeError)
        assert mock_identity.call_count("verify_factor") == 0

    @pytest.mark.asyncio
    async def test_code_whitespace_trimmed(self, mfa_engine, talent_at_security):
        await _at_totp_verify(mfa_engine, talent_at_security)
        result = await mfa_engine.verify(talent_at_security, f" {_VALID_CODE} ")
        assert isinstance(result, Ok)

    @pytest.mark.asyncio
    async def test_transient_enroll_failure(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await _at_method_select(mfa_engine, talent_at_security)
        mock_identity.fail_next("enroll_factor", TransientError("timeout"))

        result = await mfa_engine.select_method(talent_at_security, MFAStrategy.TOTP)

        assert isinstance(result.error, TransientRemoteError)
        view = (await mfa_engine.view(talent_at_security)).value
        assert view.phase == MFAPhase.METHOD_SELECT


# =============================================================================
# Phone
# =============================================================================


class TestPhonePath:
    """Enrollment with a phone number."""

    @pytest.mark.asyncio
    async def test_select_phone_asks_for_number(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await _at_method_select(mfa_engine, talent_at_security)

        view = (
            await mfa_engine.select_method(talent_at_security, MFAStrategy.PHONE)
        ).value

        assert view.phase == MFAPhase.PHONE_ENTRY
        assert mock_identity.call_count("enroll_factor") == 0

    @pytest.mark.asyncio
    async def test_submit_phone_enrolls_and_challenges(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        view = (await _at_phone_verify(mfa_engine, talent_at_security)).value

        assert view.phase == MFAPhase.VERIFY
        assert view.phone_number_masked == "+1******0123"
        assert view.resend_available_in_seconds == 60
        assert view.qr_payload is None
        assert mock_identity.call_count("enroll_factor") == 1
        assert mock_identity.call_count("challenge_factor") == 1
        assert profile_store.users[talent_at_security.user_id]["phone"] == (
            "+15555550123"
        )

    @pytest.mark.asyncio
    async def test_verify_completes_onboarding(
        self, mfa_engine, profile_store, talent_at_security
    ):
        await _at_phone_verify(mfa_engine, talent_at_security)

        view = (await mfa_engine.verify(talent_at_security, _VALID_CODE)).value

        assert view.onboarding_completed is True
        assert view.strategy == MFAStrategy.PHONE
        assert _profile(profile_store).onboarding_completed is True

    @pytest.mark.asyncio
    async def test_invalid_number_not_enrolled(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await _at_method_select(mfa_engine, talent_at_security)
        await mfa_engine.select_method(talent_at_security, MFAStrategy.PHONE)

        result = await mfa_engine.submit_phone(talent_at_security, "123")

        assert isinstance(result.error, ValidationError)
        assert mock_identity.call_count("enroll_factor") == 0

    @pytest.mark.asyncio
    async def test_sms_unavailable_falls_back_to_method_select(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        mock_identity.sms_available = False

        result = await _at_phone_verify(mfa_engine, talent_at_security)

        assert isinstance(result, Err)
        assert isinstance(result.error, ConfigurationError)
        assert result.error.fallback_after_seconds == settings.sms_fallback_delay_seconds
        view = (await mfa_engine.view(talent_at_security)).value
        assert view.phase == MFAPhase.METHOD_SELECT
        assert view.strategy == MFAStrategy.UNSET
        assert view.factor_id is None
        assert view.phone_number_masked is None
        assert mock_identity.factors_for(talent_at_security.user_id) == []

    @pytest.mark.asyncio
    async def test_totp_still_possible_after_sms_fallback(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        mock_identity.sms_available = False
        await _at_phone_verify(mfa_engine, talent_at_security)

        await mfa_engine.select_method(talent_at_security, MFAStrategy.TOTP)
        await mfa_engine.confirm_qr_scanned(talent_at_security)
        view = (await mfa_engine.verify(talent_at_security, _VALID_CODE)).value

        assert view.onboarding_completed is True


class TestResend:
    """Tests for resend() and its advisory cooldown."""

    @pytest.mark.asyncio
    async def test_resend_inside_cooldown_refused(
        self, mfa_engine, mock_identity, talent_at_security, clock
    ):
        await _at_phone_verify(mfa_engine, talent_at_security)
        clock.advance(30)

        result = await mfa_engine.resend(talent_at_security)

        assert isinstance(result.error, ResendCooldownError)
        assert result.error.seconds_remaining == 30
        assert mock_identity.call_count("challenge_factor") == 1

    @pytest.mark.asyncio
    async def test_view_counts_down(self, mfa_engine, talent_at_security, clock):
        await _at_phone_verify(mfa_engine, talent_at_security)
        clock.advance(45.5)

        view = (await mfa_engine.view(talent_at_security)).value

        assert view.resend_available_in_seconds == 15

    @pytest.mark.asyncio
    async def test_resend_after_cooldown(
        self, mfa_engine, mock_identity, talent_at_security, clock
    ):
        await _at_phone_verify(mfa_engine, talent_at_security)
        clock.advance(60)

        view = (await mfa_engine.resend(talent_at_security)).value

        assert view.resend_available_in_seconds == 60
        assert mock_identity.call_count("challenge_factor") == 2

    @pytest.mark.asyncio
    async def test_new_code_verifies(self, mfa_engine, talent_at_security, clock):
        await _at_phone_verify(mfa_engine, talent_at_security)
        clock.advance(60)
        await mfa_engine.resend(talent_at_security)

        result = await mfa_engine.verify(talent_at_security, _VALID_CODE)

        assert result.value.onboarding_completed is True

    @pytest.mark.asyncio
    async def test_resend_not_available_for_totp(self, mfa_engine, talent_at_security):
        await _at_totp_verify(mfa_engine, talent_at_security)

        result = await mfa_engine.resend(talent_at_security)

        assert isinstance(result.error, InvalidStateError)


# =============================================================================
# Cancel and skip
# =============================================================================


class TestCancel:
    """Tests for cancel()."""

    @pytest.mark.asyncio
    async def test_cancel_unenrolls_pending_factor(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await _at_method_select(mfa_engine, talent_at_security)
        await mfa_engine.select_method(talent_at_security, MFAStrategy.TOTP)

        view = (await mfa_engine.cancel(talent_at_security)).value

        assert view.phase == MFAPhase.METHOD_SELECT
        assert view.factor_id is None
        assert view.qr_payload is None
        assert mock_identity.factors_for(talent_at_security.user_id) == []

    @pytest.mark.asyncio
    async def test_switch_strategy_after_cancel(self, mfa_engine, talent_at_security):
        await _at_phone_verify(mfa_engine, talent_at_security)
        await mfa_engine.cancel(talent_at_security)

        view = (
            await mfa_engine.select_method(talent_at_security, MFAStrategy.TOTP)
        ).value

        assert view.phase == MFAPhase.QR_DISPLAY

    @pytest.mark.asyncio
    async def test_cancel_from_intro_refused(self, mfa_engine, talent_at_security):
        await mfa_engine.enter(talent_at_security)
        result = await mfa_engine.cancel(talent_at_security)
        assert isinstance(result.error, InvalidStateError)


class TestSkip:
    """Tests for skip()."""

    @pytest.mark.asyncio
    async def test_skip_completes_when_optional(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        await mfa_engine.enter(talent_at_security)

        view = (await mfa_engine.skip(talent_at_security)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.skipped is True
        assert view.onboarding_completed is True
        assert _profile(profile_store).onboarding_completed is True
        assert mock_identity.call_count("enroll_factor") == 0

    @pytest.mark.asyncio
    async def test_skip_refused_when_required(
        self, mfa_engine, profile_store, talent_at_security, monkeypatch
    ):
        monkeypatch.setattr(settings, "mfa_required_self_signup", True)
        await mfa_engine.enter(talent_at_security)

        result = await mfa_engine.skip(talent_at_security)

        assert isinstance(result.error, MFARequiredError)
        assert _profile(profile_store).onboarding_completed is False

    @pytest.mark.asyncio
    async def test_skip_mid_enrollment_unenrolls(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)

        await mfa_engine.skip(talent_at_security)

        assert mock_identity.factors_for(talent_at_security.user_id) == []

    @pytest.mark.asyncio
    async def test_skip_after_complete_is_noop(
        self, mfa_engine, profile_store, talent_at_security
    ):
        await mfa_engine.enter(talent_at_security)
        await mfa_engine.skip(talent_at_security)

        view = (await mfa_engine.skip(talent_at_security)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.onboarding_completed is True
        assert profile_store.calls.count("mark_completed") == 1


# =============================================================================
# Completion failures
# =============================================================================


class TestCompletionRetry:
    """A failed completion write leaves the step retryable."""

    @pytest.mark.asyncio
    async def test_failed_skip_stays_incomplete(
        self, mfa_engine, profile_store, talent_at_security
    ):
        await mfa_engine.enter(talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))

        result = await mfa_engine.skip(talent_at_security)

        assert isinstance(result.error, TransientRemoteError)
        view = (await mfa_engine.view(talent_at_security)).value
        assert view.phase != MFAPhase.COMPLETE
        assert view.skipped is True
        assert _profile(profile_store).onboarding_completed is False

    @pytest.mark.asyncio
    async def test_skip_retry_completes(
        self, mfa_engine, profile_store, talent_at_security, completion_hook
    ):
        await mfa_engine.enter(talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))
        await mfa_engine.skip(talent_at_security)

        view = (await mfa_engine.skip(talent_at_security)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.onboarding_completed is True
        assert _profile(profile_store).onboarding_completed is True
        completion_hook.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_skip_mid_enrollment_returns_to_method_select(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))

        await mfa_engine.skip(talent_at_security)

        view = (await mfa_engine.view(talent_at_security)).value
        assert view.phase == MFAPhase.METHOD_SELECT
        assert view.factor_id is None
        assert mock_identity.factors_for(talent_at_security.user_id) == []

    @pytest.mark.asyncio
    async def test_failed_verify_keeps_verified_factor(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))

        result = await mfa_engine.verify(talent_at_security, _VALID_CODE)

        assert isinstance(result.error, TransientRemoteError)
        view = (await mfa_engine.view(talent_at_security)).value
        assert view.phase == MFAPhase.VERIFY
        assert view.factor_id is not None
        assert view.secret is None
        assert _profile(profile_store).onboarding_completed is False
        assert mock_identity.call_count("verify_factor") == 1

    @pytest.mark.asyncio
    async def test_verify_retry_completes_without_reverifying(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))
        await mfa_engine.verify(talent_at_security, _VALID_CODE)

        view = (await mfa_engine.verify(talent_at_security, _VALID_CODE)).value

        assert view.phase == MFAPhase.COMPLETE
        assert view.onboarding_completed is True
        assert _profile(profile_store).onboarding_completed is True
        assert mock_identity.call_count("verify_factor") == 1

    @pytest.mark.asyncio
    async def test_skip_after_failed_verify_completes_as_verified(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))
        await mfa_engine.verify(talent_at_security, _VALID_CODE)

        view = (await mfa_engine.skip(talent_at_security)).value

        assert view.onboarding_completed is True
        assert view.skipped is False
        assert len(mock_identity.factors_for(talent_at_security.user_id)) == 1

    @pytest.mark.asyncio
    async def test_cancel_refused_after_verification(
        self, mfa_engine, profile_store, talent_at_security
    ):
        await _at_totp_verify(mfa_engine, talent_at_security)
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))
        await mfa_engine.verify(talent_at_security, _VALID_CODE)

        result = await mfa_engine.cancel(talent_at_security)

        assert isinstance(result.error, InvalidStateError)

    @pytest.mark.asyncio
    async def test_enter_retry_after_failed_completion(
        self, mfa_engine, mock_identity, profile_store, talent_at_security
    ):
        mock_identity.add_verified_factor(talent_at_security.user_id, "totp")
        profile_store.fail_next("mark_completed", TransientRemoteError("complete"))

        failed = await mfa_engine.enter(talent_at_security)
        view = (await mfa_engine.verify(talent_at_security, _VALID_CODE)).value

        assert isinstance(failed.error, TransientRemoteError)
        assert view.onboarding_completed is True
        assert mock_identity.call_count("verify_factor") == 0


# =============================================================================
# Guards
# =============================================================================


class TestGuards:
    """Phase and ownership checks."""

    @pytest.mark.asyncio
    async def test_not_started(self, mfa_engine, talent_at_security):
        result = await mfa_engine.view(talent_at_security)
        assert isinstance(result.error, InvalidStateError)
        assert result.error.code == "MFA_NOT_STARTED"

    @pytest.mark.asyncio
    async def test_wrong_phase(self, mfa_engine, talent_at_security):
        await mfa_engine.enter(talent_at_security)

        result = await mfa_engine.confirm_qr_scanned(talent_at_security)

        assert isinstance(result.error, InvalidStateError)
        assert result.error.code == "INVALID_STATE_TRANSITION"

    @pytest.mark.asyncio
    async def test_verify_before_enrolling(self, mfa_engine, talent_at_security):
        await _at_method_select(mfa_engine, talent_at_security)
        result = await mfa_engine.verify(talent_at_security, _VALID_CODE)
        assert isinstance(result.error, InvalidStateError)

    @pytest.mark.asyncio
    async def test_state_not_shared_across_users(
        self, mfa_engine, mock_identity, talent_at_security
    ):
        await mfa_engine.enter(talent_at_security)
        other = await mock_identity.create_account("other@example.com", "password1")
        intruder = OnboardingContext(session_key=SESSION_KEY, identity=other.session)

        result = await mfa_engine.view(intruder)

        assert result.error.code == "MFA_NOT_STARTED"

    @pytest.mark.asyncio
    async def test_unauthenticated_operations(self, mfa_engine):
        anonymous = OnboardingContext(session_key=SESSION_KEY)
        for result in (
            await mfa_engine.view(anonymous),
            await mfa_engine.skip(anonymous),
            await mfa_engine.verify(anonymous, _VALID_CODE),
        ):
            assert isinstance(result.error, UnauthorizedError)
