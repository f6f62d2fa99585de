"""MFA enrollment engine for the Security step.

Sub-machine:

    intro -> method-select -> phone-entry -> verify -> complete
                           -> qr-display  -> verify -> complete

method-select is re-enterable from qr-display, phone-entry and verify
(cancel or switch strategy); cancelling unenrolls the pending unverified
factor. Skip, when the security policy allows it, jumps to complete from
any phase without a factor. The phase reaches complete only once the
completion gate succeeds; a failed gate leaves the verified factor or the
skip decision in place for a retry.

Entering the step lists the talent's factors first: a verified factor
completes the step with no enrollment calls, and unverified leftovers from
an abandoned attempt are unenrolled.

TOTP enrollment is one remote call (enroll returns the QR payload and
secret). Phone enrollment is two: enroll, then challenge, which sends the
SMS. When SMS delivery is not configured the pending factor is removed and
the engine returns to method-select with a ConfigurationError.

Enrollment state is in memory only, keyed by onboarding session. Secrets
and phone numbers never reach the progress cache or the database profile.
"""

import math
import re
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum

import structlog

from app.core.config import settings
from app.core.errors import (
    APIError,
    InvalidCodeError,
    InvalidStateError,
    MFARequiredError,
    ResendCooldownError,
    StepOrderError,
    UnauthorizedError,
    ValidationError,
)
from app.core.results import Err, Ok, Result
from app.providers.errors import (
    InvalidFactorCodeError,
    ProviderError,
    SmsUnavailableError,
)
from app.providers.identity.base import IdentitySession, IdentityStore
from app.schemas.mfa import MFAPhase, MFAStrategy, MFAView
from app.schemas.onboarding import OnboardingStep
from app.services.completion_gate import CompletionGate, SecurityPolicy
from app.services.onboarding_context import OnboardingContext
from app.services.profile_store import ProfileStore
from app.services.remote_errors import to_api_error

logger = structlog.get_logger()

# Enrollment state lives as long as a talent plausibly stays on the screen
DEFAULT_STATE_TTL_MINUTES = 60

_CODE_PATTERN = re.compile(r"^\d{6}$")
_E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")

_VALID_TRANSITIONS: dict[MFAPhase, frozenset[MFAPhase]] = {
    MFAPhase.INTRO: frozenset({MFAPhase.METHOD_SELECT, MFAPhase.COMPLETE}),
    MFAPhase.METHOD_SELECT: frozenset(
        {MFAPhase.PHONE_ENTRY, MFAPhase.QR_DISPLAY, MFAPhase.COMPLETE}
    ),
    MFAPhase.PHONE_ENTRY: frozenset(
        {MFAPhase.VERIFY, MFAPhase.METHOD_SELECT, MFAPhase.COMPLETE}
    ),
    MFAPhase.QR_DISPLAY: frozenset(
        {MFAPhase.VERIFY, MFAPhase.METHOD_SELECT, MFAPhase.COMPLETE}
    ),
    MFAPhase.VERIFY: frozenset({MFAPhase.METHOD_SELECT, MFAPhase.COMPLETE}),
    MFAPhase.COMPLETE: frozenset(),
}

_ENROLLMENT_PHASES = frozenset(
    {MFAPhase.PHONE_ENTRY, MFAPhase.QR_DISPLAY, MFAPhase.VERIFY}
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


# =============================================================================
# Phone numbers
# =============================================================================


def normalize_phone(raw: str) -> str:
    """Normalize a phone number to E.164.

    Ten-digit input is treated as a US number; everything else must carry
    its country code.

    Raises:
        ValidationError: The number cannot be normalized.
    """
    digits = re.sub(r"\D", "", raw)
    if len(digits) == 10 and not raw.strip().startswith("+"):
        candidate = f"+1{digits}"
    else:
        candidate = f"+{digits}"

    if not _E164_PATTERN.match(candidate):
        raise ValidationError(
            "Enter a valid phone number, including the country code.",
            details=[{"field": "phone_number", "error": "INVALID_PHONE"}],
        )
    return candidate


def mask_phone(phone: str) -> str:
    """Show only the country prefix and last four digits."""
    return f"{phone[:2]}{'*' * (len(phone) - 6)}{phone[-4:]}"


# =============================================================================
# State
# =============================================================================


@dataclass
class MFAEnrollmentState:
    """Per-session enrollment state.

    Attributes:
        user_id: Identity the state belongs to.
        profile_id: Profile the Security step completes.
        required: Whether the policy forbids skipping.
        phase: Current sub-machine phase.
        strategy: Chosen enrollment strategy.
        factor_id: Pending (or verified) factor.
        challenge_id: Outstanding phone challenge.
        qr_payload: TOTP provisioning URI.
        secret: TOTP shared secret.
        phone_number: E.164 number being enrolled.
        resend_available_at: Earliest time a resend is accepted.
        skipped: The talent skipped enrollment.
        factor_verified: factor_id is verified at the Identity Store and
            only the completion write is outstanding.
        expires_at: When the state is discarded.
    """

    user_id: uuid.UUID
    profile_id: uuid.UUID
    required: bool
    phase: MFAPhase = MFAPhase.INTRO
    strategy: MFAStrategy = MFAStrategy.UNSET
    factor_id: str | None = None
    challenge_id: str | None = None
    qr_payload: str | None = field(default=None, repr=False)
    secret: str | None = field(default=None, repr=False)
    phone_number: str | None = field(default=None, repr=False)
    resend_available_at: datetime | None = None
    skipped: bool = False
    factor_verified: bool = False
    expires_at: datetime = field(default_factory=_utcnow)

    def clear_enrollment(self) -> None:
        """Forget the pending factor and all secret material."""
        self.factor_verified = False
        self.factor_id = None
        self.challenge_id = None
        self.qr_payload = None
        self.secret = None
        self.phone_number = None
        self.resend_available_at = None


class MFAStateStore:
    """In-memory MFA enrollment state keyed by onboarding session."""

    def __init__(self, ttl_minutes: int = DEFAULT_STATE_TTL_MINUTES) -> None:
        self._store: dict[str, MFAEnrollmentState] = {}
        self._ttl = timedelta(minutes=ttl_minutes)

    def put(self, session_key: str, state: MFAEnrollmentState) -> None:
        """Store state and refresh its expiry."""
        state.expires_at = _utcnow() + self._ttl
        self._store[session_key] = state

    def get(self, session_key: str, user_id: uuid.UUID) -> MFAEnrollmentState | None:
        """Return the session's state if it is live and owned by user_id."""
        state = self._store.get(session_key)
        if state is None:
            return None
        if _utcnow() > state.expires_at:
            del self._store[session_key]
            return None
        if state.user_id != user_id:
            return None
        return state

    def discard(self, session_key: str) -> None:
        """Drop a session's state."""
        self._store.pop(session_key, None)

    def cleanup_expired(self) -> int:
        """Remove all expired state.

        Returns:
            Number of sessions removed.
        """
        now = _utcnow()
        expired = [k for k, s in self._store.items() if now > s.expires_at]
        for key in expired:
            del self._store[key]
        return len(expired)

    def clear(self) -> None:
        """Clear all state (for testing)."""
        self._store.clear()


_state_store: MFAStateStore | None = None


def get_mfa_state_store() -> MFAStateStore:
    """Get the singleton MFA state store."""
    global _state_store
    if _state_store is None:
        _state_store = MFAStateStore()
    return _state_store


def reset_mfa_state_store() -> None:
    """Reset the MFA state store singleton (for testing)."""
    global _state_store
    if _state_store is not None:
        _state_store.clear()
    _state_store = None


# =============================================================================
# Engine
# =============================================================================


class MFAEnrollmentEngine:
    """Drives the Security step for one onboarding session at a time."""

    def __init__(
        self,
        *,
        identity: IdentityStore,
        profiles: ProfileStore,
        gate: CompletionGate,
        states: MFAStateStore,
        clock: Callable[[], datetime] = _utcnow,
        resend_cooldown_seconds: int | None = None,
    ) -> None:
        self._identity = identity
        self._profiles = profiles
        self._gate = gate
        self._states = states
        self._clock = clock
        self._cooldown = timedelta(
            seconds=resend_cooldown_seconds
            if resend_cooldown_seconds is not None
            else settings.otp_resend_cooldown_seconds
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _view(
        self, state: MFAEnrollmentState, *, onboarding_completed: bool = False
    ) -> MFAView:
        show_totp = state.strategy == MFAStrategy.TOTP and state.phase in (
            MFAPhase.QR_DISPLAY,
            MFAPhase.VERIFY,
        )
        resend_in = 0
        if state.resend_available_at is not None:
            remaining = (state.resend_available_at - self._clock()).total_seconds()
            resend_in = max(0, math.ceil(remaining))
        return MFAView(
            phase=state.phase,
            strategy=state.strategy,
            factor_id=state.factor_id,
            qr_payload=state.qr_payload if show_totp else None,
            secret=state.secret if show_totp else None,
            phone_number_masked=mask_phone(state.phone_number)
            if state.phone_number
            else None,
            resend_available_in_seconds=resend_in,
            required=state.required,
            skipped=state.skipped,
            onboarding_completed=onboarding_completed,
            profile_id=state.profile_id,
        )

    def _session(self, ctx: OnboardingContext) -> Result[IdentitySession]:
        if ctx.identity is None:
            return Err(UnauthorizedError("Complete the identity step first."))
        return Ok(ctx.identity)

    def _state(
        self, ctx: OnboardingContext, *allowed: MFAPhase
    ) -> Result[tuple[IdentitySession, MFAEnrollmentState]]:
        """Session and state for ctx, checking the current phase."""
        session = self._session(ctx)
        if isinstance(session, Err):
            return session
        state = self._states.get(ctx.session_key, session.value.user_id)
        if state is None:
            return Err(
                InvalidStateError(
                    "The security step has not been started.",
                    code="MFA_NOT_STARTED",
                )
            )
        if allowed and state.phase not in allowed:
            return Err(self._phase_error(state))
        return Ok((session.value, state))

    @staticmethod
    def _phase_error(state: MFAEnrollmentState) -> InvalidStateError:
        return InvalidStateError(
            f"Not available while in phase '{state.phase.value}'."
        )

    @staticmethod
    def _move(state: MFAEnrollmentState, target: MFAPhase) -> None:
        if target not in _VALID_TRANSITIONS[state.phase]:
            msg = f"Invalid MFA transition {state.phase.value} -> {target.value}"
            raise InvalidStateError(msg)
        state.phase = target

    async def _unenroll_quietly(self, session: IdentitySession, factor_id: str) -> None:
        """Unenroll an unverified factor; a failure leaves it for the next entry."""
        try:
            await self._identity.unenroll_factor(session, factor_id)
        except ProviderError as e:
            logger.warning(
                "factor_unenroll_failed",
                factor_id=factor_id,
                error_type=type(e).__name__,
            )

    async def _fall_back_to_method_select(
        self,
        ctx: OnboardingContext,
        session: IdentitySession,
        state: MFAEnrollmentState,
        error: SmsUnavailableError,
    ) -> Err:
        if state.factor_id:
            await self._unenroll_quietly(session, state.factor_id)
        state.clear_enrollment()
        state.strategy = MFAStrategy.UNSET
        self._move(state, MFAPhase.METHOD_SELECT)
        self._states.put(ctx.session_key, state)
        logger.info("sms_fallback_triggered", profile_id=str(state.profile_id))
        return Err(to_api_error("challenge_factor", error))

    async def _finish(
        self,
        ctx: OnboardingContext,
        state: MFAEnrollmentState,
        *,
        mfa_verified: bool,
    ) -> Result[MFAView]:
        """Run the completion gate; the phase becomes COMPLETE only on success.

        On failure the state keeps its phase together with the verified
        factor or the skip decision, so the same operation can be retried.
        """
        completed = await self._gate.complete(
            ctx.session_key,
            state.profile_id,
            mfa_verified=mfa_verified,
            skipped=state.skipped,
            policy=SecurityPolicy(required=state.required),
        )
        if isinstance(completed, Err):
            self._states.put(ctx.session_key, state)
            return completed
        self._move(state, MFAPhase.COMPLETE)
        self._states.put(ctx.session_key, state)
        return Ok(self._view(state, onboarding_completed=True))

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def enter(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Enter the Security step, short-circuiting on a verified factor."""
        session = self._session(ctx)
        if isinstance(session, Err):
            return session
        identity = session.value

        try:
            record = await self._profiles.get_profile(user_id=identity.user_id)
        except APIError as e:
            return Err(e)
        if record is None:
            return Err(StepOrderError(OnboardingStep.SECURITY, 0))

        state = MFAEnrollmentState(
            user_id=identity.user_id,
            profile_id=record.id,
            required=SecurityPolicy.for_profile(record).required,
        )
        if record.onboarding_completed:
            state.phase = MFAPhase.COMPLETE
            self._states.put(ctx.session_key, state)
            return Ok(self._view(state, onboarding_completed=True))
        if record.completed_step < OnboardingStep.MEDIA:
            return Err(StepOrderError(OnboardingStep.SECURITY, record.completed_step))

        try:
            factors = await self._identity.list_factors(identity)
        except ProviderError as e:
            return Err(to_api_error("list_factors", e))

        verified = [f for f in factors if f.is_verified]
        if verified:
            state.factor_id = verified[0].factor_id
            state.factor_verified = True
            state.strategy = MFAStrategy(verified[0].factor_type)
            logger.info("mfa_already_enrolled", profile_id=str(record.id))
            return await self._finish(ctx, state, mfa_verified=True)

        for factor in factors:
            await self._unenroll_quietly(identity, factor.factor_id)
        self._states.put(ctx.session_key, state)
        return Ok(self._view(state))

    async def view(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Current enrollment view without changing state."""
        loaded = self._state(ctx)
        if isinstance(loaded, Err):
            return loaded
        _, state = loaded.value
        done = state.phase == MFAPhase.COMPLETE
        return Ok(self._view(state, onboarding_completed=done))

    async def begin(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Leave the intro for method selection."""
        loaded = self._state(ctx, MFAPhase.INTRO)
        if isinstance(loaded, Err):
            return loaded
        _, state = loaded.value
        self._move(state, MFAPhase.METHOD_SELECT)
        self._states.put(ctx.session_key, state)
        return Ok(self._view(state))

    async def select_method(
        self, ctx: OnboardingContext, strategy: MFAStrategy
    ) -> Result[MFAView]:
        """Choose TOTP (enrolls immediately) or phone (asks for a number)."""
        loaded = self._state(ctx, MFAPhase.METHOD_SELECT)
        if isinstance(loaded, Err):
            return loaded
        session, state = loaded.value
        state.skipped = False

        if strategy == MFAStrategy.PHONE:
            state.strategy = MFAStrategy.PHONE
            self._move(state, MFAPhase.PHONE_ENTRY)
            self._states.put(ctx.session_key, state)
            return Ok(self._view(state))
        if strategy != MFAStrategy.TOTP:
            return Err(ValidationError("Choose an authenticator app or a phone."))

        try:
            enrolled = await self._identity.enroll_factor(session, "totp")
        except ProviderError as e:
            return Err(to_api_error("enroll_factor", e))

        state.strategy = MFAStrategy.TOTP
        state.factor_id = enrolled.factor_id
        state.qr_payload = enrolled.qr_payload
        state.secret = enrolled.secret
        self._move(state, MFAPhase.QR_DISPLAY)
        self._states.put(ctx.session_key, state)
        logger.info("factor_enrolled", strategy="totp", profile_id=str(state.profile_id))
        return Ok(self._view(state))

    async def confirm_qr_scanned(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Move from the QR code to code entry."""
        loaded = self._state(ctx, MFAPhase.QR_DISPLAY)
        if isinstance(loaded, Err):
            return loaded
        _, state = loaded.value
        self._move(state, MFAPhase.VERIFY)
        self._states.put(ctx.session_key, state)
        return Ok(self._view(state))

    async def submit_phone(
        self, ctx: OnboardingContext, phone_number: str
    ) -> Result[MFAView]:
        """Enroll a phone factor and send the first code."""
        loaded = self._state(ctx, MFAPhase.PHONE_ENTRY)
        if isinstance(loaded, Err):
            return loaded
        session, state = loaded.value

        try:
            phone = normalize_phone(phone_number)
        except ValidationError as e:
            return Err(e)

        try:
            await self._profiles.save_phone(session.user_id, phone)
        except APIError as e:
            return Err(e)

        try:
            enrolled = await self._identity.enroll_factor(session, "phone", phone=phone)
        except SmsUnavailableError as e:
            return await self._fall_back_to_method_select(ctx, session, state, e)
        except ProviderError as e:
            return Err(to_api_error("enroll_factor", e))
        state.factor_id = enrolled.factor_id
        state.phone_number = phone

        try:
            state.challenge_id = await self._identity.challenge_factor(
                session, enrolled.factor_id
            )
        except SmsUnavailableError as e:
            return await self._fall_back_to_method_select(ctx, session, state, e)
        except ProviderError as e:
            await self._unenroll_quietly(session, enrolled.factor_id)
            state.clear_enrollment()
            self._states.put(ctx.session_key, state)
            return Err(to_api_error("challenge_factor", e))

        state.resend_available_at = self._clock() + self._cooldown
        self._move(state, MFAPhase.VERIFY)
        self._states.put(ctx.session_key, state)
        logger.info("factor_enrolled", strategy="phone", profile_id=str(state.profile_id))
        return Ok(self._view(state))

    async def resend(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Send a new SMS code, subject to the advisory cooldown."""
        loaded = self._state(ctx, MFAPhase.VERIFY)
        if isinstance(loaded, Err):
            return loaded
        session, state = loaded.value
        if (
            state.strategy != MFAStrategy.PHONE
            or state.factor_id is None
            or state.factor_verified
        ):
            return Err(InvalidStateError("Codes can only be resent for phone enrollment."))

        now = self._clock()
        if state.resend_available_at is not None and now < state.resend_available_at:
            remaining = math.ceil((state.resend_available_at - now).total_seconds())
            return Err(ResendCooldownError(remaining))

        try:
            state.challenge_id = await self._identity.challenge_factor(
                session, state.factor_id
            )
        except SmsUnavailableError as e:
            return await self._fall_back_to_method_select(ctx, session, state, e)
        except ProviderError as e:
            return Err(to_api_error("challenge_factor", e))

        state.resend_available_at = now + self._cooldown
        self._states.put(ctx.session_key, state)
        return Ok(self._view(state))

    async def verify(self, ctx: OnboardingContext, code: str) -> Result[MFAView]:
        """Verify the pending factor and complete onboarding."""
        code = code.strip()
        if not _CODE_PATTERN.match(code):
            return Err(InvalidCodeError("Enter the 6-digit code."))

        loaded = self._state(ctx)
        if isinstance(loaded, Err):
            return loaded
        session, state = loaded.value
        if state.factor_verified and state.phase != MFAPhase.COMPLETE:
            return await self._finish(ctx, state, mfa_verified=True)
        if state.phase != MFAPhase.VERIFY:
            return Err(self._phase_error(state))
        if state.factor_id is None:
            return Err(InvalidStateError("No factor is pending verification."))

        try:
            await self._identity.verify_factor(
                session,
                state.factor_id,
                code,
                challenge_id=state.challenge_id
                if state.strategy == MFAStrategy.PHONE
                else None,
            )
        except InvalidFactorCodeError:
            logger.info("factor_code_rejected", profile_id=str(state.profile_id))
            return Err(InvalidCodeError())
        except ProviderError as e:
            return Err(to_api_error("verify_factor", e))

        factor_id = state.factor_id
        state.clear_enrollment()
        state.factor_id = factor_id
        state.factor_verified = True
        logger.info(
            "factor_verified",
            strategy=state.strategy.value,
            profile_id=str(state.profile_id),
        )
        return await self._finish(ctx, state, mfa_verified=True)

    async def cancel(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Abandon the pending enrollment and return to method selection."""
        loaded = self._state(
            ctx, MFAPhase.QR_DISPLAY, MFAPhase.PHONE_ENTRY, MFAPhase.VERIFY
        )
        if isinstance(loaded, Err):
            return loaded
        session, state = loaded.value
        if state.factor_verified:
            return Err(InvalidStateError("The factor is already verified."))
        if state.factor_id:
            await self._unenroll_quietly(session, state.factor_id)
        state.clear_enrollment()
        state.strategy = MFAStrategy.UNSET
        self._move(state, MFAPhase.METHOD_SELECT)
        self._states.put(ctx.session_key, state)
        return Ok(self._view(state))

    async def skip(self, ctx: OnboardingContext) -> Result[MFAView]:
        """Finish without a second factor, when the policy allows it."""
        loaded = self._state(ctx)
        if isinstance(loaded, Err):
            return loaded
        session, state = loaded.value
        if state.phase == MFAPhase.COMPLETE:
            return Ok(self._view(state, onboarding_completed=True))
        if state.factor_verified:
            return await self._finish(ctx, state, mfa_verified=True)
        if state.required:
            return Err(MFARequiredError())

        if state.factor_id:
            await self._unenroll_quietly(session, state.factor_id)
        state.clear_enrollment()
        state.strategy = MFAStrategy.UNSET
        if state.phase in _ENROLLMENT_PHASES:
            self._move(state, MFAPhase.METHOD_SELECT)
        if not state.skipped:
            state.skipped = True
            logger.info("mfa_skipped", profile_id=str(state.profile_id))
        return await self._finish(ctx, state, mfa_verified=False)
