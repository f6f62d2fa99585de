"""Mock identity store for local development and testing.

Keeps accounts, sessions and factors in memory. Knobs simulate the
behaviours onboarding has to handle: email confirmation required, SMS
not configured, and injected failures for any method.
"""

import secrets
import uuid
from dataclasses import dataclass
from typing import Any

from app.providers.errors import (
    AlreadyRegisteredError,
    InvalidFactorCodeError,
    InvalidSessionError,
    ProviderError,
    SignInRejectedError,
    SmsUnavailableError,
)
from app.providers.identity.base import (
    EnrolledFactor,
    Factor,
    FactorType,
    IdentityAccount,
    IdentitySession,
    IdentityStore,
)

DEFAULT_VALID_CODE = "123456"


@dataclass
class _MockAccount:
    user_id: uuid.UUID
    email: str
    password: str
    confirmed: bool
    metadata: dict[str, str]


@dataclass
class _MockFactor:
    factor_id: str
    factor_type: FactorType
    verified: bool
    phone: str | None = None


class MockIdentityStore(IdentityStore):
    """In-memory identity store.

    Attributes:
        require_email_confirmation: When True, create_account returns no
            session and sign_in is rejected until confirm_email() is called.
        sms_available: When False, challenging a phone factor raises
            SmsUnavailableError.
        valid_code: The only code verify_factor accepts.
        calls: Record of all method invocations for test assertions.
    """

    @property
    def provider_name(self) -> str:
        """Return 'mock' for testing."""
        return "mock"

    def __init__(
        self,
        *,
        require_email_confirmation: bool = False,
        sms_available: bool = True,
        valid_code: str = DEFAULT_VALID_CODE,
    ) -> None:
        self.require_email_confirmation = require_email_confirmation
        self.sms_available = sms_available
        self.valid_code = valid_code
        self.calls: list[dict[str, Any]] = []
        self._accounts: dict[str, _MockAccount] = {}
        self._tokens: dict[str, uuid.UUID] = {}
        self._factors: dict[uuid.UUID, dict[str, _MockFactor]] = {}
        self._challenges: dict[str, str] = {}
        self._failures: dict[str, ProviderError] = {}

    # -------------------------------------------------------------------------
    # Test helpers
    # -------------------------------------------------------------------------

    def fail_next(self, method: str, error: ProviderError) -> None:
        """Make the next call to ``method`` raise ``error``."""
        self._failures[method] = error

    def confirm_email(self, email: str) -> None:
        """Mark an account's email as confirmed."""
        self._accounts[email.lower()].confirmed = True

    def add_verified_factor(
        self, user_id: uuid.UUID, factor_type: FactorType = "totp"
    ) -> str:
        """Give a user an already verified factor. Returns its id."""
        factor_id = f"factor-{secrets.token_hex(4)}"
        self._factors.setdefault(user_id, {})[factor_id] = _MockFactor(
            factor_id=factor_id, factor_type=factor_type, verified=True
        )
        return factor_id

    def factors_for(self, user_id: uuid.UUID) -> list[Factor]:
        """Synchronous view of a user's factors for assertions."""
        return [
            Factor(
                factor_id=f.factor_id,
                factor_type=f.factor_type,
                status="verified" if f.verified else "unverified",
            )
            for f in self._factors.get(user_id, {}).values()
        ]

    def call_count(self, method: str) -> int:
        """Number of recorded calls to ``method``."""
        return sum(1 for c in self.calls if c["method"] == method)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _record(self, method: str, **kwargs: Any) -> None:
        self.calls.append({"method": method, **kwargs})
        error = self._failures.pop(method, None)
        if error is not None:
            raise error

    def _issue_session(self, user_id: uuid.UUID) -> IdentitySession:
        token = f"mock-token-{secrets.token_hex(8)}"
        self._tokens[token] = user_id
        return IdentitySession(access_token=token, user_id=user_id, expires_in=3600)

    def _user_for(self, session: IdentitySession) -> uuid.UUID:
        user_id = self._tokens.get(session.access_token)
        if user_id is None or user_id != session.user_id:
            raise InvalidSessionError("Unknown session")
        return user_id

    # -------------------------------------------------------------------------
    # IdentityStore
    # -------------------------------------------------------------------------

    async def create_account(
        self,
        email: str,
        password: str,
        metadata: dict[str, str] | None = None,
    ) -> IdentityAccount:
        """Register an account, or raise AlreadyRegisteredError."""
        self._record("create_account", email=email)
        key = email.lower()
        if key in self._accounts:
            raise AlreadyRegisteredError("User already registered")

        account = _MockAccount(
            user_id=uuid.uuid4(),
            email=key,
            password=password,
            confirmed=not self.require_email_confirmation,
            metadata=dict(metadata or {}),
        )
        self._accounts[key] = account
        session = self._issue_session(account.user_id) if account.confirmed else None
        return IdentityAccount(user_id=account.user_id, email=key, session=session)

    async def sign_in(self, email: str, password: str) -> IdentityAccount:
        """Check the password and issue a fresh session."""
        self._record("sign_in", email=email)
        account = self._accounts.get(email.lower())
        if account is None or account.password != password:
            raise SignInRejectedError("Invalid login credentials")
        if not account.confirmed:
            raise SignInRejectedError(
                "Email not confirmed", reason="email_not_confirmed"
            )
        return IdentityAccount(
            user_id=account.user_id,
            email=account.email,
            session=self._issue_session(account.user_id),
        )

    async def get_user_id(self, access_token: str) -> uuid.UUID:
        """Resolve the owner of a mock access token."""
        self._record("get_user_id")
        user_id = self._tokens.get(access_token)
        if user_id is None:
            raise InvalidSessionError("Unknown access token")
        return user_id

    async def enroll_factor(
        self,
        session: IdentitySession,
        factor_type: FactorType,
        phone: str | None = None,
    ) -> EnrolledFactor:
        """Create an unverified factor."""
        self._record("enroll_factor", factor_type=factor_type)
        user_id = self._user_for(session)
        factor_id = f"factor-{secrets.token_hex(4)}"
        self._factors.setdefault(user_id, {})[factor_id] = _MockFactor(
            factor_id=factor_id,
            factor_type=factor_type,
            verified=False,
            phone=phone,
        )
        if factor_type == "totp":
            secret = secrets.token_hex(10).upper()
            return EnrolledFactor(
                factor_id=factor_id,
                factor_type="totp",
                qr_payload=f"otpauth://totp/talent-onboarding:{user_id}?secret={secret}",
                secret=secret,
            )
        return EnrolledFactor(factor_id=factor_id, factor_type="phone")

    async def challenge_factor(self, session: IdentitySession, factor_id: str) -> str:
        """Issue a challenge; phone factors need SMS to be available."""
        self._record("challenge_factor", factor_id=factor_id)
        user_id = self._user_for(session)
        factor = self._factors.get(user_id, {}).get(factor_id)
        if factor is None:
            raise ProviderError(f"Factor {factor_id} not found")
        if factor.factor_type == "phone" and not self.sms_available:
            raise SmsUnavailableError("SMS provider is not enabled")
        challenge_id = f"challenge-{secrets.token_hex(4)}"
        self._challenges[challenge_id] = factor_id
        return challenge_id

    async def verify_factor(
        self,
        session: IdentitySession,
        factor_id: str,
        code: str,
        challenge_id: str | None = None,
    ) -> None:
        """Mark the factor verified when the code matches valid_code."""
        self._record("verify_factor", factor_id=factor_id)
        user_id = self._user_for(session)
        factor = self._factors.get(user_id, {}).get(factor_id)
        if factor is None:
            raise ProviderError(f"Factor {factor_id} not found")
        if factor.factor_type == "phone" and self._challenges.get(
            challenge_id or ""
        ) != factor_id:
            raise InvalidFactorCodeError("No active challenge for this factor")
        if code != self.valid_code:
            raise InvalidFactorCodeError("Invalid TOTP code entered")
        factor.verified = True

    async def list_factors(self, session: IdentitySession) -> list[Factor]:
        """List the session owner's factors."""
        self._record("list_factors")
        return self.factors_for(self._user_for(session))

    async def unenroll_factor(self, session: IdentitySession, factor_id: str) -> None:
        """Remove a factor if it exists."""
        self._record("unenroll_factor", factor_id=factor_id)
        user_id = self._user_for(session)
        self._factors.get(user_id, {}).pop(factor_id, None)
