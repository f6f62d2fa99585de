"""Abstract base class and types for identity stores.

The identity store owns credentials, sessions and second factors. Every
call that acts on behalf of a user takes that user's IdentitySession
explicitly; there is no ambient current-user state.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Literal

FactorType = Literal["totp", "phone"]
FactorStatus = Literal["verified", "unverified"]


@dataclass(frozen=True)
class IdentitySession:
    """Authenticated session issued by the identity store.

    Attributes:
        access_token: Bearer token for calls made on the user's behalf.
        user_id: Identity store user id.
        refresh_token: Token for renewing the session, if issued.
        expires_in: Access token lifetime in seconds, if reported.
    """

    access_token: str = field(repr=False)
    user_id: uuid.UUID
    refresh_token: str | None = field(default=None, repr=False)
    expires_in: int | None = None


@dataclass(frozen=True)
class IdentityAccount:
    """Result of account creation or sign-in.

    session is None when the store requires email confirmation before the
    first sign-in.
    """

    user_id: uuid.UUID
    email: str
    session: IdentitySession | None = None


@dataclass(frozen=True)
class EnrolledFactor:
    """A newly enrolled, still unverified factor.

    qr_payload and secret are only set for TOTP factors.
    """

    factor_id: str
    factor_type: FactorType
    qr_payload: str | None = field(default=None, repr=False)
    secret: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class Factor:
    """A factor as listed by the identity store."""

    factor_id: str
    factor_type: FactorType
    status: FactorStatus

    @property
    def is_verified(self) -> bool:
        return self.status == "verified"


class IdentityStore(ABC):
    """Abstract base class for identity stores.

    Implementations map transport and API failures to
    app.providers.errors classes.
    """

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the identity store name (e.g., "gotrue", "mock")."""

    @abstractmethod
    async def create_account(
        self,
        email: str,
        password: str,
        metadata: dict[str, str] | None = None,
    ) -> IdentityAccount:
        """Register a new identity.

        Raises:
            AlreadyRegisteredError: Email already belongs to an identity.
            TransientError: Network or server failure.
        """

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> IdentityAccount:
        """Sign in with email and password.

        Raises:
            SignInRejectedError: Wrong password or unconfirmed email.
            TransientError: Network or server failure.
        """

    @abstractmethod
    async def get_user_id(self, access_token: str) -> uuid.UUID:
        """Resolve the identity behind an access token.

        Raises:
            InvalidSessionError: Token missing, expired or revoked.
            TransientError: Network or server failure.
        """

    @abstractmethod
    async def enroll_factor(
        self,
        session: IdentitySession,
        factor_type: FactorType,
        phone: str | None = None,
    ) -> EnrolledFactor:
        """Start enrolling a TOTP or phone factor.

        Raises:
            SmsUnavailableError: Phone factors are not configured.
            TransientError: Network or server failure.
        """

    @abstractmethod
    async def challenge_factor(self, session: IdentitySession, factor_id: str) -> str:
        """Issue a challenge; for phone factors this sends the SMS code.

        Returns:
            Challenge id to pass to verify_factor.

        Raises:
            SmsUnavailableError: SMS delivery is not configured.
            TransientError: Network or server failure.
        """

    @abstractmethod
    async def verify_factor(
        self,
        session: IdentitySession,
        factor_id: str,
        code: str,
        challenge_id: str | None = None,
    ) -> None:
        """Verify a code. A TOTP factor without challenge_id challenges first.

        Raises:
            InvalidFactorCodeError: Wrong or expired code.
            TransientError: Network or server failure.
        """

    @abstractmethod
    async def list_factors(self, session: IdentitySession) -> list[Factor]:
        """List the user's factors, verified and unverified."""

    @abstractmethod
    async def unenroll_factor(self, session: IdentitySession, factor_id: str) -> None:
        """Remove a factor. Unknown factor ids are not an error."""
