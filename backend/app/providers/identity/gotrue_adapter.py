"""GoTrue identity store adapter.

Talks to a GoTrue-compatible auth service (signup, password grant,
MFA factor endpoints) over httpx. API errors are classified into
app.providers.errors classes; nothing GoTrue-specific leaks past here.
"""

import uuid
from typing import Any

import httpx
import structlog

from app.providers.errors import (
    AlreadyRegisteredError,
    InvalidFactorCodeError,
    InvalidSessionError,
    ProviderError,
    SignInRejectedError,
    SmsUnavailableError,
    TransientError,
)
from app.providers.identity.base import (
    EnrolledFactor,
    Factor,
    FactorType,
    IdentityAccount,
    IdentitySession,
    IdentityStore,
)

logger = structlog.get_logger()

_ALREADY_REGISTERED_CODES = frozenset({"user_already_exists", "email_exists"})
_SMS_UNAVAILABLE_CODES = frozenset(
    {
        "phone_provider_disabled",
        "sms_send_failed",
        "mfa_phone_enroll_not_enabled",
        "mfa_phone_verify_not_enabled",
    }
)
_INVALID_CODE_CODES = frozenset(
    {"mfa_verification_failed", "mfa_challenge_expired", "otp_expired"}
)


def _error_body(response: httpx.Response) -> tuple[str, str]:
    """Extract (error_code, message) from a GoTrue error response."""
    try:
        body: dict[str, Any] = response.json()
    except ValueError:
        return "", response.text
    code = str(body.get("error_code") or body.get("code") or body.get("error") or "")
    message = str(
        body.get("msg")
        or body.get("message")
        or body.get("error_description")
        or body.get("error")
        or ""
    )
    return code, message


def _classify_gotrue_error(response: httpx.Response) -> ProviderError:
    """Map a non-2xx GoTrue response to the provider error taxonomy.

    Returns a ProviderError subclass instance (does not raise).
    """
    code, message = _error_body(response)
    status = response.status_code

    if status >= 500 or status == 429:
        # SMS gateway failures surface as 5xx with an SMS-specific code
        if code in _SMS_UNAVAILABLE_CODES:
            return SmsUnavailableError(message)
        return TransientError(f"GoTrue returned {status}: {message}")
    if code in _ALREADY_REGISTERED_CODES or "already registered" in message.lower():
        return AlreadyRegisteredError(message)
    if code == "email_not_confirmed" or "not confirmed" in message.lower():
        return SignInRejectedError(message, reason="email_not_confirmed")
    if code == "invalid_credentials" or "invalid login" in message.lower():
        return SignInRejectedError(message, reason="invalid_credentials")
    if code in _SMS_UNAVAILABLE_CODES:
        return SmsUnavailableError(message)
    if code in _INVALID_CODE_CODES or "invalid totp" in message.lower():
        return InvalidFactorCodeError(message)
    if status in (401, 403) or code in ("bad_jwt", "session_not_found"):
        return InvalidSessionError(message)
    return ProviderError(f"GoTrue returned {status}: {code} {message}".strip())


def _session_from_body(body: dict[str, Any]) -> IdentitySession | None:
    access_token = body.get("access_token")
    user = body.get("user") or {}
    if not access_token or not user.get("id"):
        return None
    return IdentitySession(
        access_token=access_token,
        user_id=uuid.UUID(user["id"]),
        refresh_token=body.get("refresh_token"),
        expires_in=body.get("expires_in"),
    )


class GoTrueIdentityStore(IdentityStore):
    """Identity store backed by a GoTrue HTTP API."""

    @property
    def provider_name(self) -> str:
        """Return 'gotrue'."""
        return "gotrue"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            base_url: GoTrue root URL (e.g. https://auth.example.com).
            api_key: Project API key sent as the ``apikey`` header.
            timeout: Per-request timeout in seconds.
            client: Optional preconfigured client (tests inject a
                MockTransport-backed client).
        """
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"), timeout=timeout
        )

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        return {
            "apikey": self._api_key,
            "Authorization": f"Bearer {access_token or self._api_key}",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        access_token: str | None = None,
        json: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        try:
            response = await self._client.request(
                method,
                path,
                headers=self._headers(access_token),
                json=json,
                params=params,
            )
        except httpx.TimeoutException as e:
            raise TransientError(f"GoTrue timeout on {method} {path}") from e
        except httpx.TransportError as e:
            raise TransientError(f"GoTrue unreachable on {method} {path}") from e

        if response.is_error:
            error = _classify_gotrue_error(response)
            logger.info(
                "gotrue_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                error_type=type(error).__name__,
            )
            raise error

        if not response.content:
            return {}
        body: dict[str, Any] = response.json()
        return body

    async def create_account(
        self,
        email: str,
        password: str,
        metadata: dict[str, str] | None = None,
    ) -> IdentityAccount:
        """Register via POST /signup."""
        body = await self._request(
            "POST",
            "/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )
        session = _session_from_body(body)
        # Without autoconfirm GoTrue returns the bare user object
        user = body.get("user") or body
        if not user.get("id"):
            msg = "GoTrue signup response has no user id"
            raise ProviderError(msg)
        # A confirmed user with no identities is GoTrue's obfuscated
        # response for an email that is already registered
        if session is None and user.get("identities") == []:
            raise AlreadyRegisteredError("User already registered")
        return IdentityAccount(
            user_id=uuid.UUID(user["id"]),
            email=user.get("email") or email,
            session=session,
        )

    async def sign_in(self, email: str, password: str) -> IdentityAccount:
        """Sign in via POST /token?grant_type=password."""
        body = await self._request(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        session = _session_from_body(body)
        if session is None:
            msg = "GoTrue password grant returned no session"
            raise ProviderError(msg)
        return IdentityAccount(
            user_id=session.user_id,
            email=(body.get("user") or {}).get("email") or email,
            session=session,
        )

    async def get_user_id(self, access_token: str) -> uuid.UUID:
        """Resolve the token owner via GET /user."""
        body = await self._request("GET", "/user", access_token=access_token)
        try:
            return uuid.UUID(body["id"])
        except (KeyError, ValueError) as e:
            raise InvalidSessionError("GoTrue user response has no id") from e

    async def enroll_factor(
        self,
        session: IdentitySession,
        factor_type: FactorType,
        phone: str | None = None,
    ) -> EnrolledFactor:
        """Enroll via POST /factors."""
        payload: dict[str, Any] = {"factor_type": factor_type}
        if factor_type == "phone":
            payload["phone"] = phone
            payload["friendly_name"] = "Phone"
        else:
            payload["friendly_name"] = "Authenticator App"
            payload["issuer"] = "talent-onboarding"

        body = await self._request(
            "POST", "/factors", access_token=session.access_token, json=payload
        )
        totp = body.get("totp") or {}
        return EnrolledFactor(
            factor_id=body["id"],
            factor_type=factor_type,
            qr_payload=totp.get("qr_code") or totp.get("uri"),
            secret=totp.get("secret"),
        )

    async def challenge_factor(self, session: IdentitySession, factor_id: str) -> str:
        """Challenge via POST /factors/{id}/challenge."""
        body = await self._request(
            "POST",
            f"/factors/{factor_id}/challenge",
            access_token=session.access_token,
        )
        challenge_id: str = body["id"]
        return challenge_id

    async def verify_factor(
        self,
        session: IdentitySession,
        factor_id: str,
        code: str,
        challenge_id: str | None = None,
    ) -> None:
        """Verify via POST /factors/{id}/verify, challenging first for TOTP."""
        if challenge_id is None:
            challenge_id = await self.challenge_factor(session, factor_id)
        await self._request(
            "POST",
            f"/factors/{factor_id}/verify",
            access_token=session.access_token,
            json={"challenge_id": challenge_id, "code": code},
        )

    async def list_factors(self, session: IdentitySession) -> list[Factor]:
        """List factors from the GET /user payload."""
        body = await self._request("GET", "/user", access_token=session.access_token)
        factors: list[Factor] = []
        for raw in body.get("factors") or []:
            factor_type = raw.get("factor_type")
            if factor_type not in ("totp", "phone"):
                continue
            factors.append(
                Factor(
                    factor_id=raw["id"],
                    factor_type=factor_type,
                    status="verified" if raw.get("status") == "verified" else "unverified",
                )
            )
        return factors

    async def unenroll_factor(self, session: IdentitySession, factor_id: str) -> None:
        """Unenroll via DELETE /factors/{id}; a 404 counts as done."""
        try:
            await self._request(
                "DELETE", f"/factors/{factor_id}", access_token=session.access_token
            )
        except ProviderError as e:
            if "404" in str(e):
                return
            raise
