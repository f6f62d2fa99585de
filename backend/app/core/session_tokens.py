"""Onboarding session cookie and possession-token helpers.

Pipeline:
- new_session_key / create_session_token / set_session_cookie: issue the
  signed cookie that scopes the progress cache and MFA state to one browser
- decode_session_token: verify the cookie on every onboarding request
- generate_invite_token / hash_token: possession tokens for admin
  pre-created profiles; only the SHA-256 digest is stored
"""

import hashlib
import logging
import secrets
from datetime import UTC, datetime, timedelta

import jwt
from fastapi import Response

from app.core.config import settings

logger = logging.getLogger(__name__)

_AUDIENCE = "talent-onboarding"

# 256 bits of entropy for session keys and invite tokens
_TOKEN_BYTES = 32


def new_session_key() -> str:
    """Generate an opaque onboarding session key."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def create_session_token(
    *,
    session_key: str,
    secret: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed JWT carrying the onboarding session key.

    Args:
        session_key: Opaque key for the progress cache and MFA state.
        secret: HMAC signing secret.
        expires_delta: Time until expiration. Defaults to the configured
            onboarding session lifetime.

    Returns:
        Encoded JWT string.
    """
    now = datetime.now(UTC)
    lifetime = expires_delta or timedelta(hours=settings.onboarding_session_hours)
    payload = {
        "sub": session_key,
        "aud": _AUDIENCE,
        "iss": settings.auth_issuer,
        "exp": now + lifetime,
        "iat": now,
    }
    return jwt.encode(payload, secret, algorithm="HS256")


def decode_session_token(token: str, secret: str) -> str | None:
    """Verify a session cookie and return its session key.

    Args:
        token: Encoded JWT from the cookie.
        secret: HMAC signing secret.

    Returns:
        The session key, or None for any invalid, expired or foreign token.
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=_AUDIENCE,
            issuer=settings.auth_issuer,
        )
    except jwt.InvalidTokenError:
        logger.debug("Rejected onboarding session token")
        return None

    session_key = payload.get("sub")
    if not isinstance(session_key, str) or not session_key:
        return None
    return session_key


def set_session_cookie(response: Response, token: str) -> None:
    """Set the httpOnly onboarding session cookie on a response.

    Args:
        response: FastAPI response object.
        token: JWT token string.
    """
    response.set_cookie(
        key=settings.auth_cookie_name,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path="/",
        max_age=settings.onboarding_session_hours * 3600,
        domain=settings.auth_cookie_domain or None,
    )


def clear_session_cookie(response: Response) -> None:
    """Remove the onboarding session cookie once onboarding is complete."""
    response.delete_cookie(
        key=settings.auth_cookie_name,
        path="/",
        domain=settings.auth_cookie_domain or None,
    )


def generate_invite_token() -> str:
    """Generate a plain invite token to embed in the invitation link."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """Return the SHA-256 hex digest stored in place of a possession token."""
    return hashlib.sha256(token.encode()).hexdigest()
