"""Rate limiting configuration using slowapi.

Limits the identity endpoints (credential guessing through the
transparent-link sign-in) and the handle probe (handle enumeration).
Requests carrying a valid onboarding session cookie are keyed per session;
everything else falls back to the client IP.

Usage in routers:
    from app.core.rate_limiting import limiter

    @router.post("/identity")
    @limiter.limit(settings.rate_limit_identity)
    async def submit_identity(request: Request, ...):
        ...
"""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.core.config import settings
from app.core.session_tokens import decode_session_token


def _rate_limit_key_func(request: Request) -> str:
    """Get rate limit key from request.

    Key format:
    - Valid onboarding session cookie: "session:{key}"
    - No/invalid cookie: "anon:{ip}"

    Args:
        request: The incoming request.

    Returns:
        Rate limit key string.
    """
    token = request.cookies.get(settings.auth_cookie_name)
    if token:
        session_key = decode_session_token(
            token, settings.auth_secret.get_secret_value()
        )
        if session_key is not None:
            return f"session:{session_key}"

    return f"anon:{get_remote_address(request)}"


# In-memory storage (single-instance deployment)
limiter = Limiter(
    key_func=_rate_limit_key_func,
    enabled=settings.rate_limit_enabled,
)


def rate_limit_exceeded_handler(
    _request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns 429 Too Many Requests with the standard error envelope.

    Args:
        request: The incoming request.
        exc: The rate limit exception.

    Returns:
        JSONResponse with 429 status and retry-after header.
    """
    # detail looks like "10 per 1 minute"; fall back to 60 seconds
    try:
        retry_after = str(exc.detail.split()[-1])
        int(retry_after.rstrip("s"))
    except (ValueError, AttributeError, IndexError):
        retry_after = "60"

    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Rate limit exceeded: {exc.detail}",
            }
        },
        headers={"Retry-After": retry_after},
    )
