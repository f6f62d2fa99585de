"""Shared dependencies for onboarding endpoints.

Two credentials travel with every onboarding request:
- the onboarding session cookie (signed JWT carrying an opaque session
  key), issued on first contact, which scopes the progress cache and the
  MFA enrollment state
- the identity session, sent as ``Authorization: Bearer <access token>``
  once the identity step has run, and resolved through the identity store

Services are built per request from the provider singletons and a
request-scoped database session, so tests can override any layer.
"""

from typing import Annotated

from fastapi import Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import TransientRemoteError, UnauthorizedError
from app.core.session_tokens import (
    create_session_token,
    decode_session_token,
    new_session_key,
    set_session_cookie,
)
from app.providers.errors import ProviderError, TransientError
from app.providers.factory import get_identity_store, get_media_store
from app.providers.identity.base import IdentitySession, IdentityStore
from app.providers.media.base import MediaStore
from app.services.completion_gate import CompletionGate
from app.services.handle_availability import (
    HandleAvailabilityChecker,
    get_handle_checker,
)
from app.services.mfa_enrollment import MFAEnrollmentEngine, get_mfa_state_store
from app.services.onboarding_context import OnboardingContext
from app.services.onboarding_orchestrator import OnboardingOrchestrator
from app.services.profile_store import ProfileStore, SqlProfileStore
from app.services.progress_cache import get_progress_cache

_BEARER_PREFIX = "bearer "

# Generic 401 message; never say why a token was rejected.
_SESSION_EXPIRED = "Your session has expired. Please sign in again."


# =============================================================================
# Providers and stores
# =============================================================================


def get_identity() -> IdentityStore:
    """Identity store singleton."""
    return get_identity_store()


def get_media() -> MediaStore:
    """Media store singleton."""
    return get_media_store()


def get_profile_store(
    db: Annotated[AsyncSession, Depends(get_db)],
) -> ProfileStore:
    """Profile store bound to the request's database session."""
    return SqlProfileStore(db)


def get_handles() -> HandleAvailabilityChecker:
    """Handle availability checker singleton."""
    return get_handle_checker()


# =============================================================================
# Request context
# =============================================================================


def get_session_key(request: Request, response: Response) -> str:
    """Read the onboarding session key, issuing a new cookie if needed.

    A missing, expired or tampered cookie starts a fresh session; the
    identity step can always re-link the account.
    """
    secret = settings.auth_secret.get_secret_value()
    token = request.cookies.get(settings.auth_cookie_name)
    session_key = decode_session_token(token, secret) if token else None
    if session_key is None:
        session_key = new_session_key()
        set_session_cookie(
            response, create_session_token(session_key=session_key, secret=secret)
        )
    return session_key


async def get_identity_session(
    request: Request,
    identity: Annotated[IdentityStore, Depends(get_identity)],
) -> IdentitySession | None:
    """Resolve the Bearer access token to an identity session.

    Returns:
        IdentitySession, or None when no Authorization header is sent.

    Raises:
        UnauthorizedError: The token is malformed or rejected.
        TransientRemoteError: The identity store is unreachable.
    """
    header = request.headers.get("Authorization")
    if not header:
        return None
    if not header.lower().startswith(_BEARER_PREFIX):
        raise UnauthorizedError()
    access_token = header[len(_BEARER_PREFIX) :].strip()
    if not access_token:
        raise UnauthorizedError()

    try:
        user_id = await identity.get_user_id(access_token)
    except TransientError as e:
        raise TransientRemoteError("get_user") from e
    except ProviderError as e:
        raise UnauthorizedError(_SESSION_EXPIRED) from e
    return IdentitySession(access_token=access_token, user_id=user_id)


def get_onboarding_context(
    session_key: Annotated[str, Depends(get_session_key)],
    identity: Annotated[IdentitySession | None, Depends(get_identity_session)],
) -> OnboardingContext:
    """Explicit context passed into every onboarding service call."""
    return OnboardingContext(session_key=session_key, identity=identity)


# =============================================================================
# Services
# =============================================================================


def get_orchestrator(
    identity: Annotated[IdentityStore, Depends(get_identity)],
    profiles: Annotated[ProfileStore, Depends(get_profile_store)],
    media: Annotated[MediaStore, Depends(get_media)],
    handles: Annotated[HandleAvailabilityChecker, Depends(get_handles)],
) -> OnboardingOrchestrator:
    """Step orchestrator for this request."""
    return OnboardingOrchestrator(
        identity=identity,
        profiles=profiles,
        media=media,
        cache=get_progress_cache(),
        handle_checker=handles,
    )


def get_mfa_engine(
    identity: Annotated[IdentityStore, Depends(get_identity)],
    profiles: Annotated[ProfileStore, Depends(get_profile_store)],
) -> MFAEnrollmentEngine:
    """MFA enrollment engine for this request."""
    return MFAEnrollmentEngine(
        identity=identity,
        profiles=profiles,
        gate=CompletionGate(profiles, get_progress_cache()),
        states=get_mfa_state_store(),
    )


# Type aliases for cleaner endpoint signatures
Context = Annotated[OnboardingContext, Depends(get_onboarding_context)]
Profiles = Annotated[ProfileStore, Depends(get_profile_store)]
Handles = Annotated[HandleAvailabilityChecker, Depends(get_handles)]
Orchestrator = Annotated[OnboardingOrchestrator, Depends(get_orchestrator)]
MFAEngine = Annotated[MFAEnrollmentEngine, Depends(get_mfa_engine)]
