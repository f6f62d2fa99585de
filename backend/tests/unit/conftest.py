"""Shared fixtures for onboarding service tests.

Services are wired to the in-memory profile store and the mock identity
and media stores from the top-level conftest; nothing here needs a
database.
"""

from unittest.mock import AsyncMock

import pytest

from app.core.config import settings
from app.providers.identity.mock_adapter import MockIdentityStore
from app.providers.media.mock_adapter import MockMediaStore
from app.services.completion_gate import CompletionGate
from app.services.handle_availability import HandleAvailabilityChecker
from app.services.mfa_enrollment import MFAEnrollmentEngine, MFAStateStore
from app.services.onboarding_context import OnboardingContext
from app.services.onboarding_orchestrator import OnboardingOrchestrator
from app.services.progress_cache import ProgressCache
from tests.conftest import TEST_DISPLAY_NAME, TEST_EMAIL, TEST_PASSWORD
from tests.fakes import FakeClock, InMemoryProfileStore
from tests.flows import SESSION_KEY


@pytest.fixture
def cache() -> ProgressCache:
    return ProgressCache()


@pytest.fixture
def handle_checker() -> HandleAvailabilityChecker:
    """Checker without a debounce window."""
    return HandleAvailabilityChecker(debounce_seconds=0)


@pytest.fixture
def orchestrator(
    mock_identity: MockIdentityStore,
    mock_media: MockMediaStore,
    profile_store: InMemoryProfileStore,
    cache: ProgressCache,
    handle_checker: HandleAvailabilityChecker,
) -> OnboardingOrchestrator:
    return OnboardingOrchestrator(
        identity=mock_identity,
        profiles=profile_store,
        media=mock_media,
        cache=cache,
        handle_checker=handle_checker,
    )


@pytest.fixture
def completion_hook() -> AsyncMock:
    """Stand-in for the admin notification email."""
    return AsyncMock()


@pytest.fixture
def gate(
    profile_store: InMemoryProfileStore,
    cache: ProgressCache,
    completion_hook: AsyncMock,
) -> CompletionGate:
    return CompletionGate(profile_store, cache, hook=completion_hook)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mfa_engine(
    mock_identity: MockIdentityStore,
    profile_store: InMemoryProfileStore,
    gate: CompletionGate,
    clock: FakeClock,
) -> MFAEnrollmentEngine:
    return MFAEnrollmentEngine(
        identity=mock_identity,
        profiles=profile_store,
        gate=gate,
        states=MFAStateStore(),
        clock=clock,
        resend_cooldown_seconds=60,
    )


@pytest.fixture
def self_signup_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin the entry-point MFA policy regardless of environment."""
    monkeypatch.setattr(settings, "mfa_required_self_signup", False)
    monkeypatch.setattr(settings, "mfa_required_invited", True)


@pytest.fixture
async def talent_at_security(
    mock_identity: MockIdentityStore,
    profile_store: InMemoryProfileStore,
    self_signup_policy: None,  # noqa: ARG001
) -> OnboardingContext:
    """A self-signup talent who finished the media step.

    Returns:
        Authenticated context for the talent's onboarding session.
    """
    account = await mock_identity.create_account(TEST_EMAIL, TEST_PASSWORD)
    profile_store.add_profile(
        user_id=account.user_id,
        completed_step=4,
        full_name=TEST_DISPLAY_NAME,
        handle="jane-talent",
    )
    await profile_store.upsert_identity_metadata(
        account.user_id, email=TEST_EMAIL, full_name=TEST_DISPLAY_NAME
    )
    mock_identity.calls.clear()
    profile_store.calls.clear()
    return OnboardingContext(session_key=SESSION_KEY, identity=account.session)
