import socket
import uuid
from collections.abc import AsyncGenerator, Iterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from app.core.config import settings
from app.core.rate_limiting import limiter
from app.models.base import Base
from app.providers import factory
from app.providers.identity.mock_adapter import MockIdentityStore
from app.providers.media.mock_adapter import MockMediaStore
from app.services.handle_availability import (
    HandleAvailabilityChecker,
    reset_handle_checker,
)
from app.services.mfa_enrollment import reset_mfa_state_store
from app.services.progress_cache import reset_progress_cache
from tests.fakes import InMemoryProfileStore

# Use separate test database
TEST_DATABASE_URL = settings.database_url.replace(
    settings.database_name, f"{settings.database_name}_test"
)

# Valid identity-step input shared across tests
TEST_EMAIL = "talent@example.com"
TEST_PASSWORD = "correct-horse"  # nosec B105
TEST_DISPLAY_NAME = "Jane Talent"

# Fixed ids for predictable assertions
TEST_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
OTHER_USER_ID = uuid.UUID("00000000-0000-0000-0000-000000000002")

# Long enough to pass the configured bio minimum
TEST_BIO = (
    "Award-winning comedian and podcast host who loves making personalised "
    "videos for fans."
)


def profile_step_body(**overrides: object) -> dict:
    """JSON body for a valid Profile step."""
    body: dict = {
        "step": 2,
        "full_name": TEST_DISPLAY_NAME,
        "handle": "jane-talent",
        "bio": TEST_BIO,
        "categories": ["Comedy"],
        "offering_types": ["birthday", "roast"],
        "price_usd": 75,
        "fulfillment_time_hours": 72,
    }
    body.update(overrides)
    return body


def _is_postgres_available() -> bool:
    """Check if PostgreSQL is accepting connections.

    Returns:
        True if PostgreSQL is reachable on port 5432, False otherwise.
    """
    try:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(1)
        result = sock.connect_ex(("127.0.0.1", 5432))
        sock.close()
        return result == 0
    except OSError:
        return False


# Check once at module load time
_POSTGRES_AVAILABLE = _is_postgres_available()


def skip_if_no_postgres() -> None:
    """Skip test if PostgreSQL is not available.

    Called by fixtures that require database connection.
    """
    if not _POSTGRES_AVAILABLE:
        pytest.skip(
            "PostgreSQL not available on port 5432. "
            "Start database with: docker compose up -d"
        )


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine.

    Skips test if PostgreSQL is not available (e.g., Docker not running).
    """
    skip_if_no_postgres()

    engine = create_async_engine(TEST_DATABASE_URL, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


# =============================================================================
# Singletons
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_singletons() -> Iterator[None]:
    """Isolate in-memory state between tests."""
    yield
    factory.reset_providers()
    reset_progress_cache()
    reset_mfa_state_store()
    reset_handle_checker()
    limiter.reset()


@pytest.fixture
def mock_identity() -> Iterator[MockIdentityStore]:
    """Mock identity store injected into the provider factory.

    Yields:
        MockIdentityStore instance.
    """
    mock = MockIdentityStore()

    # Inject mock into factory singleton
    factory._identity_store = mock

    yield mock

    # Reset after test
    factory.reset_providers()


@pytest.fixture
def mock_media() -> Iterator[MockMediaStore]:
    """Mock media store injected into the provider factory.

    Yields:
        MockMediaStore instance.
    """
    mock = MockMediaStore()
    factory._media_store = mock
    yield mock
    factory.reset_providers()


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    """Empty in-memory profile store."""
    return InMemoryProfileStore()


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest_asyncio.fixture
async def client(
    mock_identity: MockIdentityStore,  # noqa: ARG001 - injected into factory
    mock_media: MockMediaStore,  # noqa: ARG001 - injected into factory
    profile_store: InMemoryProfileStore,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for onboarding API tests.

    Sets up:
    - In-memory profile store via dependency override
    - Mock identity and media stores via the provider factory
    - A handle checker without debounce
    - Rate limiting disabled

    The client keeps cookies, so the onboarding session key persists
    across requests like it would in a browser.

    Yields:
        Configured AsyncClient.
    """
    from app.api.deps import get_handles, get_profile_store
    from app.main import app

    checker = HandleAvailabilityChecker(debounce_seconds=0)
    app.dependency_overrides[get_profile_store] = lambda: profile_store
    app.dependency_overrides[get_handles] = lambda: checker

    original_limiter_enabled = limiter.enabled
    limiter.enabled = False

    # https so the Secure session cookie round-trips
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="https://test") as ac:
        yield ac

    # Cleanup
    limiter.enabled = original_limiter_enabled
    app.dependency_overrides.clear()
