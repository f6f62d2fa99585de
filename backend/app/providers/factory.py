"""Provider factory functions.

Singleton pattern for identity and media store instances. The first call
builds the adapter selected in settings; tests inject mocks by assigning
the module-level singletons and call reset_providers() afterwards.
"""

from app.core.config import Settings, settings
from app.providers.identity.base import IdentityStore
from app.providers.identity.gotrue_adapter import GoTrueIdentityStore
from app.providers.identity.mock_adapter import MockIdentityStore
from app.providers.media.base import MediaStore
from app.providers.media.http_adapter import HttpMediaStore
from app.providers.media.mock_adapter import MockMediaStore

_identity_store: IdentityStore | None = None
_media_store: MediaStore | None = None


def get_identity_store(config: Settings | None = None) -> IdentityStore:
    """Get or create the identity store singleton.

    Args:
        config: Optional settings override. Defaults to app settings.

    Returns:
        IdentityStore instance.

    Raises:
        ValueError: If the configured provider is unknown.
    """
    global _identity_store

    if _identity_store is None:
        config = config or settings
        if config.identity_provider == "gotrue":
            _identity_store = GoTrueIdentityStore(
                base_url=config.identity_api_url,
                api_key=config.identity_api_key.get_secret_value(),
                timeout=config.identity_timeout_seconds,
            )
        elif config.identity_provider == "mock":
            _identity_store = MockIdentityStore()
        else:
            raise ValueError(f"Unknown identity provider: {config.identity_provider}")

    return _identity_store


def get_media_store(config: Settings | None = None) -> MediaStore:
    """Get or create the media store singleton.

    Args:
        config: Optional settings override. Defaults to app settings.

    Returns:
        MediaStore instance.

    Raises:
        ValueError: If the configured provider is unknown.
    """
    global _media_store

    if _media_store is None:
        config = config or settings
        if config.media_provider == "http":
            _media_store = HttpMediaStore(
                upload_url=config.media_upload_url,
                api_key=config.media_api_key.get_secret_value(),
            )
        elif config.media_provider == "mock":
            _media_store = MockMediaStore()
        else:
            raise ValueError(f"Unknown media provider: {config.media_provider}")

    return _media_store


def reset_providers() -> None:
    """Reset provider singletons.

    Used in tests to ensure isolation between test cases.
    """
    global _identity_store, _media_store
    _identity_store = None
    _media_store = None


async def close_providers() -> None:
    """Close HTTP clients held by the provider singletons, then reset them."""
    for provider in (_identity_store, _media_store):
        aclose = getattr(provider, "aclose", None)
        if aclose is not None:
            await aclose()
    reset_providers()
