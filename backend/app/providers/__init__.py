"""Provider abstraction layer.

Exports:
    Error classes for provider error handling
    Factory functions for identity and media store instances
"""

from app.providers.errors import (
    AlreadyRegisteredError,
    InvalidFactorCodeError,
    InvalidSessionError,
    ProviderError,
    SignInRejectedError,
    SmsUnavailableError,
    TransientError,
    UploadRejectedError,
)
from app.providers.factory import get_identity_store, get_media_store

__all__ = [
    # Errors
    "ProviderError",
    "TransientError",
    "AlreadyRegisteredError",
    "SignInRejectedError",
    "InvalidSessionError",
    "SmsUnavailableError",
    "InvalidFactorCodeError",
    "UploadRejectedError",
    # Factory
    "get_identity_store",
    "get_media_store",
]
