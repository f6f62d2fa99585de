"""Translate collaborator failures into user-facing API errors.

Provider adapters raise the taxonomy in app.providers.errors; onboarding
services return these API errors inside Err results.
"""

from app.core.config import settings
from app.core.errors import (
    APIError,
    ConfigurationError,
    CredentialsRejectedError,
    InvalidCodeError,
    MediaUploadError,
    TransientRemoteError,
    UnauthorizedError,
    ValidationError,
)
from app.providers.errors import (
    InvalidFactorCodeError,
    InvalidSessionError,
    ProviderError,
    SignInRejectedError,
    SmsUnavailableError,
    TransientError,
    UploadRejectedError,
)

SMS_UNAVAILABLE_MESSAGE = (
    "Text message verification is not available right now. "
    "Please use an authenticator app instead."
)


def to_api_error(operation: str, error: ProviderError) -> APIError:
    """Map a provider error to the API error the client should see.

    Args:
        operation: Collaborator call that failed (for retry details).
        error: The provider error.

    Returns:
        APIError subclass instance (does not raise).
    """
    if isinstance(error, TransientError):
        return TransientRemoteError(operation)
    if isinstance(error, SignInRejectedError):
        return CredentialsRejectedError(error.reason)
    if isinstance(error, InvalidSessionError):
        return UnauthorizedError("Your session has expired. Please sign in again.")
    if isinstance(error, SmsUnavailableError):
        return ConfigurationError(
            SMS_UNAVAILABLE_MESSAGE,
            fallback_after_seconds=settings.sms_fallback_delay_seconds,
        )
    if isinstance(error, InvalidFactorCodeError):
        return InvalidCodeError()
    if isinstance(error, UploadRejectedError):
        return MediaUploadError(error.reason)
    return ValidationError(str(error))
