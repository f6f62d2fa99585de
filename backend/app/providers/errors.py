"""Provider error taxonomy.

Adapters for the identity and media stores map their transport and API
failures to these classes; onboarding services translate them into the
user-facing errors in app.core.errors.
"""


__all__ = [
    "ProviderError",
    "TransientError",
    "AlreadyRegisteredError",
    "SignInRejectedError",
    "InvalidSessionError",
    "SmsUnavailableError",
    "InvalidFactorCodeError",
    "UploadRejectedError",
]


class ProviderError(Exception):
    """Base class for all provider errors.

    All provider-specific exceptions inherit from this class, so callers
    can catch every provider failure with a single handler.
    """

    pass


class TransientError(ProviderError):
    """Temporary failure (network, timeout, 5xx, 429). Safe to retry."""

    pass


class AlreadyRegisteredError(ProviderError):
    """Account creation refused because the email is already registered."""

    pass


class SignInRejectedError(ProviderError):
    """Password sign-in refused.

    Attributes:
        reason: "invalid_credentials" or "email_not_confirmed".
    """

    def __init__(self, message: str, reason: str = "invalid_credentials") -> None:
        """Initialize SignInRejectedError.

        Args:
            message: Error description from the provider.
            reason: Machine-readable rejection reason.
        """
        super().__init__(message)
        self.reason = reason


class InvalidSessionError(ProviderError):
    """Access token missing, expired or revoked."""

    pass


class SmsUnavailableError(ProviderError):
    """Phone factors cannot be used because SMS delivery is not configured."""

    pass


class InvalidFactorCodeError(ProviderError):
    """Verification code rejected (wrong or expired)."""

    pass


class UploadRejectedError(ProviderError):
    """Media store refused the upload.

    Attributes:
        reason: Short machine-readable reason (e.g. "too_large").
    """

    def __init__(self, message: str, reason: str = "rejected") -> None:
        """Initialize UploadRejectedError.

        Args:
            message: Error description from the media store.
            reason: Machine-readable rejection reason.
        """
        super().__init__(message)
        self.reason = reason
