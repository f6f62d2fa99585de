"""API error classes.

Every onboarding failure is one of five families, each mapped to an HTTP
status by the exception handlers in app.main:

- ValidationError: user-correctable, step not advanced, nothing written
- ConflictError: handle taken, already onboarded, log in instead
- TransientRemoteError: network/5xx from a collaborator, safe to retry
- ConfigurationError: collaborator misconfigured (e.g. SMS disabled),
  triggers the fallback transition instead of a dead end
- FatalBindingError: inconsistent user/profile binding, halts onboarding
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for payload validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when the onboarding session cookie or identity token is missing
    or invalid.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class HandleTakenError(ConflictError):
    """Public handle already belongs to another profile (409)."""

    def __init__(self, handle: str) -> None:
        self.handle = handle
        super().__init__(
            code="HANDLE_TAKEN",
            message=f"The handle '{handle}' is already taken. Please choose another.",
            details=[{"field": "handle", "error": "HANDLE_TAKEN"}],
        )


class AlreadyOnboardedError(ConflictError):
    """Identity already owns a completed talent profile (409).

    The caller should send the user to the authenticated dashboard.
    """

    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(
            code="ALREADY_ONBOARDED",
            message="This account has already completed onboarding.",
            details=[{"profile_id": profile_id}],
        )


class CredentialsRejectedError(ConflictError):
    """Email is registered but sign-in with the given password failed (409).

    Args:
        reason: "invalid_credentials" or "email_not_confirmed".
    """

    def __init__(self, reason: str) -> None:
        self.reason = reason
        if reason == "email_not_confirmed":
            message = (
                "This email is registered but not yet confirmed. "
                "Check your inbox, then log in."
            )
        else:
            message = "This email is already registered. Please log in instead."
        super().__init__(
            code="LOGIN_INSTEAD",
            message=message,
            details=[{"reason": reason}],
        )


class InvalidStateError(APIError):
    """Business rule violation (422).

    Use when request is syntactically valid but violates business rules.
    """

    def __init__(self, message: str, code: str = "INVALID_STATE_TRANSITION") -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=422,
        )


class StepOrderError(InvalidStateError):
    """Step submitted out of order (422)."""

    def __init__(self, step: int, completed_step: int) -> None:
        self.step = step
        self.completed_step = completed_step
        super().__init__(
            message=(
                f"Step {step} cannot be submitted while step {completed_step} "
                f"is the last completed step."
            ),
            code="STEP_OUT_OF_ORDER",
        )


class MFARequiredError(InvalidStateError):
    """Completion attempted without a verified factor under a required policy."""

    def __init__(self) -> None:
        super().__init__(
            message="A verified second factor is required to finish onboarding.",
            code="MFA_REQUIRED",
        )


class InvalidCodeError(APIError):
    """Verification code was rejected (400)."""

    def __init__(self, message: str = "Invalid verification code") -> None:
        super().__init__(
            code="INVALID_CODE",
            message=message,
            status_code=400,
            details=[{"field": "code", "error": "INVALID_CODE"}],
        )


class ResendCooldownError(APIError):
    """Resend requested inside the advisory cooldown window (429)."""

    def __init__(self, seconds_remaining: int) -> None:
        self.seconds_remaining = seconds_remaining
        super().__init__(
            code="RESEND_COOLDOWN",
            message=f"Please wait {seconds_remaining}s before requesting a new code.",
            status_code=429,
            details=[{"seconds_remaining": seconds_remaining}],
        )


class InviteNotFoundError(APIError):
    """Invitation token does not match any pending profile (404)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVITE_NOT_FOUND",
            message="This invitation link is invalid or has already been used.",
            status_code=404,
        )


class InviteExpiredError(APIError):
    """Invitation token is past its expiry (410)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVITE_EXPIRED",
            message="This invitation link has expired. Ask for a new one.",
            status_code=410,
        )


class TransientRemoteError(APIError):
    """A collaborator call failed in a retryable way (503).

    Every write is an idempotent upsert keyed by profile id, so the client
    may repeat the same request.
    """

    def __init__(self, operation: str, message: str | None = None) -> None:
        self.operation = operation
        super().__init__(
            code="TRANSIENT_REMOTE_ERROR",
            message=message or "A temporary error occurred. Please try again.",
            status_code=503,
            details=[{"operation": operation, "retryable": True}],
        )


class ConfigurationError(APIError):
    """A collaborator capability is not configured (503).

    Raised for SMS delivery being unavailable; the MFA engine returns to
    method selection and the client shows the message for
    fallback_after_seconds before switching screens.
    """

    def __init__(self, message: str, fallback_after_seconds: int) -> None:
        self.fallback_after_seconds = fallback_after_seconds
        super().__init__(
            code="SMS_UNAVAILABLE",
            message=message,
            status_code=503,
            details=[
                {
                    "fallback": "method_select",
                    "fallback_after_seconds": fallback_after_seconds,
                }
            ],
        )


class MediaUploadError(APIError):
    """Media store rejected or failed the upload (502)."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(
            code="MEDIA_UPLOAD_FAILED",
            message="The video could not be uploaded. Please try again.",
            status_code=502,
            details=[{"reason": reason}],
        )


class FatalBindingError(APIError):
    """User and profile binding is inconsistent (500).

    Onboarding halts for the session and requires support intervention.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="FATAL_BINDING",
            message=(
                "Your onboarding cannot continue automatically. "
                "Please contact support."
            ),
            status_code=500,
        )
        self.internal_message = message


class InternalError(APIError):
    """Unexpected server error (500).

    Use for unhandled exceptions. Never expose stack traces to clients.
    """

    def __init__(self, message: str = "An unexpected error occurred") -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
