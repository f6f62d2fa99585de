"""Response envelope models.

Every success body is ``{"data": ...}`` and every failure body is
``{"error": {"code", "message", "details"}}`` so clients can branch on the
error code (HANDLE_TAKEN, LOGIN_INSTEAD, SMS_UNAVAILABLE, ...) without
parsing messages.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Standard response envelope for single resources.

    Usage:
        @router.get("/state")
        async def get_state(...) -> DataResponse[OnboardingView]:
            view = await orchestrator.resume(ctx)
            return DataResponse(data=view)
    """

    data: T


class ErrorDetail(BaseModel):
    """Error detail for response body.

    Attributes:
        code: Machine-readable error code (e.g., "HANDLE_TAKEN").
        message: Human-readable error message.
        details: Optional list of field-level errors or retry hints.
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    """Standard error response envelope.

    Usage in exception handlers:
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(
                error=ErrorDetail(code=exc.code, message=exc.message)
            ).model_dump(),
        )
    """

    error: ErrorDetail
