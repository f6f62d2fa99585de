"""Onboarding API router.

Endpoints (all under /api/v1/onboarding):
- GET  /state                        Resume and return the current view
- GET  /steps/{step}                 Back-navigation view of a step
- POST /identity                     Identity step (self signup)
- POST /invites/{token}/identity     Identity step for invited talent
- PUT  /steps/profile                Profile step
- PUT  /steps/monetization           Monetization policy step
- PUT  /steps/media                  Media step (multipart upload)
- GET  /handle-availability          Debounced handle check
- POST /security/...                 MFA enrollment (Security step)
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, File, Path, Query, Request, Response, UploadFile
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import Context, Handles, MFAEngine, Orchestrator, Profiles
from app.core.config import settings
from app.core.errors import ValidationError
from app.core.file_validation import (
    read_file_with_size_limit,
    sanitize_filename,
    validate_video_content,
)
from app.core.rate_limiting import limiter
from app.core.responses import DataResponse
from app.core.results import unwrap
from app.core.session_tokens import clear_session_cookie
from app.schemas.mfa import (
    MethodSelectRequest,
    MFAStrategy,
    MFAView,
    PhoneSubmitRequest,
    VerifyCodeRequest,
)
from app.schemas.onboarding import (
    HandleAvailability,
    IdentityPayload,
    MediaPayload,
    MonetizationPayload,
    OnboardingStep,
    OnboardingView,
    ProfilePayload,
    StepAccepted,
    StepView,
)

logger = structlog.get_logger()

router = APIRouter()


# =============================================================================
# State and back navigation
# =============================================================================


@router.get("/state")
async def get_state(
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[OnboardingView]:
    """Resume onboarding for this session.

    The profile store wins over the local progress snapshot.
    """
    return DataResponse(data=unwrap(await orchestrator.resume(ctx)))


@router.get("/steps/{step}")
async def get_step(
    step: Annotated[int, Path(ge=OnboardingStep.IDENTITY, le=OnboardingStep.DONE)],
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[StepView]:
    """Re-display a completed (or the current) step."""
    view = await orchestrator.view_step(ctx, OnboardingStep(step))
    return DataResponse(data=unwrap(view))


# =============================================================================
# Identity step
# =============================================================================


@router.post("/identity")
@limiter.limit(settings.rate_limit_identity)
async def submit_identity(
    request: Request,  # noqa: ARG001
    payload: IdentityPayload,
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[StepAccepted]:
    """Create or link the talent's account.

    An email that is already registered is signed in with the same
    password and linked; a wrong password answers 409 LOGIN_INSTEAD.
    """
    accepted = await orchestrator.submit_step(ctx, payload)
    return DataResponse(data=unwrap(accepted))


@router.post("/invites/{token}/identity")
@limiter.limit(settings.rate_limit_identity)
async def submit_invited_identity(
    request: Request,  # noqa: ARG001
    token: Annotated[str, Path(min_length=16, max_length=128)],
    payload: IdentityPayload,
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[StepAccepted]:
    """Identity step for a profile pre-created by an administrator."""
    accepted = await orchestrator.submit_step(ctx, payload, invite_token=token)
    return DataResponse(data=unwrap(accepted))


# =============================================================================
# Profile, monetization and media steps
# =============================================================================


@router.put("/steps/profile")
async def submit_profile(
    payload: ProfilePayload,
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[StepAccepted]:
    """Save the public profile. A taken handle answers 409 HANDLE_TAKEN."""
    accepted = await orchestrator.submit_step(ctx, payload)
    return DataResponse(data=unwrap(accepted))


@router.put("/steps/monetization")
async def submit_monetization(
    payload: MonetizationPayload,
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[StepAccepted]:
    """Save the charity donation policy."""
    accepted = await orchestrator.submit_step(ctx, payload)
    return DataResponse(data=unwrap(accepted))


@router.put("/steps/media")
async def submit_media(
    file: Annotated[UploadFile, File(...)],
    ctx: Context,
    orchestrator: Orchestrator,
) -> DataResponse[StepAccepted]:
    """Upload the introductory video.

    The content type is detected from the file's magic bytes; the type the
    client declares is ignored.

    Raises:
        ValidationError: If the file is empty, too large or not a video.
    """
    content = await read_file_with_size_limit(file, settings.media_max_size_bytes)
    filename = sanitize_filename(file.filename or "promo-video")
    content_type = validate_video_content(content, filename)

    try:
        payload = MediaPayload(
            filename=filename, content_type=content_type, content=content
        )
    except PydanticValidationError as e:
        logger.warning("media_payload_rejected", error_count=len(e.errors()))
        raise ValidationError(
            "Invalid video upload",
            details=[{"field": "file", "error": err["msg"]} for err in e.errors()],
        ) from e

    logger.info(
        "media_upload_received",
        content_type=content_type,
        size_bytes=len(content),
    )
    accepted = await orchestrator.submit_step(ctx, payload)
    return DataResponse(data=unwrap(accepted))


# =============================================================================
# Handle availability
# =============================================================================


@router.get("/handle-availability")
@limiter.limit(settings.rate_limit_handle_check)
async def check_handle_availability(
    request: Request,  # noqa: ARG001
    handle: Annotated[str, Query(max_length=64)],
    ctx: Context,
    profiles: Profiles,
    handles: Handles,
) -> DataResponse[HandleAvailability]:
    """Debounced availability check for the handle input.

    A newer request from the same session supersedes this one, which then
    answers with status "superseded".
    """
    exclude = None
    if ctx.user_id is not None:
        own = await profiles.get_profile(user_id=ctx.user_id)
        exclude = own.id if own else None

    result = await handles.check_available(
        handle, profiles, exclude, field_key=ctx.session_key
    )
    return DataResponse(data=result)


# =============================================================================
# Security step (MFA enrollment)
# =============================================================================


def _finished(response: Response, view: MFAView) -> DataResponse[MFAView]:
    if view.onboarding_completed:
        clear_session_cookie(response)
    return DataResponse(data=view)


@router.post("/security/enter")
async def security_enter(
    response: Response,
    ctx: Context,
    engine: MFAEngine,
) -> DataResponse[MFAView]:
    """Enter the Security step.

    A talent who already has a verified factor completes onboarding here
    without enrolling again.
    """
    return _finished(response, unwrap(await engine.enter(ctx)))


@router.post("/security/begin")
async def security_begin(ctx: Context, engine: MFAEngine) -> DataResponse[MFAView]:
    """Leave the intro screen for method selection."""
    return DataResponse(data=unwrap(await engine.begin(ctx)))


@router.post("/security/method")
async def security_select_method(
    body: MethodSelectRequest,
    ctx: Context,
    engine: MFAEngine,
) -> DataResponse[MFAView]:
    """Choose an authenticator app or a phone."""
    view = await engine.select_method(ctx, MFAStrategy(body.strategy))
    return DataResponse(data=unwrap(view))


@router.post("/security/phone")
async def security_submit_phone(
    body: PhoneSubmitRequest,
    ctx: Context,
    engine: MFAEngine,
) -> DataResponse[MFAView]:
    """Enroll a phone and send the first code.

    When SMS is not configured this answers 503 SMS_UNAVAILABLE and the
    engine is already back at method selection.
    """
    view = await engine.submit_phone(ctx, body.phone_number)
    return DataResponse(data=unwrap(view))


@router.post("/security/qr-scanned")
async def security_qr_scanned(ctx: Context, engine: MFAEngine) -> DataResponse[MFAView]:
    """Move from the QR code to code entry."""
    return DataResponse(data=unwrap(await engine.confirm_qr_scanned(ctx)))


@router.post("/security/verify")
async def security_verify(
    body: VerifyCodeRequest,
    response: Response,
    ctx: Context,
    engine: MFAEngine,
) -> DataResponse[MFAView]:
    """Verify the 6-digit code and finish onboarding."""
    return _finished(response, unwrap(await engine.verify(ctx, body.code)))


@router.post("/security/resend")
async def security_resend(ctx: Context, engine: MFAEngine) -> DataResponse[MFAView]:
    """Send a new SMS code (advisory cooldown applies)."""
    return DataResponse(data=unwrap(await engine.resend(ctx)))


@router.post("/security/cancel")
async def security_cancel(ctx: Context, engine: MFAEngine) -> DataResponse[MFAView]:
    """Abandon the pending enrollment and return to method selection."""
    return DataResponse(data=unwrap(await engine.cancel(ctx)))


@router.post("/security/skip")
async def security_skip(
    response: Response,
    ctx: Context,
    engine: MFAEngine,
) -> DataResponse[MFAView]:
    """Finish without a second factor, where the policy allows it."""
    return _finished(response, unwrap(await engine.skip(ctx)))
