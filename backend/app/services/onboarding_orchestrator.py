"""Step orchestrator for talent onboarding.

Owns the linear step machine:

    Identity(1) -> Profile(2) -> MonetizationPolicy(3) -> Media(4)
        -> Security(5) -> Done

A step is accepted only when its payload validates, it is the next step or
a resubmit of the last completed one, and (for the Profile step) the handle
is free. Step data is committed to the profile store before the progress
cache snapshot is written, and the store wins whenever the two disagree.

Security is not submitted here; the MFA enrollment engine drives it and
the completion gate finishes onboarding.
"""

import uuid
from typing import Any

import structlog

from app.core.errors import (
    AlreadyOnboardedError,
    APIError,
    FatalBindingError,
    HandleTakenError,
    StepOrderError,
    TransientRemoteError,
    UnauthorizedError,
)
from app.core.results import Err, Ok, Result
from app.providers.errors import ProviderError
from app.providers.identity.base import IdentityStore
from app.providers.media.base import MediaFile, MediaStore
from app.schemas.onboarding import (
    IdentityPayload,
    MediaPayload,
    MonetizationPayload,
    OnboardingStep,
    OnboardingView,
    ProfilePayload,
    ProgressSnapshot,
    StepAccepted,
    StepPayload,
    StepView,
)
from app.services.account_resolver import AccountResolver, ResolutionStatus
from app.services.handle_availability import HandleAvailabilityChecker
from app.services.onboarding_context import OnboardingContext
from app.services.profile_store import ProfileRecord, ProfileStore
from app.services.progress_cache import ProgressCache
from app.services.remote_errors import to_api_error

logger = structlog.get_logger()

_UNAUTHENTICATED_MESSAGE = "Complete the identity step first."


class OnboardingOrchestrator:
    """Validates, persists and advances onboarding steps."""

    def __init__(
        self,
        *,
        identity: IdentityStore,
        profiles: ProfileStore,
        media: MediaStore,
        cache: ProgressCache,
        handle_checker: HandleAvailabilityChecker,
        resolver: AccountResolver | None = None,
    ) -> None:
        self._profiles = profiles
        self._media = media
        self._cache = cache
        self._handles = handle_checker
        self._resolver = resolver or AccountResolver(identity, profiles)

    # -------------------------------------------------------------------------
    # Snapshot handling
    # -------------------------------------------------------------------------

    def _halt(self, ctx: OnboardingContext, error: FatalBindingError) -> None:
        snapshot = self._cache.load(ctx.session_key) or ProgressSnapshot()
        snapshot.halted = True
        self._cache.save(ctx.session_key, snapshot)
        logger.error(
            "onboarding_halted",
            session_user_id=str(ctx.user_id) if ctx.user_id else None,
            reason=error.internal_message,
        )

    def _ensure_not_halted(self, ctx: OnboardingContext) -> ProgressSnapshot | None:
        snapshot = self._cache.load(ctx.session_key)
        if snapshot is not None and snapshot.halted:
            raise FatalBindingError("onboarding halted for this session")
        return snapshot

    def _save_snapshot(
        self, ctx: OnboardingContext, record: ProfileRecord
    ) -> ProgressSnapshot:
        return self._cache.save(
            ctx.session_key,
            ProgressSnapshot(
                completed_step=record.completed_step,
                profile_id=record.id,
                user_id=record.user_id,
                step_data=record.step_data(),
            ),
        )

    async def _reconcile(
        self, ctx: OnboardingContext
    ) -> tuple[ProfileRecord | None, ProgressSnapshot | None]:
        """Load the snapshot and overwrite it with what the store holds.

        Returns:
            Tuple of (profile record or None, reconciled snapshot or None).

        Raises:
            FatalBindingError: The session was halted earlier.
            TransientRemoteError: The store is unreachable.
        """
        snapshot = self._ensure_not_halted(ctx)
        if ctx.identity is None:
            return None, snapshot

        record = await self._profiles.get_profile(user_id=ctx.identity.user_id)

        if snapshot is not None:
            stale = (
                snapshot.user_id not in (None, ctx.identity.user_id)
                or (record is None and snapshot.profile_id is not None)
                or (record is not None and snapshot.profile_id not in (None, record.id))
            )
            if stale:
                logger.info("stale_snapshot_discarded", user_id=str(ctx.user_id))
                self._cache.clear(ctx.session_key)
                snapshot = None

        if record is None:
            return None, snapshot
        if record.onboarding_completed:
            self._cache.clear(ctx.session_key)
            return record, None
        return record, self._save_snapshot(ctx, record)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def resume(self, ctx: OnboardingContext) -> Result[OnboardingView]:
        """Rebuild the current view for a (re)loaded session.

        Raises:
            FatalBindingError: The session was halted earlier.
        """
        try:
            record, snapshot = await self._reconcile(ctx)
        except TransientRemoteError as e:
            return Err(e)

        if record is None:
            return Ok(
                OnboardingView(
                    current_step=OnboardingStep.IDENTITY,
                    completed_step=0,
                    user_id=ctx.user_id,
                )
            )
        if record.onboarding_completed:
            return Ok(
                OnboardingView(
                    current_step=OnboardingStep.DONE,
                    completed_step=record.completed_step,
                    profile_id=record.id,
                    user_id=record.user_id,
                    onboarding_completed=True,
                    step_data=record.step_data(),
                )
            )
        return Ok(
            OnboardingView(
                current_step=OnboardingStep(record.completed_step + 1),
                completed_step=record.completed_step,
                profile_id=record.id,
                user_id=record.user_id,
                step_data=snapshot.step_data if snapshot else record.step_data(),
            )
        )

    async def view_step(
        self, ctx: OnboardingContext, step: OnboardingStep
    ) -> Result[StepView]:
        """Re-display a step's persisted data (back navigation).

        Any step up to completed_step + 1 may be viewed; viewing never
        discards progress ahead of it.
        """
        try:
            record, _ = await self._reconcile(ctx)
        except TransientRemoteError as e:
            return Err(e)

        completed = record.completed_step if record else 0
        finished = record is not None and record.onboarding_completed
        if step == OnboardingStep.DONE:
            if not finished:
                return Err(StepOrderError(step, completed))
            return Ok(StepView(step=step, editable=False))
        if not finished and step > completed + 1:
            return Err(StepOrderError(step, completed))

        data: dict[str, Any] | None = None
        if record is not None:
            step_data = record.step_data()
            if step == OnboardingStep.IDENTITY:
                data = {"user_id": str(record.user_id), "full_name": record.full_name}
            elif step == OnboardingStep.PROFILE and step_data.profile:
                data = step_data.profile.model_dump()
            elif (
                step == OnboardingStep.MONETIZATION_POLICY
                and step_data.monetization_policy
            ):
                data = step_data.monetization_policy.model_dump()
            elif step == OnboardingStep.MEDIA and step_data.media:
                data = step_data.media.model_dump()

        if step == OnboardingStep.IDENTITY:
            editable = completed == 0
        else:
            editable = not finished and step >= completed
        return Ok(StepView(step=step, editable=editable, data=data))

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    async def submit_step(
        self,
        ctx: OnboardingContext,
        payload: StepPayload,
        *,
        invite_token: str | None = None,
    ) -> Result[StepAccepted]:
        """Validate, persist and advance one step.

        Args:
            ctx: Request context.
            payload: A parsed step payload variant.
            invite_token: Invitation possession token, identity step only.

        Returns:
            Ok(StepAccepted) or Err carrying the user-facing error.

        Raises:
            FatalBindingError: The identity step found an inconsistent
                binding, or the session was halted earlier.
        """
        if isinstance(payload, IdentityPayload):
            return await self._submit_identity(ctx, payload, invite_token)

        step = OnboardingStep(payload.step)
        if ctx.identity is None:
            return Err(UnauthorizedError(_UNAUTHENTICATED_MESSAGE))

        try:
            record, _ = await self._reconcile(ctx)
        except TransientRemoteError as e:
            return Err(e)

        if record is None:
            return Err(StepOrderError(step, 0))
        if record.onboarding_completed:
            return Err(AlreadyOnboardedError(str(record.id)))
        if step not in (record.completed_step, record.completed_step + 1):
            logger.info(
                "step_rejected",
                step=int(step),
                completed_step=record.completed_step,
                reason="out_of_order",
            )
            return Err(StepOrderError(step, record.completed_step))

        fields = await self._step_fields(record, payload)
        if isinstance(fields, Err):
            logger.info("step_rejected", step=int(step), reason=fields.error.code)
            return fields

        try:
            updated = await self._profiles.upsert_profile(record.id, fields.value, step)
        except APIError as e:
            logger.info("step_rejected", step=int(step), reason=e.code)
            return Err(e)

        self._save_snapshot(ctx, updated)
        logger.info(
            "step_accepted",
            step=int(step),
            profile_id=str(updated.id),
            completed_step=updated.completed_step,
        )
        return Ok(
            StepAccepted(
                step=step,
                completed_step=updated.completed_step,
                next_step=OnboardingStep(updated.completed_step + 1),
                profile_id=updated.id,
            )
        )

    async def _submit_identity(
        self,
        ctx: OnboardingContext,
        payload: IdentityPayload,
        invite_token: str | None,
    ) -> Result[StepAccepted]:
        self._ensure_not_halted(ctx)
        try:
            if invite_token is not None:
                result = await self._resolver.resolve_invited_account(
                    invite_token, payload.email, payload.password, payload.display_name
                )
            else:
                result = await self._resolver.resolve_or_create_account(
                    payload.email, payload.password, payload.display_name
                )
        except FatalBindingError as e:
            self._halt(ctx, e)
            raise

        if isinstance(result, Err):
            logger.info("identity_step_rejected", reason=result.error.code)
            return result
        resolved = result.value

        if resolved.status == ResolutionStatus.PENDING_CONFIRMATION:
            return Ok(
                StepAccepted(
                    step=OnboardingStep.IDENTITY,
                    completed_step=0,
                    next_step=OnboardingStep.IDENTITY,
                    resolution=resolved.status.value,
                )
            )

        record = resolved.profile
        if record is None:  # pragma: no cover - only pending has no profile
            msg = "resolved account has no profile"
            raise RuntimeError(msg)
        snapshot = self._save_snapshot(ctx, record)
        return Ok(
            StepAccepted(
                step=OnboardingStep.IDENTITY,
                completed_step=resolved.entry_step - 1,
                next_step=resolved.entry_step,
                profile_id=snapshot.profile_id,
                resolution=resolved.status.value,
                access_token=resolved.session.access_token if resolved.session else None,
            )
        )

    async def _step_fields(
        self, record: ProfileRecord, payload: StepPayload
    ) -> Result[dict[str, Any]]:
        """Columns a step writes, after any pre-write remote checks."""
        if isinstance(payload, ProfilePayload):
            availability = await self._handles.probe(
                payload.handle, self._profiles, exclude_profile_id=record.id
            )
            if availability.status == "taken":
                return Err(HandleTakenError(payload.handle))
            return Ok(payload.model_dump(exclude={"step"}))

        if isinstance(payload, MonetizationPayload):
            return Ok(payload.to_fields())

        if isinstance(payload, MediaPayload):
            url = await self._upload_media(record.id, payload)
            if isinstance(url, Err):
                return url
            return Ok({"promo_video_url": url.value})

        msg = f"Unsupported payload: {type(payload).__name__}"
        raise TypeError(msg)

    async def _upload_media(
        self, profile_id: uuid.UUID, payload: MediaPayload
    ) -> Result[str]:
        try:
            uploaded = await self._media.upload(
                MediaFile(
                    filename=payload.filename,
                    content_type=payload.content_type,
                    content=payload.content,
                ),
                owner_id=str(profile_id),
            )
        except ProviderError as e:
            logger.warning("media_upload_failed", error_type=type(e).__name__)
            return Err(to_api_error("upload_media", e))
        return Ok(uploaded.url)
