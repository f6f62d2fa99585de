"""Onboarding step payloads, progress snapshot and view schemas.

Step payloads form a tagged union on ``step``:

    StepPayload = IdentityPayload | ProfilePayload
                | MonetizationPayload | MediaPayload

Each variant carries its own validators, so a payload that parses is
complete for its step. The Security step has no payload; it is driven by
the MFA enrollment engine.
"""

import re
import uuid
from datetime import datetime
from enum import IntEnum
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    TypeAdapter,
    field_validator,
    model_validator,
)

from app.core.config import settings
from app.core.file_validation import ALLOWED_VIDEO_MIMES

# =============================================================================
# Steps
# =============================================================================


class OnboardingStep(IntEnum):
    """Linear onboarding steps.

    completed_step on a profile is the value of the last finished step;
    DONE is never stored, it is derived from onboarding_completed.
    """

    IDENTITY = 1
    PROFILE = 2
    MONETIZATION_POLICY = 3
    MEDIA = 4
    SECURITY = 5
    DONE = 6


# =============================================================================
# Catalogues and normalization
# =============================================================================

OFFERING_TYPES: tuple[str, ...] = (
    "birthday",
    "express",
    "roast",
    "encouragement",
    "debate",
    "announcement",
    "celebrate",
    "advice",
    "corporate",
)
MAX_OFFERING_TYPES = 3

HANDLE_MIN_LENGTH = 3
HANDLE_MAX_LENGTH = 30
HANDLE_PATTERN = re.compile(r"^[a-z0-9-]+$")

BIO_MAX_LENGTH = 1000
MIN_FULFILLMENT_HOURS = 24
MAX_FULFILLMENT_HOURS = 168
DEFAULT_CHARITY_PERCENTAGE = 5


def normalize_handle(raw: str) -> str:
    """Handles are case-insensitive; compare and store them lowercased."""
    return raw.strip().lower()


def handle_format_error(handle: str) -> str | None:
    """Why a normalized handle can never be saved, or None if it can.

    Shared by the Profile step validator and the live availability check.
    """
    if not HANDLE_MIN_LENGTH <= len(handle) <= HANDLE_MAX_LENGTH:
        return (
            f"Handle must be {HANDLE_MIN_LENGTH}-{HANDLE_MAX_LENGTH} "
            "characters long"
        )
    if not HANDLE_PATTERN.match(handle):
        return "Handle may only contain lowercase letters, numbers and hyphens"
    return None


def _strip(v: Any) -> Any:
    return v.strip() if isinstance(v, str) else v


# =============================================================================
# Step payloads
# =============================================================================


class IdentityPayload(BaseModel):
    """Identity step: create the account or link an existing one.

    Contact info is never persisted on the profile; it goes to the identity
    store and the identity metadata record.
    """

    model_config = ConfigDict(extra="forbid")

    step: Literal[1] = 1
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128, repr=False)
    confirm_password: str | None = Field(default=None, repr=False)
    display_name: str = Field(..., min_length=1, max_length=255)

    @field_validator("display_name", mode="before")
    @classmethod
    def strip_display_name(cls, v: Any) -> Any:
        """Strip whitespace from display_name."""
        return _strip(v)

    @model_validator(mode="after")
    def passwords_match(self) -> "IdentityPayload":
        """Reject a confirmation that differs from the password."""
        mismatch = self.confirm_password not in (None, self.password)
        if mismatch:
            msg = "Passwords do not match"
            raise ValueError(msg)
        return self


class ProfilePayload(BaseModel):
    """Profile step: public profile, offerings and pricing."""

    model_config = ConfigDict(extra="forbid")

    step: Literal[2] = 2
    full_name: str = Field(..., min_length=1, max_length=255)
    handle: str
    bio: str = Field(..., max_length=BIO_MAX_LENGTH)
    categories: list[str] = Field(..., min_length=1, max_length=10)
    offering_types: list[str] = Field(..., min_length=1)
    price_usd: int
    fulfillment_time_hours: int = Field(
        default=settings.default_fulfillment_hours,
        ge=MIN_FULFILLMENT_HOURS,
        le=MAX_FULFILLMENT_HOURS,
    )
    avatar_url: str | None = Field(default=None, max_length=2048)

    @field_validator("full_name", "bio", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Any:
        """Strip surrounding whitespace from free-text fields."""
        return _strip(v)

    @field_validator("handle", mode="before")
    @classmethod
    def lowercase_handle(cls, v: Any) -> Any:
        """Strip and lowercase the handle before validation."""
        if isinstance(v, str):
            return normalize_handle(v)
        return v

    @field_validator("handle")
    @classmethod
    def validate_handle(cls, v: str) -> str:
        """Enforce handle length and character set."""
        error = handle_format_error(v)
        if error is not None:
            raise ValueError(error)
        return v

    @field_validator("bio")
    @classmethod
    def validate_bio_length(cls, v: str) -> str:
        """Bio must reach the configured minimum length."""
        if len(v) < settings.bio_min_length:
            msg = f"Bio must be at least {settings.bio_min_length} characters"
            raise ValueError(msg)
        return v

    @field_validator("categories")
    @classmethod
    def validate_categories(cls, v: list[str]) -> list[str]:
        """Drop blanks and duplicates, keeping order."""
        cleaned = list(dict.fromkeys(c.strip() for c in v if c.strip()))
        if not cleaned:
            msg = "Select at least one category"
            raise ValueError(msg)
        return cleaned

    @field_validator("offering_types")
    @classmethod
    def validate_offering_types(cls, v: list[str]) -> list[str]:
        """Offering types come from a fixed catalogue, at most three."""
        cleaned = list(dict.fromkeys(t.strip().lower() for t in v))
        unknown = [t for t in cleaned if t not in OFFERING_TYPES]
        if unknown:
            msg = f"Unknown offering types: {', '.join(unknown)}"
            raise ValueError(msg)
        if len(cleaned) > MAX_OFFERING_TYPES:
            msg = f"Select at most {MAX_OFFERING_TYPES} offering types"
            raise ValueError(msg)
        return cleaned

    @field_validator("price_usd")
    @classmethod
    def validate_price(cls, v: int) -> int:
        """Price must meet the platform minimum."""
        if v < settings.min_price_usd:
            msg = f"Price must be at least ${settings.min_price_usd}"
            raise ValueError(msg)
        return v


class MonetizationPayload(BaseModel):
    """Monetization policy step: optional charity share of earnings.

    With the toggle off the step is still submitted; it clears the charity
    fields so a later resubmit can switch donations off again.
    """

    model_config = ConfigDict(extra="forbid")

    step: Literal[3] = 3
    donate_to_charity: bool = False
    charity_name: str | None = Field(default=None, max_length=255)
    charity_percentage: int | None = Field(default=None, ge=0, le=100)

    @field_validator("charity_name", mode="before")
    @classmethod
    def strip_charity_name(cls, v: Any) -> Any:
        """Treat a blank charity name as missing."""
        v = _strip(v)
        return v or None

    @model_validator(mode="after")
    def apply_toggle(self) -> "MonetizationPayload":
        """Require a charity when donating; clear it when not."""
        if self.donate_to_charity:
            if not self.charity_name:
                msg = "charity_name is required when donating to charity"
                raise ValueError(msg)
            if self.charity_percentage is None:
                self.charity_percentage = DEFAULT_CHARITY_PERCENTAGE
            elif self.charity_percentage < 1:
                msg = "charity_percentage must be at least 1 when donating"
                raise ValueError(msg)
        else:
            self.charity_name = None
            self.charity_percentage = None
        return self

    def to_fields(self) -> dict[str, Any]:
        """Profile columns written by this step."""
        return {
            "charity_name": self.charity_name,
            "charity_percentage": self.charity_percentage or 0,
        }


class MediaPayload(BaseModel):
    """Media step: the introductory video.

    content_type is the type detected from magic bytes, not the type the
    client declared.
    """

    model_config = ConfigDict(extra="forbid")

    step: Literal[4] = 4
    filename: str = Field(..., min_length=1, max_length=255)
    content_type: str
    content: bytes = Field(..., repr=False)

    @field_validator("content_type")
    @classmethod
    def validate_content_type(cls, v: str) -> str:
        """Only video types the media store accepts."""
        if v not in ALLOWED_VIDEO_MIMES:
            msg = f"Unsupported video type: {v}"
            raise ValueError(msg)
        return v

    @field_validator("content")
    @classmethod
    def validate_size(cls, v: bytes) -> bytes:
        """Non-empty and within the configured upload limit."""
        if not v:
            msg = "Video file is empty"
            raise ValueError(msg)
        if len(v) > settings.media_max_size_bytes:
            msg = f"Video exceeds {settings.media_max_size_mb}MB"
            raise ValueError(msg)
        return v


StepPayload = Annotated[
    IdentityPayload | ProfilePayload | MonetizationPayload | MediaPayload,
    Field(discriminator="step"),
]

step_payload_adapter: TypeAdapter[StepPayload] = TypeAdapter(StepPayload)


# =============================================================================
# Persisted step data (what back-navigation and resumption re-display)
# =============================================================================


class ProfileStepData(BaseModel):
    """Profile step fields as persisted."""

    full_name: str | None = None
    handle: str | None = None
    bio: str | None = None
    categories: list[str] = Field(default_factory=list)
    offering_types: list[str] = Field(default_factory=list)
    price_usd: int | None = None
    fulfillment_time_hours: int | None = None
    avatar_url: str | None = None


class MonetizationStepData(BaseModel):
    """Monetization policy fields as persisted."""

    donate_to_charity: bool = False
    charity_name: str | None = None
    charity_percentage: int = 0


class MediaStepData(BaseModel):
    """Media step fields as persisted."""

    promo_video_url: str | None = None


class StepData(BaseModel):
    """Per-step data; each section is None until its step completes."""

    profile: ProfileStepData | None = None
    monetization_policy: MonetizationStepData | None = None
    media: MediaStepData | None = None


# =============================================================================
# Progress snapshot (resumption hint, never authoritative)
# =============================================================================


class ProgressSnapshot(BaseModel):
    """Denormalized orchestrator state saved after each accepted step.

    Attributes:
        completed_step: Last completed step at save time.
        profile_id: Bound profile, once the identity step ran.
        user_id: Bound identity, once the identity step ran.
        step_data: Data of completed steps, for form hydration.
        saved_at: When the snapshot was written.
        halted: Set after a fatal binding error; onboarding refuses to
            continue for this session.
    """

    completed_step: int = 0
    profile_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    step_data: StepData = Field(default_factory=StepData)
    saved_at: datetime | None = None
    halted: bool = False


# =============================================================================
# Responses
# =============================================================================


class StepAccepted(BaseModel):
    """Outcome of an accepted step submission.

    resolution and access_token are set by the identity step only:
    resolution names the account resolver outcome and access_token is the
    identity session the client sends as a Bearer token from then on.
    """

    step: OnboardingStep
    completed_step: int
    next_step: OnboardingStep
    profile_id: uuid.UUID | None = None
    resolution: str | None = None
    access_token: str | None = None


class OnboardingView(BaseModel):
    """Current onboarding state for rendering or resumption.

    current_step is the step the user should see: completed_step + 1, or
    DONE once the completion gate ran.
    """

    current_step: OnboardingStep
    completed_step: int
    profile_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    onboarding_completed: bool = False
    step_data: StepData = Field(default_factory=StepData)


class StepView(BaseModel):
    """Read-only view of one step for back navigation."""

    step: OnboardingStep
    editable: bool
    data: dict[str, Any] | None = None


HandleStatus = Literal["available", "taken", "unknown", "superseded"]


class HandleAvailability(BaseModel):
    """Result of a handle availability check."""

    handle: str
    status: HandleStatus
    error: str | None = None
