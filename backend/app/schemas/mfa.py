"""MFA enrollment phases, strategies and request/response schemas."""

import uuid
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class MFAPhase(str, Enum):
    """Phases of the Security step sub-machine."""

    INTRO = "intro"
    METHOD_SELECT = "method-select"
    PHONE_ENTRY = "phone-entry"
    QR_DISPLAY = "qr-display"
    VERIFY = "verify"
    COMPLETE = "complete"


class MFAStrategy(str, Enum):
    """Second-factor enrollment strategies."""

    UNSET = "unset"
    TOTP = "totp"
    PHONE = "phone"


class MFAView(BaseModel):
    """What the Security step screen needs to render.

    qr_payload and secret are present only in qr-display/verify on the TOTP
    path; they are never stored outside the in-memory enrollment state.
    """

    phase: MFAPhase
    strategy: MFAStrategy
    factor_id: str | None = None
    qr_payload: str | None = None
    secret: str | None = None
    phone_number_masked: str | None = None
    resend_available_in_seconds: int = 0
    required: bool = False
    skipped: bool = False
    onboarding_completed: bool = False
    profile_id: uuid.UUID | None = None


class MethodSelectRequest(BaseModel):
    """Request body for choosing an enrollment strategy."""

    model_config = ConfigDict(extra="forbid")

    strategy: Literal["totp", "phone"]


class PhoneSubmitRequest(BaseModel):
    """Request body for the phone-entry screen."""

    model_config = ConfigDict(extra="forbid")

    phone_number: str = Field(..., min_length=1, max_length=32)


class VerifyCodeRequest(BaseModel):
    """Request body for submitting a verification code."""

    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., max_length=16)
