"""Pydantic request/response schemas for API endpoints."""

from app.schemas.mfa import (
    MethodSelectRequest,
    MFAPhase,
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
    ProgressSnapshot,
    StepAccepted,
    StepData,
    StepPayload,
    StepView,
)

__all__ = [
    # Onboarding steps
    "OnboardingStep",
    "StepPayload",
    "IdentityPayload",
    "ProfilePayload",
    "MonetizationPayload",
    "MediaPayload",
    "StepData",
    "ProgressSnapshot",
    "StepAccepted",
    "OnboardingView",
    "StepView",
    "HandleAvailability",
    # MFA
    "MFAPhase",
    "MFAStrategy",
    "MFAView",
    "MethodSelectRequest",
    "PhoneSubmitRequest",
    "VerifyCodeRequest",
]
