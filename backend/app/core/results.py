"""Explicit success/failure results for onboarding operations.

Services return ``Ok(value)`` or ``Err(error)`` for every user-facing
outcome instead of raising, so callers branch on named outcomes. Only
FatalBindingError is raised, because it halts onboarding outright.

Usage:
    result = await orchestrator.submit_step(ctx, payload)
    if isinstance(result, Err):
        ...  # result.error is an APIError subclass
    accepted = unwrap(result)
"""

from dataclasses import dataclass
from typing import Generic, TypeVar

from app.core.errors import APIError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the typed error for the caller."""

    error: APIError

    @property
    def ok(self) -> bool:
        return False


Result = Ok[T] | Err


def unwrap(result: "Ok[T] | Err") -> T:
    """Return the value of an Ok, or raise the error carried by an Err.

    Used at the HTTP boundary where the exception handlers render errors.

    Raises:
        APIError: The error wrapped in ``Err``.
    """
    if isinstance(result, Err):
        raise result.error
    return result.value
