"""Handle availability checker.

Live checks while the talent types a handle. Each check waits for a quiet
period (default 500 ms) before probing the store; a newer check for the
same field key supersedes any pending one, which resolves to "superseded"
without touching the store. The result is advisory: the UNIQUE constraint
on talent_profiles.handle decides at write time.
"""

import asyncio
import uuid

import structlog

from app.core.config import settings
from app.core.errors import APIError
from app.schemas.onboarding import (
    HandleAvailability,
    handle_format_error,
    normalize_handle,
)
from app.services.profile_store import ProfileStore

logger = structlog.get_logger()


class HandleAvailabilityChecker:
    """Debounced, last-call-wins availability checks keyed by field."""

    def __init__(self, debounce_seconds: float | None = None) -> None:
        """Initialize the checker.

        Args:
            debounce_seconds: Quiet period before probing. Defaults to the
                configured handle_check_debounce_ms.
        """
        if debounce_seconds is None:
            debounce_seconds = settings.handle_check_debounce_ms / 1000
        self._debounce_seconds = debounce_seconds
        self._pending: dict[str, asyncio.Event] = {}

    @property
    def pending_keys(self) -> list[str]:
        """Field keys with a check waiting out its debounce."""
        return list(self._pending)

    async def probe(
        self,
        handle: str,
        store: ProfileStore,
        exclude_profile_id: uuid.UUID | None = None,
    ) -> HandleAvailability:
        """Check a handle immediately, without debouncing.

        Store failures resolve to "unknown" with the error message rather
        than raising.
        """
        try:
            taken = await store.handle_taken(handle, exclude_profile_id)
        except APIError as e:
            logger.warning("handle_probe_failed", code=e.code)
            return HandleAvailability(handle=handle, status="unknown", error=e.message)
        return HandleAvailability(
            handle=handle, status="taken" if taken else "available"
        )

    async def check_available(
        self,
        handle: str,
        store: ProfileStore,
        exclude_profile_id: uuid.UUID | None = None,
        *,
        field_key: str,
    ) -> HandleAvailability:
        """Debounced availability check.

        Args:
            handle: Raw input; stripped and lowercased. Input the Profile
                step would reject resolves to "unknown" without a probe.
            store: Profile store to probe.
            exclude_profile_id: The caller's own profile.
            field_key: Identifies the input field (one per session), so
                checks from different sessions never supersede each other.

        Returns:
            HandleAvailability with status available, taken, unknown or
            superseded.
        """
        normalized = normalize_handle(handle)

        previous = self._pending.pop(field_key, None)
        if previous is not None:
            previous.set()

        format_error = handle_format_error(normalized)
        if format_error is not None:
            return HandleAvailability(
                handle=normalized, status="unknown", error=format_error
            )

        superseded = asyncio.Event()
        self._pending[field_key] = superseded
        try:
            try:
                await asyncio.wait_for(
                    superseded.wait(), timeout=self._debounce_seconds
                )
            except TimeoutError:
                pass
            else:
                return HandleAvailability(handle=normalized, status="superseded")

            result = await self.probe(normalized, store, exclude_profile_id)
            if superseded.is_set():
                return HandleAvailability(handle=normalized, status="superseded")
            return result
        finally:
            if self._pending.get(field_key) is superseded:
                del self._pending[field_key]

    def reset(self) -> None:
        """Supersede every pending check (for testing)."""
        for event in self._pending.values():
            event.set()
        self._pending.clear()


_handle_checker: HandleAvailabilityChecker | None = None


def get_handle_checker() -> HandleAvailabilityChecker:
    """Get the singleton handle checker."""
    global _handle_checker
    if _handle_checker is None:
        _handle_checker = HandleAvailabilityChecker()
    return _handle_checker


def reset_handle_checker() -> None:
    """Reset the handle checker singleton (for testing)."""
    global _handle_checker
    if _handle_checker is not None:
        _handle_checker.reset()
    _handle_checker = None
