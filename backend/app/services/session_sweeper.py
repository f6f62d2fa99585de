"""Background sweep of expired in-memory onboarding state.

Progress snapshots and MFA enrollment state are only evicted lazily when
they are read; sessions that are never resumed would otherwise stay in
memory. The sweeper runs as an asyncio task started from the FastAPI
lifespan and drops every expired entry on a fixed interval.
"""

import asyncio
import contextlib
from dataclasses import dataclass

import structlog

from app.core.config import settings
from app.services.mfa_enrollment import MFAStateStore
from app.services.progress_cache import ProgressCache

logger = structlog.get_logger()


@dataclass(frozen=True)
class SweepResult:
    """Entries removed by one pass."""

    snapshots_removed: int
    mfa_states_removed: int


class SessionSweeper:
    """Periodically removes expired progress snapshots and MFA state.

    Lifecycle:
    - start() creates the asyncio task running the sweep loop.
    - stop() cancels the task and waits for it.
    - run_once() runs a single pass.
    """

    def __init__(
        self,
        cache: ProgressCache,
        states: MFAStateStore,
        *,
        interval_seconds: float | None = None,
    ) -> None:
        self._cache = cache
        self._states = states
        self._interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else settings.session_sweep_interval_seconds
        )
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        """Whether the sweep task is active."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the sweep loop. No-op if already running."""
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run_loop())
        logger.info("session_sweeper_started", interval_seconds=self._interval_seconds)

    async def stop(self) -> None:
        """Cancel the sweep loop and wait for it to finish."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._task = None

    def run_once(self) -> SweepResult:
        """Drop every expired entry from both stores."""
        return SweepResult(
            snapshots_removed=self._cache.cleanup_expired(),
            mfa_states_removed=self._states.cleanup_expired(),
        )

    async def _run_loop(self) -> None:
        while True:
            await asyncio.sleep(self._interval_seconds)
            result = self.run_once()
            if result.snapshots_removed or result.mfa_states_removed:
                logger.info(
                    "expired_sessions_swept",
                    snapshots_removed=result.snapshots_removed,
                    mfa_states_removed=result.mfa_states_removed,
                )
