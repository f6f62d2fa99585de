"""Tests for the expired session sweeper and its lifespan wiring."""

import asyncio
import uuid
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from app.core.config import settings
from app.main import app, lifespan
from app.schemas.onboarding import ProgressSnapshot
from app.services.mfa_enrollment import MFAEnrollmentState, MFAStateStore
from app.services.progress_cache import ProgressCache
from app.services.session_sweeper import SessionSweeper, SweepResult

_PAST = timedelta(seconds=1)


def _stores_with_expired() -> tuple[ProgressCache, MFAStateStore, uuid.UUID]:
    """Each store holds one expired and one live entry."""
    cache = ProgressCache()
    states = MFAStateStore()
    user_id = uuid.uuid4()
    for key in ("old", "live"):
        cache.save(key, ProgressSnapshot(completed_step=2, profile_id=uuid.uuid4()))
        states.put(
            key,
            MFAEnrollmentState(user_id=user_id, profile_id=uuid.uuid4(), required=False),
        )
    now = datetime.now(UTC)
    cache._store["old"].expires_at = now - _PAST
    states._store["old"].expires_at = now - _PAST
    return cache, states, user_id


class TestSweeperLifecycle:
    """Tests for SessionSweeper start/stop."""

    @pytest.mark.asyncio
    async def test_start_sets_running(self):
        sweeper = SessionSweeper(ProgressCache(), MFAStateStore(), interval_seconds=60)

        sweeper.start()
        assert sweeper.is_running is True
        await sweeper.stop()

        assert sweeper.is_running is False

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        sweeper = SessionSweeper(ProgressCache(), MFAStateStore(), interval_seconds=60)

        sweeper.start()
        first = sweeper._task
        sweeper.start()

        assert sweeper._task is first
        await sweeper.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self):
        await SessionSweeper(ProgressCache(), MFAStateStore()).stop()

    def test_default_interval(self):
        sweeper = SessionSweeper(ProgressCache(), MFAStateStore())
        assert sweeper._interval_seconds == settings.session_sweep_interval_seconds


class TestSweep:
    """Tests for run_once() and the loop."""

    def test_run_once_removes_only_expired(self):
        cache, states, user_id = _stores_with_expired()
        sweeper = SessionSweeper(cache, states)

        result = sweeper.run_once()

        assert result == SweepResult(snapshots_removed=1, mfa_states_removed=1)
        assert cache.load("live") is not None
        assert states.get("live", user_id) is not None
        assert "old" not in cache._store
        assert "old" not in states._store

    @pytest.mark.asyncio
    async def test_loop_sweeps_on_interval(self):
        cache, states, _ = _stores_with_expired()
        sweeper = SessionSweeper(cache, states, interval_seconds=0.01)

        sweeper.start()
        for _ in range(100):
            if "old" not in cache._store and "old" not in states._store:
                break
            await asyncio.sleep(0.01)
        await sweeper.stop()

        assert "old" not in cache._store
        assert "old" not in states._store


class TestLifespan:
    """The application lifespan runs the sweeper."""

    @pytest.mark.asyncio
    async def test_sweeper_runs_while_app_is_up(self):
        with (
            patch("app.main.close_providers", new_callable=AsyncMock) as close,
            patch.object(SessionSweeper, "stop", new_callable=AsyncMock) as stop,
            patch.object(SessionSweeper, "start") as start,
        ):
            async with lifespan(app):
                start.assert_called_once()
                stop.assert_not_called()

        stop.assert_awaited_once()
        close.assert_awaited_once()
