"""In-memory progress cache for onboarding resumption.

Holds one ProgressSnapshot per onboarding session key. The snapshot is a
hint for hydrating forms; the profile store is authoritative and wins on
every reconcile.

Safe for async/await usage (single event loop) but not for multi-threaded
access. A multi-instance deployment would back this with a shared cache.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from app.core.config import settings
from app.schemas.onboarding import ProgressSnapshot


@dataclass
class _Entry:
    snapshot: ProgressSnapshot
    expires_at: datetime


class ProgressCache:
    """Session-keyed snapshot store with a TTL."""

    def __init__(self, ttl_hours: int | None = None) -> None:
        """Initialize the cache.

        Args:
            ttl_hours: Snapshot time-to-live. Defaults to the configured
                progress_cache_ttl_hours.
        """
        self._store: dict[str, _Entry] = {}
        self._ttl = timedelta(hours=ttl_hours or settings.progress_cache_ttl_hours)

    def save(self, key: str, snapshot: ProgressSnapshot) -> ProgressSnapshot:
        """Store a snapshot, stamping saved_at.

        Returns:
            The stored copy.
        """
        now = datetime.now(UTC)
        stored = snapshot.model_copy(update={"saved_at": now}, deep=True)
        self._store[key] = _Entry(snapshot=stored, expires_at=now + self._ttl)
        return stored

    def load(self, key: str) -> ProgressSnapshot | None:
        """Return a copy of the snapshot, or None if missing or expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        if datetime.now(UTC) > entry.expires_at:
            del self._store[key]
            return None
        return entry.snapshot.model_copy(deep=True)

    def clear(self, key: str) -> bool:
        """Delete the snapshot for a session.

        Returns:
            True if a snapshot was removed.
        """
        return self._store.pop(key, None) is not None

    def cleanup_expired(self) -> int:
        """Remove all expired snapshots.

        Returns:
            Number of snapshots removed.
        """
        now = datetime.now(UTC)
        expired = [k for k, e in self._store.items() if now > e.expires_at]
        for key in expired:
            del self._store[key]
        return len(expired)

    def reset(self) -> None:
        """Drop everything (for testing)."""
        self._store.clear()


# Singleton instance for the application
_progress_cache: ProgressCache | None = None


def get_progress_cache() -> ProgressCache:
    """Get the singleton progress cache instance."""
    global _progress_cache
    if _progress_cache is None:
        _progress_cache = ProgressCache()
    return _progress_cache


def reset_progress_cache() -> None:
    """Reset the progress cache singleton (for testing)."""
    global _progress_cache
    if _progress_cache is not None:
        _progress_cache.reset()
    _progress_cache = None
