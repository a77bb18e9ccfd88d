from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import Lock
from typing import Iterator

from rank_tracker.core.config import PLAYLIST_LOCK_TIMEOUT_SECONDS
from rank_tracker.core.exceptions import ConcurrentMergeConflict

logger = logging.getLogger(__name__)


class PlaylistLockRegistry:
    """One lock per playlist id so merges against the same record run one at a time."""

    def __init__(self, timeout_seconds: float = PLAYLIST_LOCK_TIMEOUT_SECONDS) -> None:
        self._timeout_seconds = timeout_seconds
        self._locks: dict[str, Lock] = {}
        self._registry_lock = Lock()

    def _lock_for(self, playlist_id: str) -> Lock:
        with self._registry_lock:
            lock = self._locks.get(playlist_id)
            if lock is None:
                lock = Lock()
                self._locks[playlist_id] = lock
            return lock

    @contextmanager
    def hold(self, playlist_id: str) -> Iterator[None]:
        lock = self._lock_for(playlist_id)
        if not lock.acquire(timeout=self._timeout_seconds):
            logger.warning(
                "[MERGE_CONFLICT] playlist_id=%s reason=lock_timeout timeout_s=%s",
                playlist_id,
                self._timeout_seconds,
            )
            raise ConcurrentMergeConflict(playlist_id, "timed out waiting for playlist lock")
        try:
            yield
        finally:
            lock.release()

    def snapshot(self) -> dict[str, int | list[str]]:
        with self._registry_lock:
            held = sorted(key for key, lock in self._locks.items() if lock.locked())
            return {"lock_count": len(self._locks), "held_playlist_ids": held}


playlist_locks = PlaylistLockRegistry()
