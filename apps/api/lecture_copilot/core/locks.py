from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator

from lecture_copilot.core.errors import VideoBusy


class KeyedLocks:
    """
    One mutex per key (video id), created on demand and dropped when unused.

    The registry lock only guards the dict; callers never hold it while
    waiting on a per-key lock, so unrelated keys never block each other.
    """

    def __init__(self) -> None:
        self._registry = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def _checkout(self, key: str) -> threading.Lock:
        with self._registry:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._users[key] = self._users.get(key, 0) + 1
            return lock

    def _checkin(self, key: str) -> None:
        with self._registry:
            n = self._users.get(key, 0) - 1
            if n <= 0:
                self._users.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._users[key] = n

    @contextmanager
    def hold(self, key: str, timeout: float | None = None) -> Iterator[bool]:
        """
        Yields True when the lock was acquired, False on timeout.
        Callers decide what a timeout means.
        """
        lock = self._checkout(key)
        acquired = lock.acquire(timeout=-1 if timeout is None else max(0.0, timeout))
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()
            self._checkin(key)

    def active_keys(self) -> list[str]:
        with self._registry:
            return sorted(self._locks)


@contextmanager
def video_lock(locks: KeyedLocks, video_id: str, timeout: float | None) -> Iterator[None]:
    """Serialize work on one video; raises VideoBusy when the wait runs out."""
    with locks.hold(video_id, timeout=timeout) as acquired:
        if not acquired:
            raise VideoBusy(video_id)
        yield
