"""Keyed mutual exclusion for repository operations.

Each git repository has one working tree shared by every operation on it,
so operations on the same (team, workspace) are serialized. Operations on
different repositories proceed concurrently.
"""

from __future__ import annotations

import threading
from collections.abc import Hashable, Iterator
from contextlib import contextmanager


class KeyedLock:
    """Lazily created re-entrant lock per key.

    Thread-safe for concurrent access within a single process.
    """

    def __init__(self) -> None:
        self._locks: dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def _get_or_create(self, key: Hashable) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        lock = self._get_or_create(key)
        with lock:
            yield

    @contextmanager
    def hold_many(self, *keys: Hashable) -> Iterator[None]:
        """Hold several keys at once, acquiring them in a stable order."""
        ordered = sorted(set(keys), key=repr)
        locks = [self._get_or_create(key) for key in ordered]
        acquired: list[threading.RLock] = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
