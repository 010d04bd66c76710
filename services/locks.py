"""
Keyed locks.

Serializes work that is keyed by a match or a stage (e.g. two triggers for
the same finished match) while leaving unrelated keys free to run in
parallel.
"""

import threading
from contextlib import contextmanager
from typing import Generator, Hashable


class KeyedLock:
    """
    One re-entrant lock per key, created on first use.

    Usage:
        locks = KeyedLock()
        with locks.hold(("match", 42)):
            ...
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._locks: dict[Hashable, threading.RLock] = {}

    def _get(self, key: Hashable) -> threading.RLock:
        with self._lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Generator[None, None, None]:
        """Hold the lock for key for the duration of the block."""
        lock = self._get(key)
        with lock:
            yield

    def __len__(self) -> int:
        with self._lock:
            return len(self._locks)
