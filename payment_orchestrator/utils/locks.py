"""Keyed mutual exclusion for per-entity read-modify-write sections"""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLock:
    """
    One lock per key, created on demand and dropped once no holder or waiter remains.

    Sections for different keys run concurrently; sections for the same key
    are serialized. Re-entrant, so a holder may call other locked helpers for
    the same key.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}
        self._users: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.RLock())
            self._users[key] = self._users.get(key, 0) + 1

        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
