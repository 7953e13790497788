"""
Keyed Lock Module

One mutex per key (loan id, application id, borrower id) so that operations
on the same entity are serialized while unrelated entities proceed in parallel.
"""

import threading
from contextlib import contextmanager
from typing import Dict


class KeyedLocks:
    """Lazily created, reference-counted locks keyed by string"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refcounts: Dict[str, int] = {}

    @contextmanager
    def hold(self, key: str):
        """Hold the lock for ``key`` for the duration of the block"""
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
                self._refcounts[key] = 0
            self._refcounts[key] += 1

        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._refcounts[key] -= 1
                if self._refcounts[key] == 0:
                    # Nobody holds or waits on it
                    del self._locks[key]
                    del self._refcounts[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
