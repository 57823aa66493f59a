"""
Concurrency guards shared by the services.

- ``KeyedLocks``: one re-entrant lock per circuit name. Compile and key setup
  for the same name serialize; different names proceed in parallel.
- ``ProcessSlots``: bounded semaphore held for the lifetime of every external
  process (circom/snarkjs).

Both are plain threading primitives; FastAPI runs the sync service calls in
its threadpool.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class KeyedLocks:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, key: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.get(key)
        with lock:
            yield

    def __len__(self) -> int:
        return len(self._locks)


class ProcessSlots:
    def __init__(self, limit: int = 4) -> None:
        if limit < 1:
            raise ValueError("process slot limit must be >= 1")
        self.limit = limit
        self._sem = threading.BoundedSemaphore(limit)
        self._lock = threading.Lock()
        self._in_use = 0

    @contextmanager
    def acquire(self) -> Iterator[None]:
        self._sem.acquire()
        with self._lock:
            self._in_use += 1
        try:
            yield
        finally:
            with self._lock:
                self._in_use -= 1
            self._sem.release()

    @property
    def in_use(self) -> int:
        return self._in_use


__all__ = ["KeyedLocks", "ProcessSlots"]
