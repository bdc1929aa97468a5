"""Per-resource mutual exclusion for the admission critical section."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Generator, Hashable


class ResourceLockRegistry:
    """Hands out one lock per resource id.

    Locks are created lazily and kept for the life of the registry; the
    number of distinct items is bounded by the catalogue.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}

    def lock_for(self, resource_id: Hashable) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(resource_id)
            if lock is None:
                lock = self._locks[resource_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, resource_id: Hashable) -> Generator[None, None, None]:
        lock = self.lock_for(resource_id)
        with lock:
            yield

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
