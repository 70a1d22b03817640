"""
Scope-sharded in-process locks.

Writes to the same scope are serialized inside one process by striping scope
keys over a fixed pool of locks. Across processes the database constraints
(unique scope/version, optimistic row versions) still decide the winner.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, List

DEFAULT_STRIPES = 64


class ScopeLocks:
    """A fixed pool of locks addressed by scope key."""

    def __init__(self, stripes: int = DEFAULT_STRIPES):
        if stripes < 1:
            raise ValueError("stripes must be >= 1")
        self._locks: List[threading.Lock] = [threading.Lock() for _ in range(stripes)]

    def _index(self, key: str) -> int:
        return hash(key) % len(self._locks)

    @contextmanager
    def hold(self, *keys: str) -> Iterator[None]:
        """Hold the locks for every key, acquired in a fixed order."""
        indexes = sorted({self._index(k) for k in keys})
        acquired = []
        try:
            for i in indexes:
                self._locks[i].acquire()
                acquired.append(i)
            yield
        finally:
            for i in reversed(acquired):
                self._locks[i].release()


# Shared by every service in the process
scope_locks = ScopeLocks()
