"""Per-entity locks so two syncs of the same record cannot interleave."""

import threading
from contextlib import contextmanager
from typing import Optional


class LockTimeout(Exception):
    """Could not acquire an entity lock in time."""


class KeyedLockRegistry:
    """In-process exclusive locks keyed by (entity_type, entity_id).

    Entries are reference counted and dropped once nobody holds or waits on
    them, so the registry does not grow with every entity ever synced.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: dict[tuple, list] = {}  # key -> [lock, refcount]

    @contextmanager
    def hold(self, entity_type: str, entity_id, timeout: Optional[float] = None):
        key = (entity_type, str(entity_id))
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1

        lock = entry[0]
        acquired = lock.acquire(timeout=timeout) if timeout is not None else lock.acquire()
        try:
            if not acquired:
                raise LockTimeout(f"Timed out waiting for lock on {entity_type} {entity_id}")
            yield
        finally:
            if acquired:
                lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    self._locks.pop(key, None)

    def active_keys(self) -> list[tuple]:
        with self._guard:
            return list(self._locks)
