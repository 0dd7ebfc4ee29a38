"""
Storekeeper — Per-key Locks

In-process mutual exclusion keyed by cache key, used to make fetch()
single-flight. Does not coordinate across processes.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class _LockEntry:
    __slots__ = ("lock", "waiters")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.waiters = 0


class KeyedLock:
    """
    Map of cache key -> lock.

    Entries are reference counted and dropped once no thread holds or waits
    on them, so the map only grows with the number of keys in flight.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, _LockEntry] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        """Block until the lock for key is held; release it on exit."""
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._entries[key] = _LockEntry()
            entry.waiters += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.waiters -= 1
                if entry.waiters == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
