from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Hashable

logger = logging.getLogger(__name__)

Key = tuple[Hashable, ...]


class QueryCache:
    """Application-wide cache of query results.

    Keys are tuples whose first element is the collection name, followed by
    the filter parameters, e.g. ``("routines", 3)``. Entries are never
    patched: writers drop them with :meth:`invalidate` and the next read
    refetches.

    Loaders run outside the lock. A load that overlaps an invalidation is
    returned to its caller but not stored, so a read racing a write can
    never pin pre-write rows in the cache.
    """

    def __init__(self) -> None:
        self._data: dict[Key, Any] = {}
        self._generation = 0
        self._lock = threading.Lock()

    def get_or_load(self, key: Key, loader: Callable[[], Any]) -> Any:
        with self._lock:
            if key in self._data:
                return self._data[key]
            generation = self._generation
        value = loader()
        with self._lock:
            if generation == self._generation:
                self._data[key] = value
        return value

    def invalidate(self, *prefix: Hashable) -> int:
        n = len(prefix)
        with self._lock:
            self._generation += 1
            stale = [k for k in self._data if k[:n] == prefix]
            for k in stale:
                del self._data[k]
        if stale:
            logger.debug("invalidated %d cache entries for %r", len(stale), prefix)
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._data.clear()

    def __contains__(self, key: Key) -> bool:
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


cache = QueryCache()
