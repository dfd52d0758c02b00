"""
salesdocs/cache.py

Small TTL cache for tenant-scoped list reads (customers, products, units).

Keys are (entity, scope) tuples. Writes to an entity call invalidate() for
the same key before the response is sent, so a tenant never reads its own
stale list. Documents are not cached: the reference sequencer must always
scan fresh rows.

NOTE:
- Cache plain dicts, not ORM instances. Instances are detached once the
  request's session is removed.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Hashable, Tuple


class ScopedListCache:
    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = float(ttl_seconds)
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        # Bumped on every invalidation; a load that raced a write is not stored.
        self._generations: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > self._clock():
                return entry[1]
            generation = self._generations.get(key, 0)

        value = loader()

        if self.ttl_seconds > 0:
            with self._lock:
                if self._generations.get(key, 0) == generation:
                    self._entries[key] = (self._clock() + self.ttl_seconds, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        with self._lock:
            for key in list(self._entries):
                self._generations[key] = self._generations.get(key, 0) + 1
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry[0] > self._clock()
