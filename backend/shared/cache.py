"""In-process TTL cache with a last-known-good fallback.

Backed by cachetools.TTLCache. Lookups that hit the document store go through
this cache so that a short database outage degrades to slightly stale user
records instead of stalling the follower pipeline.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any

from cachetools import TTLCache  # type: ignore[import-untyped]

# Sentinel distinguishing "not cached" from a cached None
_MISSING = object()


class AsyncTTLCache:
    """TTL cache plus a bounded LRU store of values that outlive their TTL.

    The stale tier is read only after the upstream source failed.
    """

    def __init__(self, maxsize: int = 128, ttl: float = 60.0):
        self._maxsize = maxsize
        self._cache: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl)
        self._stale: OrderedDict[str, Any] = OrderedDict()

    def get(self, key: str) -> Any:
        """Return the fresh value or ``_MISSING``."""
        return self._cache.get(key, _MISSING)

    def set(self, key: str, value: Any) -> None:
        self._cache[key] = value
        self._stale[key] = value
        self._stale.move_to_end(key)
        while len(self._stale) > self._maxsize:
            self._stale.popitem(last=False)

    def invalidate(self, key: str) -> None:
        """Drop the fresh entry and the stale one (the value is known to be outdated)."""
        self._cache.pop(key, None)
        self._stale.pop(key, None)

    def clear(self) -> None:
        self._cache.clear()

    def get_stale(self, key: str) -> Any:
        value = self._stale.get(key, _MISSING)
        if value is not _MISSING:
            self._stale.move_to_end(key)
        return value
