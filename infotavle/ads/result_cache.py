"""Time-bounded memoization of discovery results with stale-on-error fallback.

Unlike a plain TTL cache, expired entries are kept around: ``get()`` stops
returning them once the TTL passes, but ``get_stale()`` still does until the
next ``set()`` or ``flush()``. That lets the discovery engine keep a display
populated through an asset-server outage.

Example:
    cache = ResultCache(ttl_seconds=600)

    result = cache.get(DISCOVERY_CACHE_KEY)
    if result is None:
        try:
            result = await discover()
            cache.set(DISCOVERY_CACHE_KEY, result)
        except Exception:
            result = cache.get_stale(DISCOVERY_CACHE_KEY)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DISCOVERY_CACHE_KEY = "discovered_ads"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class ResultCache(Generic[T]):
    """Single-process cache with a fixed TTL and no sliding refresh on read."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        """Initialize the cache.

        Args:
            ttl_seconds: Lifetime of an entry, counted from the write
            clock: Monotonic time source in seconds (injectable for tests)
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self.stats = {
            "hits": 0,
            "misses": 0,
            "stale_hits": 0,
            "flushes": 0,
        }

    def get(self, key: str) -> Optional[T]:
        """Return the cached value if present and unexpired."""
        entry = self._entries.get(key)
        if entry is not None and not entry.is_expired(self._clock()):
            self.stats["hits"] += 1
            logger.debug("Cache hit for key: %s", key)
            return entry.value

        self.stats["misses"] += 1
        logger.debug("Cache miss for key: %s", key)
        return None

    def get_stale(self, key: str) -> Optional[T]:
        """Return the last stored value for ``key`` regardless of expiry."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        self.stats["stale_hits"] += 1
        return entry.value

    def set(self, key: str, value: T) -> None:
        """Store ``value``; the expiry restarts from now."""
        expires_at = self._clock() + self.ttl_seconds
        self._entries[key] = CacheEntry(value, expires_at)
        logger.debug("Cached value for key: %s (ttl %.0fs)", key, self.ttl_seconds)

    def flush(self) -> int:
        """Remove every entry, expired or not.

        Returns:
            Number of entries removed
        """
        removed = len(self._entries)
        self._entries.clear()
        self.stats["flushes"] += 1
        logger.info("Cache flushed (%d entries removed)", removed)
        return removed

    def get_stats(self) -> dict[str, Any]:
        total = self.stats["hits"] + self.stats["misses"]
        hit_rate = (self.stats["hits"] / total * 100) if total > 0 else 0.0
        return {
            **self.stats,
            "hit_rate": round(hit_rate, 2),
            "current_size": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
        }
