"""
Stats Caching Service

In-memory TTL cache for assembled stats payloads. Callers put the store
revision and the current day label into the key, so an entry is never served
after a write or after local midnight; the TTL only bounds memory.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A single cache entry with TTL tracking."""

    value: Any
    expires_at: float
    created_at: float = field(default_factory=time.time)

    def is_expired(self) -> bool:
        return time.time() > self.expires_at


class StatsCache:
    """Thread-safe TTL cache with size-bounded eviction and hit/miss counters."""

    DEFAULT_TTL = 60

    def __init__(self, max_size: int = 64, ttl: float = DEFAULT_TTL) -> None:
        self._cache: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._max_size = max_size
        self._ttl = ttl
        self._hits = 0
        self._misses = 0

    def _evict_if_needed(self) -> None:
        """Drop expired entries, then the oldest ones if still full."""
        expired = [k for k, v in self._cache.items() if v.is_expired()]
        for key in expired:
            del self._cache[key]
        if len(self._cache) < self._max_size:
            return

        entries_to_remove = max(1, self._max_size // 10)
        oldest = sorted(self._cache.items(), key=lambda item: item[1].created_at)
        for key, _ in oldest[:entries_to_remove]:
            del self._cache[key]
        logger.debug(f"Evicted {entries_to_remove} cache entries due to size limit")

    def get(self, key: str) -> tuple[bool, Any]:
        """
        Get a value from cache.

        Returns:
            Tuple of (hit, value)
        """
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.is_expired():
                self._cache.pop(key, None)
                self._misses += 1
                return False, None
            self._hits += 1
            return True, entry.value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._evict_if_needed()
            self._cache[key] = CacheEntry(value=value, expires_at=time.time() + self._ttl)

    def get_stats(self) -> dict[str, Any]:
        """Hit/miss counts and ratio."""
        with self._lock:
            total = self._hits + self._misses
            hit_ratio = self._hits / total if total > 0 else 0
            return {
                "size": len(self._cache),
                "max_size": self._max_size,
                "hits": self._hits,
                "misses": self._misses,
                "hit_ratio": round(hit_ratio, 4),
                "total_requests": total,
            }
