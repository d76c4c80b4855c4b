"""
In-process metadata cache with TTL support.
"""

import random
import time
from dataclasses import dataclass
from typing import Optional, Dict, Any, Callable, Protocol


Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """Cached value with the time it was stored."""
    key: str
    value: Dict[str, Any]
    stored_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.stored_at < self.ttl


class MetadataCache(Protocol):
    """Interface shared by the memory and SQL cache backends."""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None):
        ...

    def delete(self, key: str):
        ...

    def clear_expired(self) -> int:
        ...

    def clear_all(self):
        ...


def effective_ttl(ttl: float, ttl_jitter: float) -> float:
    """
    Get TTL with randomized jitter to prevent cache stampede.

    Args:
        ttl: Base time-to-live in seconds
        ttl_jitter: Maximum jitter in seconds (0 disables jitter)

    Returns:
        TTL in seconds, never negative
    """
    if ttl_jitter == 0:
        return ttl

    # TTL ± jitter, e.g. ttl=300, jitter=30 -> between 270 and 330 seconds
    return max(0.0, ttl + random.uniform(-ttl_jitter, ttl_jitter))


class MemoryCache:
    """
    Dictionary-backed cache with per-entry expiration.

    Expired entries are treated as absent but stay in the map until they
    are overwritten, evicted by the size bound, or removed by
    clear_expired().
    """

    def __init__(
        self,
        ttl: float,
        ttl_jitter: float = 0,
        max_entries: Optional[int] = None,
        clock: Clock = time.time,
    ):
        """
        Initialize cache.

        Args:
            ttl: Default time-to-live in seconds
            ttl_jitter: Maximum jitter in seconds applied to each stored entry
            max_entries: Upper bound on stored entries, None for unbounded
            clock: Returns the current time in seconds
        """
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self.ttl = ttl
        self.ttl_jitter = ttl_jitter
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Get cached value if not expired.

        Args:
            key: Cache key

        Returns:
            Cached value or None if not found/expired
        """
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    def set(self, key: str, value: Dict[str, Any], ttl: Optional[float] = None):
        """
        Set cache value with current timestamp.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Lifetime of this entry, defaults to the cache TTL
        """
        if key not in self._entries and self.max_entries is not None:
            while len(self._entries) >= self.max_entries:
                self._evict_one()

        base_ttl = self.ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            stored_at=self._clock(),
            ttl=effective_ttl(base_ttl, self.ttl_jitter),
        )

    def _evict_one(self):
        """Drop an expired entry if there is one, else the oldest entry."""
        now = self._clock()
        for key, entry in self._entries.items():
            if not entry.is_fresh(now):
                del self._entries[key]
                return

        oldest_key = min(self._entries.values(), key=lambda e: e.stored_at).key
        del self._entries[oldest_key]

    def delete(self, key: str):
        """
        Delete a specific cache entry.

        Args:
            key: Cache key to delete
        """
        self._entries.pop(key, None)

    def clear_expired(self) -> int:
        """
        Clear all expired cache entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear_all(self):
        """Clear all cache entries."""
        self._entries.clear()
