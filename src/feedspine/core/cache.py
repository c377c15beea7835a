"""
Bounded TTL + LRU response cache.

Each ``ResilientFetcher`` owns one :class:`BoundedCache`. Entries expire
lazily on read; capacity is enforced on insert by evicting the entry that
was accessed least recently.

Manifesto:
    Upstream calls are slow, rate-limited and billed. A cache in front of
    every source must be bounded in both time and space:

    - **TTL:** An entry is never returned past its expiry
    - **Bounded:** At most ``max_size`` entries, ever
    - **LRU:** Capacity eviction drops the least recently accessed entry
    - **Lazy expiry:** Checked on read; :meth:`BoundedCache.cleanup` purges eagerly

Architecture:
    ::

        BoundedCache
        ├── set(key, value, ttl)   ─ insert/replace, evict LRU when full
        ├── get(key)               ─ value | None, drops expired entry
        ├── delete / clear / contains
        ├── cleanup()              ─ purge expired, return count
        └── stats()                ─ CacheStats (size, utilization, hits...)

Examples:
    >>> cache = BoundedCache(max_size=2, default_ttl=30.0)
    >>> cache.set("a", 1)
    >>> cache.get("a")
    1
    >>> cache.get("missing") is None
    True

Performance:
    - get/set: O(1) except eviction, which scans for the oldest access O(n)
    - Not thread-safe; one instance per fetcher on one event loop

Tags:
    cache, caching, ttl, lru, feedspine

Doc-Types:
    - API Reference
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """One cached value and its access bookkeeping."""

    value: T
    expires_at: float
    last_accessed_at: float
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics."""

    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int

    @property
    def utilization(self) -> float:
        """Fill level as a percentage of ``max_size``."""
        if self.max_size == 0:
            return 0.0
        return (self.size / self.max_size) * 100

    @property
    def hit_rate(self) -> float:
        """Cache hit rate as a percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100


class BoundedCache(Generic[T]):
    """Bounded in-memory cache with TTL expiry and LRU eviction.

    Attributes:
        max_size: Maximum number of live entries.
        default_ttl: TTL in seconds used when ``set`` is called without one.

    Example:
        cache = BoundedCache(max_size=500, default_ttl=30.0)
        cache.set(key, {"price": 100.0}, ttl=10.0)
        cached = cache.get(key)
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 30.0,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, CacheEntry[T]] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> T | None:
        """Return the cached value, or ``None`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if entry.is_expired(now):
            del self._entries[key]
            self._misses += 1
            return None

        entry.last_accessed_at = now
        entry.access_count += 1
        self._hits += 1
        return entry.value

    def set(self, key: str, value: T, ttl: float | None = None) -> None:
        """Insert or replace a value; evicts the LRU entry when full."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        now = self._clock()
        self._entries[key] = CacheEntry(
            value=value,
            expires_at=now + (ttl if ttl is not None else self.default_ttl),
            last_accessed_at=now,
        )

    def delete(self, key: str) -> bool:
        """Remove a key. Returns whether it was present."""
        return self._entries.pop(key, None) is not None

    def contains(self, key: str) -> bool:
        """Check if key exists and has not expired (does not touch LRU order)."""
        entry = self._entries.get(key)
        if entry is None:
            return False
        if entry.is_expired(self._clock()):
            del self._entries[key]
            return False
        return True

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def cleanup(self) -> int:
        """Purge every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def stats(self) -> CacheStats:
        """Return current cache statistics."""
        return CacheStats(
            size=len(self._entries),
            max_size=self.max_size,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
        )

    def _evict_lru(self) -> None:
        # dict preserves insertion order, so min() breaks ties on the oldest insert
        lru_key = min(self._entries, key=lambda k: self._entries[k].last_accessed_at)
        del self._entries[lru_key]
        self._evictions += 1

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.contains(key)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["BoundedCache", "CacheEntry", "CacheStats"]
