"""In-process cache strategies.

:class:`InMemoryCache` is a bounded map whose iteration order is the
eviction order: under the ``"lru"`` policy every hit moves the entry to the
back, under ``"fifo"`` order is pure insertion order.  When the cache is at
capacity and a *new* key arrives, the entry at the front is evicted.

:class:`NoOpCache` is installed when caching is disabled.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Literal, Optional

from courier.cache.base import CacheEntry, CacheKey, CacheStrategy

EvictionPolicy = Literal["lru", "fifo"]


class InMemoryCache(CacheStrategy):
    """Bounded in-memory cache with LRU or FIFO eviction.

    Args:
        max_size: Maximum number of entries held at once.
        eviction_policy: ``"lru"`` (evict least recently used) or
            ``"fifo"`` (evict oldest insertion).

    Example::

        cache = InMemoryCache(max_size=2)
        cache.set(CacheKey("GET", "https://x/a"), CacheEntry(data=1, timestamp=now_ms(), ttl=0))
        hit = cache.get(CacheKey("GET", "https://x/a"))
    """

    def __init__(self, max_size: int = 100, eviction_policy: EvictionPolicy = "lru") -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        if eviction_policy not in ("lru", "fifo"):
            raise ValueError(f"Unknown eviction policy '{eviction_policy}'")
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._max_size = max_size
        self._policy = eviction_policy
        self._hits = 0
        self._misses = 0

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def eviction_policy(self) -> EvictionPolicy:
        return self._policy

    @property
    def size(self) -> int:
        """Number of entries currently held (expired ones included until touched)."""
        return len(self._store)

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        key_str = self.key_string(key)
        entry = self._store.get(key_str)
        if entry is None:
            self._misses += 1
            return None
        if self.is_expired(entry):
            del self._store[key_str]
            self._misses += 1
            return None
        if self._policy == "lru":
            self._store.move_to_end(key_str)
        self._hits += 1
        return entry

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        key_str = self.key_string(key)
        if key_str not in self._store and len(self._store) >= self._max_size:
            self._store.popitem(last=False)
        self._store[key_str] = entry
        if self._policy == "lru":
            self._store.move_to_end(key_str)

    def delete(self, key: CacheKey) -> None:
        self._store.pop(self.key_string(key), None)

    def clear(self) -> None:
        self._store.clear()

    def has(self, key: CacheKey) -> bool:
        key_str = self.key_string(key)
        entry = self._store.get(key_str)
        if entry is None:
            return False
        if self.is_expired(entry):
            del self._store[key_str]
            return False
        return True

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``size``, ``max_size``, ``hits``, ``misses``,
            and ``hit_rate`` (``0.0`` before any lookup).
        """
        lookups = self._hits + self._misses
        return {
            "size": len(self._store),
            "max_size": self._max_size,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / lookups if lookups else 0.0,
        }


class NoOpCache(CacheStrategy):
    """Cache that stores nothing; every lookup misses."""

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return None

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        return None

    def delete(self, key: CacheKey) -> None:
        return None

    def clear(self) -> None:
        return None

    def has(self, key: CacheKey) -> bool:
        return False
