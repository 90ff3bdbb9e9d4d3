"""Response caching for courier.

This package provides the :class:`CacheStrategy` contract consumed by
:class:`~courier.client.engine.RequestEngine` and three implementations:

- :class:`InMemoryCache` -- bounded, LRU or FIFO eviction.
- :class:`DiskCache` -- persistent, backed by :mod:`diskcache`.
- :class:`NoOpCache` -- installed when caching is disabled.

Only successful GET responses are written; see
:class:`~courier.models.CacheConfig` for the knobs.
"""

from courier.cache.base import CacheEntry, CacheKey, CacheStrategy, now_ms
from courier.cache.disk import DiskCache
from courier.cache.memory import InMemoryCache, NoOpCache

__all__ = [
    "CacheEntry",
    "CacheKey",
    "CacheStrategy",
    "DiskCache",
    "InMemoryCache",
    "NoOpCache",
    "now_ms",
]
