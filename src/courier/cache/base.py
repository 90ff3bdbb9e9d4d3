"""Cache contract shared by every cache strategy.

The request engine talks to caches exclusively through
:class:`CacheStrategy`.  Keys are :class:`CacheKey` values whose string
form, ``"<METHOD>:<URL>:<params>:<body>"``, is the identity used by every
backend so that persistent caches written by one process can be read by
another.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional


def now_ms() -> float:
    """Current wall-clock time in epoch milliseconds."""
    return time.time() * 1000


@dataclass(frozen=True)
class CacheKey:
    """Identity of a cacheable request.

    Attributes:
        method: HTTP method.
        url: Absolute request URL.
        params: Serialised query parameters, if any.
        body: Serialised request body, if any.
    """

    method: str
    url: str
    params: Optional[str] = None
    body: Optional[str] = None

    def to_string(self) -> str:
        return f"{self.method}:{self.url}:{self.params or ''}:{self.body or ''}"


@dataclass
class CacheEntry:
    """A cached payload with its freshness metadata.

    Attributes:
        data: The cached payload (typically an
            :class:`~courier.models.ApiResponse`).
        timestamp: Creation time in epoch milliseconds.
        ttl: Time-to-live in milliseconds; ``0`` means the entry never
            expires by time.
        etag: ``ETag`` validator from the origin response.
        last_modified: ``Last-Modified`` validator from the origin response.
    """

    data: Any
    timestamp: float
    ttl: int
    etag: Optional[str] = None
    last_modified: Optional[str] = None


class CacheStrategy(ABC):
    """Abstract base class for response caches.

    Implementations are pure in-process data structures or local stores;
    none of the methods suspend, so the engine calls them synchronously.
    """

    @abstractmethod
    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the live entry for *key*, or ``None`` on a miss or expiry."""
        ...

    @abstractmethod
    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        """Store *entry* under *key*, replacing any existing entry."""
        ...

    @abstractmethod
    def delete(self, key: CacheKey) -> None:
        """Remove *key*; a no-op when it is absent."""
        ...

    @abstractmethod
    def clear(self) -> None:
        """Remove every entry."""
        ...

    @abstractmethod
    def has(self, key: CacheKey) -> bool:
        """Return whether a live entry exists for *key*."""
        ...

    def close(self) -> None:
        """Release any resources held by the cache.  In-process caches hold none."""

    @staticmethod
    def key_string(key: CacheKey) -> str:
        return key.to_string()

    @staticmethod
    def is_expired(entry: CacheEntry, now: Optional[float] = None) -> bool:
        """Return whether *entry* is past its TTL.

        Entries with ``ttl == 0`` never expire.  Otherwise an entry is
        expired when ``now > timestamp + ttl`` (all in milliseconds).
        """
        if entry.ttl == 0:
            return False
        current = now_ms() if now is None else now
        return current > entry.timestamp + entry.ttl
