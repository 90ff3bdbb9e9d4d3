"""Disk-based cache strategy backed by :mod:`diskcache`.

Entries are stored under the shared key string
(``"<METHOD>:<URL>:<params>:<body>"``) so that several processes pointed at
the same directory see the same cache.  Entries with a positive TTL are
also given a :mod:`diskcache` expiry, which lets the store reclaim space on
its own; the :meth:`~courier.cache.base.CacheStrategy.is_expired` check is
still applied on every read.

See Also:
    :func:`~courier.config.get_cache_dir` -- the default cache location.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import diskcache

from courier.cache.base import CacheEntry, CacheKey, CacheStrategy


class DiskCache(CacheStrategy):
    """Persistent cache stored in a :class:`diskcache.Cache` directory.

    Args:
        directory: Root directory for the cache.  A ``responses/``
            subdirectory is created inside it.

    Example::

        from courier.config import get_cache_dir

        cache = DiskCache(get_cache_dir())
        ...
        cache.close()
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory) / "responses"
        self._cache = diskcache.Cache(str(self._directory))

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: CacheKey) -> Optional[CacheEntry]:
        key_str = self.key_string(key)
        entry = self._cache.get(key_str)
        if entry is None:
            return None
        if self.is_expired(entry):
            self._cache.delete(key_str)
            return None
        return entry

    def set(self, key: CacheKey, entry: CacheEntry) -> None:
        expire = entry.ttl / 1000 if entry.ttl > 0 else None
        self._cache.set(self.key_string(key), entry, expire=expire)

    def delete(self, key: CacheKey) -> None:
        self._cache.delete(self.key_string(key))

    def clear(self) -> None:
        self._cache.clear()

    def has(self, key: CacheKey) -> bool:
        return self.get(key) is not None

    def stats(self) -> dict[str, Any]:
        """Return ``size`` (entry count) and ``directory`` (str path)."""
        return {"size": len(self._cache), "directory": str(self._directory)}

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()
