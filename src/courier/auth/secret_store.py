"""Secret vault collaborators for the credential layer.

The credential layer needs exactly three operations from its host:
``get``, ``store`` and ``delete`` on string keys and values.  They are
captured by the :class:`SecretStore` protocol.  Two implementations ship
with courier:

- :class:`MemorySecretStore` -- a dict, for tests and short-lived processes.
- :class:`FileSecretStore` -- one file per key under a directory
  (``~/.local/share/courier/secrets`` by default), written atomically with
  ``0o600`` permissions so secrets are never world-readable, even
  momentarily.

Host applications with a native keychain implement the protocol themselves.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable
from urllib.parse import quote

from courier.config import atomic_write, get_data_dir


@runtime_checkable
class SecretStore(Protocol):
    """Opaque asynchronous key-value secret vault."""

    async def get(self, key: str) -> Optional[str]: ...

    async def store(self, key: str, value: str) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemorySecretStore:
    """Dict-backed :class:`SecretStore`."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def store(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class FileSecretStore:
    """File-backed :class:`SecretStore`.

    Each key maps to one file named after the percent-encoded key.  File
    I/O runs in a worker thread so the event loop is never blocked.

    Args:
        directory: Where secret files live.  Defaults to
            ``<data dir>/secrets``.
    """

    def __init__(self, directory: Optional[Path] = None) -> None:
        self._directory = Path(directory) if directory else get_data_dir() / "secrets"

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}.secret"

    async def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.is_file():
            return None
        return await asyncio.to_thread(path.read_text, encoding="utf-8")

    async def store(self, key: str, value: str) -> None:
        await asyncio.to_thread(atomic_write, self.path_for(key), value, 0o600)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self.path_for(key).unlink, missing_ok=True)
