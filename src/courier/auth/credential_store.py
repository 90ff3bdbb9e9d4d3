"""Named credential records persisted to a secret vault.

:class:`CredentialStore` serialises one :class:`Credentials` record per
profile into a :class:`~courier.auth.secret_store.SecretStore` under
``<namespace>.<profile>`` and keeps a JSON list of known profiles under
``<namespace>.index`` so that profiles can be enumerated on backends that
cannot list their keys.

Profile names are unique: storing under an existing name overwrites the
previous record.  Every backend failure is wrapped in
:class:`~courier.exceptions.CredentialStorageError`.

Records are always read back from the vault, so several stores sharing a
backend observe each other's writes.  Index updates are serialised per
store instance.

See Also:
    :class:`~courier.auth.token_manager.TokenManager` -- the token-aware
    layer built on top of this store.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from courier.auth.secret_store import SecretStore
from courier.exceptions import CredentialStorageError

logger = logging.getLogger(__name__)

CredentialType = Literal["token", "jwt", "oauth"]


class Credentials(BaseModel):
    """A single stored credential record.

    Attributes:
        profile: Caller-chosen unique name of the record.
        type: ``"token"`` (opaque), ``"jwt"`` or ``"oauth"``.
        token: The access token or key.
        refresh_token: Optional refresh token.
        expires_at: Optional expiry.  ``None`` means the token never expires.
        metadata: Arbitrary context such as ``stored_at``.
    """

    profile: str
    type: CredentialType = "token"
    token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = Field(default=None, description="None = never expires")
    metadata: dict[str, Any] = Field(default_factory=dict)


class CredentialStore:
    """Read/write credential records through a secret vault.

    Args:
        secret_store: The vault backend.
        namespace: Prefix for every key written to the vault.

    Example::

        store = CredentialStore(MemorySecretStore())
        await store.store(Credentials(profile="gitlab", token="glpat-..."))
        creds = await store.retrieve("gitlab")
    """

    def __init__(self, secret_store: SecretStore, namespace: str = "courier.auth") -> None:
        self._secrets = secret_store
        self._namespace = namespace
        self._index_lock = asyncio.Lock()

    def _key(self, profile: str) -> str:
        return f"{self._namespace}.{profile}"

    @property
    def _index_key(self) -> str:
        return f"{self._namespace}.index"

    async def store(self, credentials: Credentials) -> None:
        """Persist *credentials*, overwriting any record with the same profile.

        Raises:
            CredentialStorageError: If the vault rejects the write.
        """
        try:
            await self._secrets.store(self._key(credentials.profile), credentials.model_dump_json())
            await self._update_index(credentials.profile, add=True)
        except CredentialStorageError:
            raise
        except Exception as exc:
            raise CredentialStorageError("Failed to store credentials", exc) from exc

    async def retrieve(self, profile: str) -> Optional[Credentials]:
        """Load the record for *profile*.

        Returns:
            The :class:`Credentials`, or ``None`` if nothing is stored.

        Raises:
            CredentialStorageError: If the vault fails or the stored record
                cannot be decoded.
        """
        try:
            raw = await self._secrets.get(self._key(profile))
        except Exception as exc:
            raise CredentialStorageError("Failed to retrieve credentials", exc) from exc
        if raw is None:
            return None

        try:
            credentials = Credentials.model_validate_json(raw)
        except ValueError as exc:
            raise CredentialStorageError(
                f"Stored credentials for '{profile}' are corrupt", exc
            ) from exc
        return credentials

    async def delete(self, profile: str) -> None:
        """Remove the record for *profile*.  Unknown profiles are a no-op."""
        try:
            await self._secrets.delete(self._key(profile))
            await self._update_index(profile, add=False)
        except CredentialStorageError:
            raise
        except Exception as exc:
            raise CredentialStorageError("Failed to delete credentials", exc) from exc

    async def list_profiles(self) -> list[str]:
        """Return every stored profile name, sorted."""
        try:
            raw = await self._secrets.get(self._index_key)
        except Exception as exc:
            raise CredentialStorageError("Failed to list profiles", exc) from exc
        if not raw:
            return []
        try:
            return sorted(json.loads(raw))
        except ValueError:
            logger.warning("Credential index under '%s' is corrupt; ignoring it", self._index_key)
            return []

    async def clear(self) -> None:
        """Remove every stored record and the index."""
        for profile in await self.list_profiles():
            await self.delete(profile)
        try:
            await self._secrets.delete(self._index_key)
        except Exception as exc:
            raise CredentialStorageError("Failed to clear credentials", exc) from exc

    async def _update_index(self, profile: str, add: bool) -> None:
        # The read and the write of the index must not interleave with
        # another coroutine updating it.
        async with self._index_lock:
            profiles = set(await self.list_profiles())
            if add:
                profiles.add(profile)
            else:
                profiles.discard(profile)
            await self._secrets.store(self._index_key, json.dumps(sorted(profiles)))
