"""Token persistence with expiry awareness.

:class:`TokenManager` sits on top of
:class:`~courier.auth.credential_store.CredentialStore` and adds the notion
of validity: a token whose expiry falls within :attr:`expiry_buffer` of now
is treated as already expired, so callers never send a token that lapses
in flight.
"""

from __future__ import annotations

import base64
import json
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import BaseModel

from courier.auth.credential_store import CredentialStore, Credentials, CredentialType
from courier.exceptions import TokenExpiredError

logger = logging.getLogger(__name__)

_TOKEN_ALPHABET = string.ascii_letters + string.digits + "-_"


class TokenProfile(BaseModel):
    """Summary of one stored token, without the secret itself."""

    profile: str
    type: CredentialType
    expires_at: Optional[datetime] = None


class TokenManager:
    """Store, validate and revoke tokens by profile name.

    Args:
        credential_store: Where records are persisted.
        expiry_buffer: Safety margin subtracted from every expiry.

    Example::

        manager = TokenManager(CredentialStore(MemorySecretStore()))
        await manager.store_token("ci", "glpat-...")
        token = await manager.retrieve_valid_token("ci")
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        expiry_buffer: timedelta = timedelta(minutes=5),
    ) -> None:
        self._store = credential_store
        self._expiry_buffer = expiry_buffer

    @property
    def expiry_buffer(self) -> timedelta:
        return self._expiry_buffer

    @property
    def credential_store(self) -> CredentialStore:
        return self._store

    # ------------------------------------------------------------------ #
    # Token operations
    # ------------------------------------------------------------------ #

    async def store_token(
        self,
        profile: str,
        token: str,
        type: CredentialType = "token",
        expires_at: Optional[datetime] = None,
        refresh_token: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Credentials:
        """Persist *token* under *profile*, replacing any previous record.

        ``metadata`` is stamped with ``stored_at`` (ISO-8601, UTC).

        Returns:
            The stored :class:`Credentials`.
        """
        meta = dict(metadata or {})
        meta["stored_at"] = datetime.now(timezone.utc).isoformat()
        credentials = Credentials(
            profile=profile,
            type=type,
            token=token,
            refresh_token=refresh_token,
            expires_at=_as_aware(expires_at),
            metadata=meta,
        )
        await self._store.store(credentials)
        logger.debug("Stored %s token for profile '%s'", type, profile)
        return credentials

    async def retrieve_valid_token(self, profile: str) -> Optional[str]:
        """Return the token for *profile* if it is still valid.

        Returns:
            The token, or ``None`` when nothing is stored for *profile*.

        Raises:
            TokenExpiredError: If the token expires within the buffer.  The
                stored record is attached as ``credentials`` and left in
                place so a refresh token can still be used.
            CredentialStorageError: On backend failures.
        """
        credentials = await self._store.retrieve(profile)
        if credentials is None:
            return None
        if self.is_expired(credentials):
            logger.info("Token for profile '%s' has expired", profile)
            raise TokenExpiredError(credentials)
        return credentials.token

    async def revoke_token(self, profile: str) -> None:
        """Delete the record for *profile*.  Unknown profiles are a no-op."""
        await self._store.delete(profile)
        logger.debug("Revoked token for profile '%s'", profile)

    async def list_token_profiles(self) -> list[TokenProfile]:
        """List every stored token without exposing the secrets."""
        profiles: list[TokenProfile] = []
        for name in await self._store.list_profiles():
            credentials = await self._store.retrieve(name)
            if credentials is None:
                continue
            profiles.append(
                TokenProfile(
                    profile=credentials.profile,
                    type=credentials.type,
                    expires_at=credentials.expires_at,
                )
            )
        return profiles

    def is_expired(self, credentials: Credentials, now: Optional[datetime] = None) -> bool:
        """Whether *credentials* expire within the buffer.  No expiry never expires."""
        if credentials.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return _as_aware(credentials.expires_at) <= now + self._expiry_buffer

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def parse_jwt_expiration(jwt: str) -> Optional[datetime]:
        """Read the ``exp`` claim of a JWT without verifying its signature.

        Returns:
            The expiry as an aware UTC datetime, or ``None`` if *jwt* is not
            a three-segment token with a decodable payload carrying an
            integer ``exp``.
        """
        parts = jwt.split(".")
        if len(parts) != 3:
            return None
        payload = parts[1]
        payload += "=" * (-len(payload) % 4)
        try:
            claims = json.loads(base64.urlsafe_b64decode(payload))
        except (ValueError, TypeError):
            return None
        if not isinstance(claims, dict):
            return None
        exp = claims.get("exp")
        if not isinstance(exp, int) or isinstance(exp, bool):
            return None
        try:
            return datetime.fromtimestamp(exp, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    @staticmethod
    def generate_secure_token(length: int = 32) -> str:
        """Return a random URL-safe token of *length* characters."""
        if length < 1:
            raise ValueError("length must be positive")
        return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(length))


def _as_aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)
