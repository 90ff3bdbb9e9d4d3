"""Static API-key authentication strategy.

This module provides :class:`ApiKeyAuth`, which injects a fixed key into a
configurable header, optionally behind a prefix such as ``Bearer``.  The
strategy only reports itself authenticated after one successful
verification call; merely holding a key is not enough.

Provider presets (:meth:`ApiKeyAuth.gitlab`, :meth:`ApiKeyAuth.generic`)
are convenience constructors, not separate types.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from courier.auth.base import AuthStrategy
from courier.exceptions import AuthenticationError

if TYPE_CHECKING:
    from courier.client.engine import RequestEngine


class ApiKeyAuth(AuthStrategy):
    """Authenticate with a static key sent in a request header.

    Args:
        api_key: The key.  An empty key produces no headers and cannot
            authenticate.
        header_name: Header carrying the key.
        header_prefix: Optional value prefix; the header value becomes
            ``"<prefix> <key>"``.
        validation_endpoint: Endpoint fetched once by :meth:`authenticate`
            to verify the key.
    """

    def __init__(
        self,
        api_key: str,
        header_name: str = "X-API-Key",
        header_prefix: str = "",
        validation_endpoint: str = "/auth/validate",
    ) -> None:
        self._api_key = api_key
        self._header_name = header_name
        self._header_prefix = header_prefix
        self._validation_endpoint = validation_endpoint
        self._authenticated = False

    @classmethod
    def gitlab(cls, token: str) -> ApiKeyAuth:
        """Preset for GitLab personal/project access tokens."""
        return cls(token, "Authorization", "Bearer", validation_endpoint="/api/v4/user")

    @classmethod
    def generic(cls, token: str, validation_endpoint: str = "/auth/validate") -> ApiKeyAuth:
        """Preset for APIs expecting a bare ``X-API-Key`` header."""
        return cls(token, "X-API-Key", "", validation_endpoint=validation_endpoint)

    @property
    def auth_type(self) -> str:
        return "api_key"

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def header_name(self) -> str:
        return self._header_name

    @property
    def header_prefix(self) -> str:
        return self._header_prefix

    def set_api_key(self, api_key: str) -> None:
        """Replace the key; the strategy must authenticate again."""
        self._api_key = api_key
        self._authenticated = False

    def set_header_name(self, header_name: str) -> None:
        self._header_name = header_name

    def set_header_prefix(self, header_prefix: str) -> None:
        self._header_prefix = header_prefix

    async def authenticate(self, engine: RequestEngine) -> None:
        """Verify the key with one uncached call to the validation endpoint.

        Raises:
            AuthenticationError: If the key is empty, or if the verification
                call fails for any reason (the cause is in the message).
        """
        if not self._api_key:
            raise AuthenticationError("API key is required")

        try:
            await engine.get(self._validation_endpoint, use_cache=False)
        except Exception as exc:
            self._authenticated = False
            raise AuthenticationError(f"API key validation failed: {exc}") from exc
        self._authenticated = True

    def is_authenticated(self) -> bool:
        return self._authenticated and bool(self._api_key)

    def get_auth_headers(self) -> dict[str, str]:
        if not self._api_key:
            return {}
        value = f"{self._header_prefix} {self._api_key}" if self._header_prefix else self._api_key
        return {self._header_name: value}
