"""HTTP Basic authentication strategy.

:class:`BasicAuth` sends ``Authorization: Basic base64(user:password)`` and,
like :class:`~courier.auth.api_key.ApiKeyAuth`, verifies the credentials
with one call before reporting itself authenticated.
"""

from __future__ import annotations

import base64
from typing import TYPE_CHECKING

from courier.auth.base import AuthStrategy
from courier.exceptions import AuthenticationError

if TYPE_CHECKING:
    from courier.client.engine import RequestEngine


class BasicAuth(AuthStrategy):
    """Authenticate with a username and password."""

    def __init__(
        self,
        username: str,
        password: str,
        validation_endpoint: str = "/auth/validate",
    ) -> None:
        self._username = username
        self._password = password
        self._validation_endpoint = validation_endpoint
        self._authenticated = False

    @property
    def auth_type(self) -> str:
        return "basic"

    @property
    def username(self) -> str:
        return self._username

    def set_credentials(self, username: str, password: str) -> None:
        self._username = username
        self._password = password
        self._authenticated = False

    async def authenticate(self, engine: RequestEngine) -> None:
        if not self._username or not self._password:
            raise AuthenticationError("Username and password are required")

        try:
            await engine.get(self._validation_endpoint, use_cache=False)
        except Exception as exc:
            self._authenticated = False
            raise AuthenticationError(f"Authentication failed: {exc}") from exc
        self._authenticated = True

    def is_authenticated(self) -> bool:
        return self._authenticated

    def get_auth_headers(self) -> dict[str, str]:
        if not self._username or not self._password:
            return {}
        encoded = base64.b64encode(f"{self._username}:{self._password}".encode()).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}
