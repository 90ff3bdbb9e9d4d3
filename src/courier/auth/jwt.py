"""Keycloak / OpenID Connect bearer-token strategy.

:class:`JwtAuth` holds an access token, an optional refresh token and an
optional expiry.  A token is considered expired once now is within
``expiry_buffer`` (60 s by default) of its expiry; the engine calls
:meth:`JwtAuth.prepare` before each request, which refreshes such a token
through the realm's ``token`` endpoint when a refresh token is held.

Interactive login (the authorization-code browser flow) is not performed
here.  :meth:`JwtAuth.build_auth_url` gives the URL the host application
should open; the resulting tokens are handed back with
:meth:`JwtAuth.set_tokens`, or restored from a
:class:`~courier.auth.token_manager.TokenManager` profile.
"""

from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Optional
from urllib.parse import urlencode

import httpx

from courier.auth.base import AuthStrategy
from courier.auth.token_manager import TokenManager
from courier.exceptions import AuthenticationError, TokenExpiredError
from courier.models import KeycloakConfig

if TYPE_CHECKING:
    from courier.client.engine import RequestEngine

logger = logging.getLogger(__name__)


class TokenState(str, enum.Enum):
    """Lifecycle state of the held access token."""

    NO_TOKEN = "no_token"
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


class JwtAuth(AuthStrategy):
    """Bearer-token authentication against a Keycloak realm.

    Args:
        keycloak_config: Realm coordinates.
        token_manager: Optional persistence for the session.  When set
            together with *profile*, :meth:`authenticate` restores tokens
            from it and :meth:`refresh_auth` writes refreshed tokens back.
        profile: Credential profile name used with *token_manager*.
        expiry_buffer: How long before the real expiry a token is treated
            as expired.
    """

    def __init__(
        self,
        keycloak_config: KeycloakConfig,
        token_manager: Optional[TokenManager] = None,
        profile: Optional[str] = None,
        expiry_buffer: timedelta = timedelta(seconds=60),
    ) -> None:
        self._keycloak = keycloak_config
        self._token_manager = token_manager
        self._profile = profile
        self._expiry_buffer = expiry_buffer
        self._access_token: Optional[str] = None
        self._refresh_token: Optional[str] = None
        self._token_expiry: Optional[datetime] = None

    @property
    def auth_type(self) -> str:
        return "jwt"

    # ------------------------------------------------------------------ #
    # Token state
    # ------------------------------------------------------------------ #

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def refresh_token(self) -> Optional[str]:
        return self._refresh_token

    @property
    def token_expiry(self) -> Optional[datetime]:
        return self._token_expiry

    @property
    def profile(self) -> Optional[str]:
        return self._profile

    def set_tokens(
        self,
        access_token: str,
        refresh_token: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> None:
        """Install a token set obtained elsewhere (e.g. an interactive login)."""
        if expires_at is not None and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        self._access_token = access_token
        self._refresh_token = refresh_token or None
        self._token_expiry = expires_at

    def logout(self) -> None:
        """Forget every token held in memory."""
        self._access_token = None
        self._refresh_token = None
        self._token_expiry = None

    def is_token_expired(self, now: Optional[datetime] = None) -> bool:
        """Whether the token expires within the buffer.  No expiry never expires."""
        if self._token_expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now >= self._token_expiry - self._expiry_buffer

    def token_state(self, now: Optional[datetime] = None) -> TokenState:
        if not self._access_token:
            return TokenState.NO_TOKEN
        now = now or datetime.now(timezone.utc)
        if self._token_expiry is None:
            return TokenState.VALID
        if now >= self._token_expiry:
            return TokenState.EXPIRED
        if self.is_token_expired(now):
            return TokenState.EXPIRING_SOON
        return TokenState.VALID

    def is_authenticated(self) -> bool:
        return bool(self._access_token) and not self.is_token_expired()

    def get_auth_headers(self) -> dict[str, str]:
        if not self._access_token:
            return {}
        return {"Authorization": f"Bearer {self._access_token}"}

    # ------------------------------------------------------------------ #
    # Realm configuration
    # ------------------------------------------------------------------ #

    @property
    def keycloak_config(self) -> KeycloakConfig:
        """A copy of the realm configuration."""
        return self._keycloak.model_copy()

    def set_keycloak_config(self, config: KeycloakConfig) -> None:
        """Switch realms.  Tokens from the old realm are discarded."""
        self._keycloak = config
        self.logout()

    def build_auth_url(self) -> str:
        """Return the authorization-code login URL for this realm."""
        query = urlencode(
            {
                "client_id": self._keycloak.client_id,
                "redirect_uri": self._keycloak.redirect_uri,
                "response_type": "code",
                "scope": "openid profile email",
            }
        )
        return f"{self._keycloak.realm_url}/auth?{query}"

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    async def authenticate(self, engine: RequestEngine) -> None:
        """Restore a session from the token manager, refreshing if needed.

        Raises:
            AuthenticationError: If no stored session can be used.  The
                message names the authorization URL to log in at.
        """
        if self._token_manager is not None and self._profile:
            try:
                token = await self._token_manager.retrieve_valid_token(self._profile)
            except TokenExpiredError as exc:
                credentials = exc.credentials
                if credentials is not None and credentials.refresh_token:
                    logger.info("Stored token for '%s' expired; refreshing", self._profile)
                    self.set_tokens(
                        credentials.token, credentials.refresh_token, credentials.expires_at
                    )
                    await self.refresh_auth(engine)
                    return
            else:
                if token is not None:
                    credentials = await self._token_manager.credential_store.retrieve(
                        self._profile
                    )
                    self.set_tokens(
                        token,
                        credentials.refresh_token if credentials else None,
                        credentials.expires_at if credentials else None,
                    )
                    return

        raise AuthenticationError(
            "OAuth authentication failed: interactive login is not supported; "
            f"authorize at {self.build_auth_url()}"
        )

    async def refresh_auth(self, engine: RequestEngine) -> None:
        """Exchange the refresh token for a new token set.

        Raises:
            AuthenticationError: If no refresh token is held, or if the
                exchange fails.  On failure every token is cleared.
        """
        if not self._refresh_token:
            raise AuthenticationError("No refresh token available")

        try:
            data = await self._request_token(engine)
        except Exception as exc:
            self.logout()
            logger.warning("Token refresh failed: %s", exc)
            raise AuthenticationError(f"Token refresh failed: {exc}") from exc

        expires_at: Optional[datetime] = None
        expires_in = data.get("expires_in")
        if isinstance(expires_in, (int, float)):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        else:
            expires_at = TokenManager.parse_jwt_expiration(data["access_token"])
        self.set_tokens(data["access_token"], data.get("refresh_token"), expires_at)
        logger.debug("Access token refreshed")

        if self._token_manager is not None and self._profile:
            await self._token_manager.store_token(
                self._profile,
                self._access_token or "",
                type="jwt",
                expires_at=self._token_expiry,
                refresh_token=self._refresh_token,
            )

    async def prepare(self, engine: RequestEngine) -> None:
        if self.is_token_expired() and self._refresh_token:
            await self.refresh_auth(engine)

    async def _request_token(self, engine: RequestEngine) -> dict[str, Any]:
        try:
            response = await engine.http.post(
                f"{self._keycloak.realm_url}/token",
                data={
                    "grant_type": "refresh_token",
                    "refresh_token": self._refresh_token or "",
                    "client_id": self._keycloak.client_id,
                },
                timeout=engine.timeout,
            )
        except httpx.HTTPError as exc:
            raise AuthenticationError(f"token endpoint unreachable: {exc}") from exc

        if not response.is_success:
            raise AuthenticationError(f"{response.status_code} {response.reason_phrase}")
        payload = response.json()
        if not isinstance(payload, dict) or not payload.get("access_token"):
            raise AuthenticationError("token response has no access_token")
        return payload
