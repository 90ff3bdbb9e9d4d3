"""Tests for the Keycloak bearer-token strategy."""

from __future__ import annotations

import base64
import json
from datetime import datetime, timedelta, timezone
from urllib.parse import parse_qs, urlsplit

import httpx
import pytest

from courier.auth.jwt import JwtAuth, TokenState
from courier.auth.token_manager import TokenManager
from courier.client import RequestEngine
from courier.exceptions import AuthenticationError
from courier.models import KeycloakConfig

TOKEN_PATH = "/realms/dev/protocol/openid-connect/token"


@pytest.fixture
def keycloak() -> KeycloakConfig:
    return KeycloakConfig(server_url="https://sso.example.com", realm="dev", client_id="cli")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _token_handler(status_code: int = 200, payload: dict | None = None):
    """Serve the token endpoint and a plain API endpoint."""
    payload = payload or {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 3600}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == TOKEN_PATH:
            return httpx.Response(status_code, json=payload)
        return httpx.Response(200, json={"auth": request.headers.get("Authorization")})

    return handler


# ---------------------------------------------------------------------------
# Token state
# ---------------------------------------------------------------------------


class TestTokenState:
    def test_no_token(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        assert auth.token_state() is TokenState.NO_TOKEN
        assert auth.is_authenticated() is False
        assert auth.get_auth_headers() == {}

    def test_token_without_expiry_never_expires(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        auth.set_tokens("access")
        assert auth.is_token_expired() is False
        assert auth.token_state() is TokenState.VALID
        assert auth.get_auth_headers() == {"Authorization": "Bearer access"}

    def test_valid(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        auth.set_tokens("access", "refresh", _now() + timedelta(minutes=10))
        assert auth.is_authenticated() is True
        assert auth.token_state() is TokenState.VALID

    def test_inside_buffer_is_expiring_soon(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        auth.set_tokens("access", "refresh", _now() + timedelta(seconds=30))
        assert auth.is_token_expired() is True
        assert auth.is_authenticated() is False
        assert auth.token_state() is TokenState.EXPIRING_SOON

    def test_past_expiry_is_expired(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        auth.set_tokens("access", None, _now() - timedelta(seconds=1))
        assert auth.token_state() is TokenState.EXPIRED

    def test_logout_clears_everything(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        auth.set_tokens("access", "refresh", _now() + timedelta(hours=1))
        auth.logout()
        assert auth.access_token is None
        assert auth.refresh_token is None
        assert auth.token_expiry is None


class TestRealmConfig:
    def test_build_auth_url(self, keycloak: KeycloakConfig) -> None:
        url = urlsplit(JwtAuth(keycloak).build_auth_url())
        assert f"{url.scheme}://{url.netloc}{url.path}" == (
            "https://sso.example.com/realms/dev/protocol/openid-connect/auth"
        )
        query = parse_qs(url.query)
        assert query["client_id"] == ["cli"]
        assert query["redirect_uri"] == ["http://localhost/callback"]
        assert query["response_type"] == ["code"]
        assert query["scope"] == ["openid profile email"]

    def test_keycloak_config_is_a_copy(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        assert auth.keycloak_config == keycloak
        assert auth.keycloak_config is not keycloak

    def test_set_keycloak_config_clears_tokens(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        auth.set_tokens("access", "refresh")
        auth.set_keycloak_config(keycloak.model_copy(update={"realm": "prod"}))
        assert auth.access_token is None
        assert auth.keycloak_config.realm == "prod"


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------


class TestRefresh:
    @pytest.mark.asyncio
    async def test_without_refresh_token(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        with pytest.raises(AuthenticationError, match="No refresh token available"):
            await auth.refresh_auth(RequestEngine("https://api.example.com"))

    @pytest.mark.asyncio
    async def test_refresh_posts_form_grant(self, keycloak: KeycloakConfig, recording_transport) -> None:
        transport = recording_transport(_token_handler())
        auth = JwtAuth(keycloak)
        auth.set_tokens("old", "old-refresh", _now() - timedelta(minutes=1))

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            await engine.refresh_auth()

        sent = transport.requests[0]
        assert str(sent.url) == f"https://sso.example.com{TOKEN_PATH}"
        assert sent.headers["content-type"] == "application/x-www-form-urlencoded"
        assert parse_qs(sent.content.decode()) == {
            "grant_type": ["refresh_token"],
            "refresh_token": ["old-refresh"],
            "client_id": ["cli"],
        }
        assert auth.access_token == "new-access"
        assert auth.refresh_token == "new-refresh"
        assert auth.token_state() is TokenState.VALID

    @pytest.mark.asyncio
    async def test_failed_refresh_clears_tokens(self, keycloak: KeycloakConfig, recording_transport) -> None:
        transport = recording_transport(_token_handler(status_code=400, payload={"error": "invalid_grant"}))
        auth = JwtAuth(keycloak)
        auth.set_tokens("old", "old-refresh")

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            with pytest.raises(AuthenticationError, match="Token refresh failed"):
                await engine.refresh_auth()

        assert auth.access_token is None
        assert auth.refresh_token is None

    @pytest.mark.asyncio
    async def test_expiry_from_jwt_when_expires_in_missing(
        self, keycloak: KeycloakConfig, recording_transport
    ) -> None:
        claims = base64.urlsafe_b64encode(json.dumps({"exp": 4102444800}).encode()).decode().rstrip("=")
        access = f"h.{claims}.s"
        transport = recording_transport(_token_handler(payload={"access_token": access}))
        auth = JwtAuth(keycloak)
        auth.set_tokens("old", "r")

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            await engine.refresh_auth()

        assert auth.token_expiry == datetime(2100, 1, 1, tzinfo=timezone.utc)
        assert auth.refresh_token is None

    @pytest.mark.asyncio
    async def test_prepare_refreshes_expired_token_before_request(
        self, keycloak: KeycloakConfig, recording_transport
    ) -> None:
        transport = recording_transport(_token_handler())
        auth = JwtAuth(keycloak)
        auth.set_tokens("old", "old-refresh", _now() + timedelta(seconds=10))

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            response = await engine.get("/me")

        assert [r.url.path for r in transport.requests] == [TOKEN_PATH, "/me"]
        assert response.body == {"auth": "Bearer new-access"}

    @pytest.mark.asyncio
    async def test_prepare_without_refresh_token_sends_as_is(
        self, keycloak: KeycloakConfig, recording_transport
    ) -> None:
        transport = recording_transport(_token_handler())
        auth = JwtAuth(keycloak)
        auth.set_tokens("old", None, _now() - timedelta(minutes=1))

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            await engine.get("/me")

        assert [r.url.path for r in transport.requests] == ["/me"]

    @pytest.mark.asyncio
    async def test_refreshed_tokens_are_persisted(
        self, keycloak: KeycloakConfig, recording_transport, token_manager: TokenManager
    ) -> None:
        transport = recording_transport(_token_handler())
        auth = JwtAuth(keycloak, token_manager=token_manager, profile="sso")
        auth.set_tokens("old", "old-refresh")

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            await engine.refresh_auth()

        stored = await token_manager.credential_store.retrieve("sso")
        assert stored.token == "new-access"
        assert stored.type == "jwt"
        assert stored.refresh_token == "new-refresh"


# ---------------------------------------------------------------------------
# Authenticate
# ---------------------------------------------------------------------------


class TestAuthenticate:
    @pytest.mark.asyncio
    async def test_without_stored_session_names_login_url(self, keycloak: KeycloakConfig) -> None:
        auth = JwtAuth(keycloak)
        with pytest.raises(AuthenticationError) as exc_info:
            await auth.authenticate(RequestEngine("https://api.example.com"))
        message = str(exc_info.value)
        assert message.startswith("OAuth authentication failed")
        assert "openid-connect/auth?" in message

    @pytest.mark.asyncio
    async def test_restores_valid_session(
        self, keycloak: KeycloakConfig, token_manager: TokenManager
    ) -> None:
        expires = _now() + timedelta(hours=1)
        await token_manager.store_token("sso", "stored", type="jwt", expires_at=expires, refresh_token="r")
        auth = JwtAuth(keycloak, token_manager=token_manager, profile="sso")

        await auth.authenticate(RequestEngine("https://api.example.com"))

        assert auth.access_token == "stored"
        assert auth.refresh_token == "r"
        assert auth.is_authenticated() is True

    @pytest.mark.asyncio
    async def test_expired_session_is_refreshed(
        self, keycloak: KeycloakConfig, token_manager: TokenManager, recording_transport
    ) -> None:
        expires = _now() - timedelta(minutes=1)
        await token_manager.store_token("sso", "stale", type="jwt", expires_at=expires, refresh_token="r")
        transport = recording_transport(_token_handler())
        auth = JwtAuth(keycloak, token_manager=token_manager, profile="sso")

        async with RequestEngine("https://api.example.com", auth, transport=transport) as engine:
            await engine.authenticate()

        assert auth.access_token == "new-access"
        assert await token_manager.retrieve_valid_token("sso") == "new-access"

    @pytest.mark.asyncio
    async def test_expired_session_without_refresh_token_fails(
        self, keycloak: KeycloakConfig, token_manager: TokenManager
    ) -> None:
        expires = _now() - timedelta(minutes=1)
        await token_manager.store_token("sso", "stale", type="jwt", expires_at=expires)
        auth = JwtAuth(keycloak, token_manager=token_manager, profile="sso")

        with pytest.raises(AuthenticationError, match="interactive login is not supported"):
            await auth.authenticate(RequestEngine("https://api.example.com"))
