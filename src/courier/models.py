"""Canonical Pydantic models shared across courier modules.

The models fall into two groups:

**Wire models** -- built and consumed by the request engine:
    :class:`HTTPMethod`, :class:`RequestConfig`, and :class:`ApiResponse`.

**Settings models** -- the flat configuration record supplied by the host
(see :func:`~courier.config.load_settings`):
    :class:`KeycloakConfig`, :class:`CacheConfig`, :class:`AuthSettings`,
    and :class:`ClientSettings`.

All models use Pydantic v2.  Wire models are frozen; "modifying" one means
``model_copy(update=...)``.
"""

from __future__ import annotations

import enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Wire models ---


class HTTPMethod(str, enum.Enum):
    """HTTP methods the request engine can dispatch."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


class RequestConfig(BaseModel):
    """A fully built outgoing request.

    Construction performs no semantic checks: an empty ``url`` or a
    non-positive ``timeout`` is representable so that
    :meth:`~courier.client.engine.RequestEngine.validate_request` can
    reject it before any I/O happens.

    Example::

        RequestConfig(
            method=HTTPMethod.GET,
            url="https://api.example.com/users?page=1",
            params={"page": 1},
            timeout=5.0,
        )
    """

    model_config = ConfigDict(frozen=True)

    method: Optional[HTTPMethod] = Field(description="HTTP method")
    url: str = Field(description="Absolute URL including the query string")
    headers: dict[str, str] = Field(default_factory=dict)
    params: Optional[dict[str, Any]] = Field(
        default=None,
        description="Query parameters already encoded into url; kept for cache keys",
    )
    body: Any = Field(default=None, description="JSON-serialisable request body")
    timeout: float = Field(default=5.0, description="Per-attempt timeout in seconds")


class ApiResponse(BaseModel):
    """A decoded HTTP response."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    status_text: str = ""
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @property
    def ok(self) -> bool:
        """Whether the status code is in the 2xx range."""
        return 200 <= self.status_code < 300


# --- Settings models ---


class KeycloakConfig(BaseModel):
    """Identity-provider coordinates used by :class:`~courier.auth.jwt.JwtAuth`."""

    server_url: str = Field(description="Keycloak base URL, e.g. https://sso.example.com")
    realm: str
    client_id: str
    redirect_uri: str = Field(default="http://localhost/callback")

    @property
    def realm_url(self) -> str:
        """The OpenID Connect endpoint root for this realm."""
        return f"{self.server_url.rstrip('/')}/realms/{self.realm}/protocol/openid-connect"


class CacheConfig(BaseModel):
    """Response cache settings."""

    enabled: bool = Field(default=False, description="Enable response caching")
    backend: Literal["memory", "disk"] = Field(default="memory")
    ttl_ms: int = Field(default=300_000, description="Default TTL in milliseconds (0 = never)")
    max_size: int = Field(default=100, description="Max entries for the in-memory cache")
    eviction_policy: Literal["lru", "fifo"] = Field(default="lru")
    respect_cache_headers: bool = Field(
        default=True, description="Derive TTL from Cache-Control when present"
    )


class AuthSettings(BaseModel):
    """Authentication section of :class:`ClientSettings`.

    Example::

        AuthSettings(
            provider="api_key",
            header_name="Authorization",
            header_prefix="Bearer",
            source="env:GITLAB_TOKEN",
        )
    """

    model_config = ConfigDict(extra="allow")

    provider: Literal["none", "api_key", "jwt", "basic"] = Field(default="none")
    header_name: str = Field(default="X-API-Key", description="Header for api_key auth")
    header_prefix: str = Field(default="", description="Value prefix, e.g. 'Bearer'")
    source: Optional[str] = Field(
        default=None,
        description="Credential source: env:VAR, file:/path, literal:VALUE",
    )
    validation_endpoint: str = Field(
        default="/auth/validate", description="Endpoint used to verify static credentials"
    )
    username: Optional[str] = Field(default=None, description="User name for basic auth")
    keycloak: Optional[KeycloakConfig] = None
    token_profile: Optional[str] = Field(
        default=None, description="Credential profile used to persist JWT sessions"
    )


class ClientSettings(BaseModel):
    """Flat configuration record consumed when constructing a client."""

    base_url: str = ""
    timeout: float = Field(default=5.0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Retry attempts after the first")
    retry_delay: float = Field(default=1.0, description="Base backoff delay in seconds")
    default_headers: dict[str, str] = Field(default_factory=dict)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    auth: AuthSettings = Field(default_factory=AuthSettings)
