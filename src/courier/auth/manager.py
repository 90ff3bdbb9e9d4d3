"""Auth manager -- registry that turns auth settings into strategies.

The :class:`AuthManager` maps provider names (``"none"``, ``"api_key"``,
``"basic"``, ``"jwt"``) to builder functions and exposes a single
:meth:`~AuthManager.create` method that produces a ready-to-use
:class:`~courier.auth.base.AuthStrategy` from
:class:`~courier.models.AuthSettings`.

For most use cases, call :func:`create_auth_strategy`, which uses a
manager pre-loaded with every built-in provider.

See Also:
    :func:`~courier.client.engine.create_client` -- the usual caller.
"""

from __future__ import annotations

from typing import Callable, Optional

from courier.auth.api_key import ApiKeyAuth
from courier.auth.base import AuthStrategy, NoAuth
from courier.auth.basic import BasicAuth
from courier.auth.jwt import JwtAuth
from courier.auth.token_manager import TokenManager
from courier.config import resolve_credential
from courier.exceptions import ConfigError
from courier.models import AuthSettings

StrategyBuilder = Callable[[AuthSettings, Optional[TokenManager]], AuthStrategy]


class AuthManager:
    """Registry of auth strategy builders, keyed by provider name.

    Example::

        manager = create_default_manager()
        manager.register("vault", build_vault_auth)
        strategy = manager.create(settings.auth, token_manager)
    """

    def __init__(self) -> None:
        self._builders: dict[str, StrategyBuilder] = {}

    def register(self, provider: str, builder: StrategyBuilder) -> None:
        """Register *builder* for *provider*, silently replacing any existing one."""
        self._builders[provider] = builder

    def get_builder(self, provider: str) -> StrategyBuilder:
        """Retrieve the builder registered for *provider*.

        Raises:
            ConfigError: If no builder is registered for *provider*.
        """
        builder = self._builders.get(provider)
        if builder is None:
            available = ", ".join(self.list_providers()) or "(none)"
            raise ConfigError(
                f"Unknown auth provider '{provider}'. Available providers: {available}"
            )
        return builder

    def create(
        self,
        settings: AuthSettings,
        token_manager: Optional[TokenManager] = None,
    ) -> AuthStrategy:
        """Build the strategy described by *settings*.

        Args:
            settings: The ``auth`` section of the client settings.
            token_manager: Passed to strategies that persist sessions.

        Returns:
            An :class:`~courier.auth.base.AuthStrategy` that has not
            authenticated yet.

        Raises:
            ConfigError: If the provider is unknown or its required settings
                are missing or unresolvable.
        """
        return self.get_builder(settings.provider)(settings, token_manager)

    def list_providers(self) -> list[str]:
        return sorted(self._builders)


def _require_source(settings: AuthSettings) -> str:
    if not settings.source:
        raise ConfigError(f"Auth provider '{settings.provider}' requires a credential source")
    return resolve_credential(settings.source)


def _build_none(settings: AuthSettings, token_manager: Optional[TokenManager]) -> AuthStrategy:
    return NoAuth()


def _build_api_key(settings: AuthSettings, token_manager: Optional[TokenManager]) -> AuthStrategy:
    return ApiKeyAuth(
        _require_source(settings),
        header_name=settings.header_name,
        header_prefix=settings.header_prefix,
        validation_endpoint=settings.validation_endpoint,
    )


def _build_basic(settings: AuthSettings, token_manager: Optional[TokenManager]) -> AuthStrategy:
    if not settings.username:
        raise ConfigError("Auth provider 'basic' requires a username")
    return BasicAuth(
        settings.username,
        _require_source(settings),
        validation_endpoint=settings.validation_endpoint,
    )


def _build_jwt(settings: AuthSettings, token_manager: Optional[TokenManager]) -> AuthStrategy:
    if settings.keycloak is None:
        raise ConfigError("Auth provider 'jwt' requires a keycloak section")
    return JwtAuth(settings.keycloak, token_manager=token_manager, profile=settings.token_profile)


def create_default_manager() -> AuthManager:
    """Create an :class:`AuthManager` pre-loaded with the built-in providers.

    - ``none`` -- :class:`~courier.auth.base.NoAuth`.
    - ``api_key`` -- :class:`~courier.auth.api_key.ApiKeyAuth`, key read
      from ``source``.
    - ``basic`` -- :class:`~courier.auth.basic.BasicAuth`, password read
      from ``source``.
    - ``jwt`` -- :class:`~courier.auth.jwt.JwtAuth` against ``keycloak``.
    """
    manager = AuthManager()
    manager.register("none", _build_none)
    manager.register("api_key", _build_api_key)
    manager.register("basic", _build_basic)
    manager.register("jwt", _build_jwt)
    return manager


def create_auth_strategy(
    settings: AuthSettings,
    token_manager: Optional[TokenManager] = None,
    manager: Optional[AuthManager] = None,
) -> AuthStrategy:
    """Build a strategy with *manager*, or with a fresh default manager."""
    return (manager or create_default_manager()).create(settings, token_manager)
