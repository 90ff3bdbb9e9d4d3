"""Authentication strategies and credential persistence for courier.

The main entry points are:

- :class:`AuthStrategy` -- abstract base class injected into the request
  engine.  Built-ins: :class:`NoAuth`, :class:`ApiKeyAuth`,
  :class:`BasicAuth` and :class:`JwtAuth`.
- :func:`create_auth_strategy` -- builds a strategy from
  :class:`~courier.models.AuthSettings`.
- :class:`TokenManager` over :class:`CredentialStore` over a
  :class:`SecretStore` -- named, expiry-aware token storage.

Typical usage::

    from courier.auth import ApiKeyAuth
    from courier.client import RequestEngine

    async with RequestEngine("https://gitlab.com", ApiKeyAuth.gitlab(token)) as engine:
        await engine.authenticate()
"""

from courier.auth.api_key import ApiKeyAuth
from courier.auth.base import AuthStrategy, NoAuth
from courier.auth.basic import BasicAuth
from courier.auth.credential_store import CredentialStore, Credentials
from courier.auth.jwt import JwtAuth, TokenState
from courier.auth.manager import AuthManager, create_auth_strategy, create_default_manager
from courier.auth.secret_store import FileSecretStore, MemorySecretStore, SecretStore
from courier.auth.token_manager import TokenManager, TokenProfile

__all__ = [
    "ApiKeyAuth",
    "AuthManager",
    "AuthStrategy",
    "BasicAuth",
    "CredentialStore",
    "Credentials",
    "FileSecretStore",
    "JwtAuth",
    "MemorySecretStore",
    "NoAuth",
    "SecretStore",
    "TokenManager",
    "TokenProfile",
    "TokenState",
    "create_auth_strategy",
    "create_default_manager",
]
