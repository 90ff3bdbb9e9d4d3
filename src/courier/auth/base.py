"""Abstract base class for authentication strategies.

A strategy owns one kind of authentication material and knows how to turn
it into request headers and how to establish or refresh a session.  It is
injected into :class:`~courier.client.engine.RequestEngine`, which calls
:meth:`AuthStrategy.prepare` and :meth:`AuthStrategy.get_auth_headers` on
every request but never :meth:`AuthStrategy.authenticate` on its own.

To implement a new strategy, subclass :class:`AuthStrategy`, set
:attr:`~AuthStrategy.auth_type`, and implement :meth:`authenticate`,
:meth:`is_authenticated` and :meth:`get_auth_headers`.  Override
:meth:`refresh_auth` for token-refresh logic and :meth:`prepare` for
proactive work before each request.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from courier.client.engine import RequestEngine


class AuthStrategy(ABC):
    """Abstract base class for authentication strategies.

    Strategies receive the engine they are attached to as an argument
    whenever they need network access (verification calls, token refresh),
    so one strategy instance never holds a reference cycle to its engine.
    """

    @property
    @abstractmethod
    def auth_type(self) -> str:
        """Return the unique identifier of this strategy (e.g. ``"jwt"``)."""
        ...

    @abstractmethod
    async def authenticate(self, engine: RequestEngine) -> None:
        """Establish a session.

        Raises:
            AuthenticationError: If credentials are missing or rejected.
        """
        ...

    @abstractmethod
    def is_authenticated(self) -> bool:
        """Return whether a usable session is currently held."""
        ...

    @abstractmethod
    def get_auth_headers(self) -> dict[str, str]:
        """Return the headers to merge into every outgoing request."""
        ...

    async def refresh_auth(self, engine: RequestEngine) -> None:
        """Refresh the session.

        The default implementation simply re-authenticates from scratch.
        Strategies holding refresh tokens override this.
        """
        await self.authenticate(engine)

    async def prepare(self, engine: RequestEngine) -> None:
        """Hook run by the engine before each request.  No-op by default."""
        return None


class NoAuth(AuthStrategy):
    """Strategy for unauthenticated APIs: no headers, always authenticated."""

    @property
    def auth_type(self) -> str:
        return "none"

    async def authenticate(self, engine: RequestEngine) -> None:
        return None

    def is_authenticated(self) -> bool:
        return True

    def get_auth_headers(self) -> dict[str, str]:
        return {}
