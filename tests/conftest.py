"""Shared test fixtures for courier.

Provides isolated config directories, mock transports that record every
request they see, and a ready-wired credential stack.  These fixtures are
automatically discovered by pytest and available to all test modules
without explicit imports.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from courier.auth.credential_store import CredentialStore
from courier.auth.secret_store import MemorySecretStore
from courier.auth.token_manager import TokenManager


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path so that tests never touch real user
    config, and clears all COURIER_* environment variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))
    monkeypatch.setattr("courier.config._is_xdg_platform", lambda: True)

    for var in ["COURIER_BASE_URL", "COURIER_TIMEOUT", "COURIER_AUTH_PROVIDER"]:
        monkeypatch.delenv(var, raising=False)

    return tmp_path


# ---------------------------------------------------------------------------
# Mock transport
# ---------------------------------------------------------------------------


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it handled."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def calls(self) -> int:
        return len(self.requests)


@pytest.fixture
def recording_transport() -> Callable[..., RecordingTransport]:
    """Factory for :class:`RecordingTransport` instances.

    Accepts a handler function, or a list of responses served in order
    (the last one repeats).
    """

    def _make(handler_or_responses: Any) -> RecordingTransport:
        if callable(handler_or_responses):
            return RecordingTransport(handler_or_responses)

        responses = list(handler_or_responses)

        def _serve(request: httpx.Request) -> httpx.Response:
            template = responses.pop(0) if len(responses) > 1 else responses[0]
            return httpx.Response(
                template.status_code, headers=template.headers, content=template.content
            )

        return RecordingTransport(_serve)

    return _make


# ---------------------------------------------------------------------------
# Credential stack
# ---------------------------------------------------------------------------


@pytest.fixture
def secret_store() -> MemorySecretStore:
    return MemorySecretStore()


@pytest.fixture
def credential_store(secret_store: MemorySecretStore) -> CredentialStore:
    return CredentialStore(secret_store)


@pytest.fixture
def token_manager(credential_store: CredentialStore) -> TokenManager:
    return TokenManager(credential_store)
