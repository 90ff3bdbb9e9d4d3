"""Exception hierarchy for courier.

All exceptions inherit from :class:`CourierError`, which carries a
``retryable`` flag consumed by the retry loop in
:class:`~courier.client.engine.RequestEngine`.  Only transport-level
failures and throttling / server-side HTTP errors are retried; everything
else surfaces to the caller after a single attempt.

Subclass hierarchy::

    CourierError
    +-- ValidationError          (never retried, never sent over the wire)
    +-- NetworkError             (retried)
    +-- TimeoutError_            (retried)
    +-- HttpError                (retried for 429 and 5xx only)
    +-- AuthenticationError      (never retried)
    +-- ConfigError
    +-- CredentialStorageError
        +-- TokenExpiredError
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from courier.auth.credential_store import Credentials


class CourierError(Exception):
    """Base exception for all courier errors.

    Args:
        message: Human-readable error description.
    """

    retryable: bool = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CourierError):
    """Raised when a request is malformed (empty URL, non-positive timeout)."""


class NetworkError(CourierError):
    """Raised on transport-level failures (DNS, connection refused or reset).

    Args:
        message: Human-readable error description.
        cause: The underlying transport exception, if any.
    """

    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class TimeoutError_(CourierError):
    """Raised when a single dispatch exceeds its configured timeout.

    Named with a trailing underscore to avoid shadowing the built-in
    ``TimeoutError``.
    """

    retryable = True


class HttpError(CourierError):
    """Raised when the server answers with a non-2xx status code.

    The message is ``"HTTP <status>: <status text>"``, extended with any
    structured detail found in the response body (see :func:`extract_detail`).

    Args:
        status: HTTP status code.
        status_text: Reason phrase sent by the server.
        body: The decoded response body, if any.
    """

    def __init__(self, status: int, status_text: str = "", body: Any = None):
        message = f"HTTP {status}: {status_text}".rstrip(": ")
        detail = extract_detail(body)
        if detail:
            message = f"{message} - {detail}"
        super().__init__(message)
        self.status = status
        self.status_text = status_text
        self.body = body

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status == 429 or self.status >= 500


class AuthenticationError(CourierError):
    """Raised for missing or invalid credentials, failed refresh, or failed key verification."""


class ConfigError(CourierError):
    """Raised for configuration problems (invalid settings file, bad credential sources)."""


class CredentialStorageError(CourierError):
    """Raised when the secret store cannot read, write or delete credentials.

    Args:
        message: Human-readable error description.
        cause: The exception raised by the secret store backend, if any.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class TokenExpiredError(CredentialStorageError):
    """Raised when a stored token exists but its expiry has passed.

    Distinct from "no token stored", which is reported as ``None``.  The
    expired record is attached so that callers holding a refresh token can
    attempt a refresh instead of a full re-authentication.

    Args:
        credentials: The expired credential record.
    """

    def __init__(self, credentials: Optional[Credentials] = None):
        super().__init__("Token has expired")
        self.credentials = credentials


def extract_detail(body: Any) -> Optional[str]:
    """Extract a human-readable error detail from an API error body.

    Recognised shapes:

    * ``{"detail": "text"}``
    * ``{"detail": ["text", {"msg": "text"}, ...]}`` -- joined with ``", "``
    * ``{"detail": {"message": "text"}}``
    * ``{"message": "text"}``

    Args:
        body: A decoded response body of any shape.

    Returns:
        The detail string, or ``None`` when the body carries none.
    """
    if not isinstance(body, dict):
        return None

    detail = body.get("detail")
    if detail:
        if isinstance(detail, str):
            return detail
        if isinstance(detail, list):
            parts = []
            for item in detail:
                if isinstance(item, str):
                    parts.append(item)
                elif isinstance(item, dict) and item.get("msg"):
                    parts.append(str(item["msg"]))
                else:
                    parts.append(json.dumps(item, default=str))
            return ", ".join(parts)
        if isinstance(detail, dict) and detail.get("message"):
            return str(detail["message"])
        return None

    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return None


def is_retryable(error: BaseException) -> bool:
    """Return whether *error* is eligible for an automatic retry."""
    return isinstance(error, CourierError) and bool(error.retryable)
