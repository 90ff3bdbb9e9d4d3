"""Tests for the exception hierarchy and retry classification."""

from __future__ import annotations

import pytest

from courier.auth.credential_store import Credentials
from courier.exceptions import (
    AuthenticationError,
    ConfigError,
    CourierError,
    CredentialStorageError,
    HttpError,
    NetworkError,
    TimeoutError_,
    TokenExpiredError,
    ValidationError,
    extract_detail,
    is_retryable,
)


class TestRetryable:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (NetworkError("down"), True),
            (TimeoutError_("slow"), True),
            (HttpError(429, "Too Many Requests"), True),
            (HttpError(500), True),
            (HttpError(503), True),
            (HttpError(400), False),
            (HttpError(404), False),
            (ValidationError("bad"), False),
            (AuthenticationError("no"), False),
            (ConfigError("cfg"), False),
            (ValueError("not ours"), False),
        ],
    )
    def test_classification(self, error: BaseException, expected: bool) -> None:
        assert is_retryable(error) is expected

    def test_all_inherit_from_base(self) -> None:
        for cls in (ValidationError, NetworkError, TimeoutError_, AuthenticationError, ConfigError):
            assert issubclass(cls, CourierError)
        assert issubclass(TokenExpiredError, CredentialStorageError)


class TestHttpError:
    def test_message_with_status_text(self) -> None:
        err = HttpError(404, "Not Found")
        assert str(err) == "HTTP 404: Not Found"
        assert err.message == "HTTP 404: Not Found"

    def test_message_without_status_text(self) -> None:
        assert str(HttpError(500)) == "HTTP 500"

    def test_message_includes_detail(self) -> None:
        err = HttpError(422, "Unprocessable Entity", {"detail": [{"msg": "field required"}]})
        assert str(err) == "HTTP 422: Unprocessable Entity - field required"
        assert err.body == {"detail": [{"msg": "field required"}]}


class TestExtractDetail:
    @pytest.mark.parametrize(
        ("body", "expected"),
        [
            ({"detail": "nope"}, "nope"),
            ({"detail": ["a", {"msg": "b"}]}, "a, b"),
            ({"detail": [{"loc": ["x"]}]}, '{"loc": ["x"]}'),
            ({"detail": {"message": "inner"}}, "inner"),
            ({"message": "top"}, "top"),
            ({"other": 1}, None),
            ("plain text", None),
            (None, None),
        ],
    )
    def test_shapes(self, body: object, expected: str | None) -> None:
        assert extract_detail(body) == expected


class TestCarriedContext:
    def test_network_error_cause(self) -> None:
        cause = OSError("refused")
        assert NetworkError("down", cause=cause).cause is cause

    def test_token_expired_carries_credentials(self) -> None:
        creds = Credentials(profile="p", token="t", refresh_token="r")
        err = TokenExpiredError(creds)
        assert str(err) == "Token has expired"
        assert err.credentials is creds
