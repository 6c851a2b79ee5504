"""Tests for the exceptions module."""

import json

import pytest

from chatrelay.api.routes.chat import error_response, internal_error_response
from chatrelay.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidContentError,
    InvalidRequestError,
    ProxyError,
    UpstreamError,
    UrlTooLongError,
)


class TestProxyError:
    """Tests for the base ProxyError exception."""

    def test_creates_error_with_message(self):
        error = ProxyError("test error message")
        assert error.message == "test error message"
        assert str(error) == "test error message"
        assert error.status_code == 500

    def test_payload_envelope(self):
        error = ProxyError("boom", code="custom", status_code=503)
        assert error.status_code == 503
        assert error.to_payload() == {
            "error": {"message": "boom", "type": "internal_error", "code": "custom"}
        }


class TestConfigurationError:
    def test_is_a_proxy_error(self):
        error = ConfigurationError("invalid config")
        assert isinstance(error, ProxyError)
        assert error.message == "invalid config"


class TestInvalidRequestError:
    """Tests for InvalidRequestError exception."""

    def test_creates_error_with_default_code(self):
        error = InvalidRequestError("invalid request")
        assert error.code == "invalid_request"
        assert error.status_code == 400
        assert error.to_payload()["error"]["type"] == "invalid_request_error"

    def test_creates_error_with_custom_code(self):
        error = InvalidRequestError("missing parameter", code="missing_parameter")
        assert error.code == "missing_parameter"


class TestAuthenticationError:
    def test_defaults(self):
        error = AuthenticationError()
        assert error.status_code == 401
        assert error.code == "invalid_authorization"
        assert isinstance(error, InvalidRequestError)


class TestUrlTooLongError:
    def test_reports_length_and_limit(self):
        error = UrlTooLongError(70000, 65536)
        assert error.status_code == 413
        assert error.code == "upstream_url_too_long"
        assert error.length == 70000
        assert error.limit == 65536
        assert "70000" in error.message and "65536" in error.message


class TestInvalidContentError:
    def test_is_an_internal_error(self):
        error = InvalidContentError("Invalid data URL")
        assert error.status_code == 500
        assert error.code == "invalid_content"
        assert error.to_payload()["error"]["type"] == "internal_error"


class TestUpstreamError:
    def test_defaults_to_bad_gateway(self):
        error = UpstreamError("connection refused")
        assert error.status_code == 502
        assert error.body is None
        assert error.code == "upstream_error"

    def test_keeps_status_and_body(self):
        error = UpstreamError("forbidden", status_code=403, body=b"blocked", content_type="text/plain")
        assert error.status_code == 403
        assert error.body == b"blocked"
        assert error.content_type == "text/plain"


class TestErrorResponses:
    """Rendering of errors into HTTP responses."""

    def test_upstream_body_is_mirrored(self):
        response = error_response(
            UpstreamError("forbidden", status_code=403, body=b"blocked", content_type="text/plain")
        )
        assert response.status_code == 403
        assert response.body == b"blocked"
        assert response.headers["content-type"].startswith("text/plain")

    def test_upstream_body_defaults_to_json_media_type(self):
        response = error_response(UpstreamError("x", status_code=500, body=b'{"detail": 1}'))
        assert response.headers["content-type"].startswith("application/json")

    def test_upstream_error_without_body_uses_envelope(self):
        response = error_response(UpstreamError("connection refused"))
        assert response.status_code == 502
        assert json.loads(response.body)["error"]["type"] == "upstream_error"

    @pytest.mark.parametrize(
        "exc,status",
        [
            (InvalidRequestError("bad"), 400),
            (AuthenticationError(), 401),
            (UrlTooLongError(10, 5), 413),
            (InvalidContentError("bad image"), 500),
        ],
    )
    def test_proxy_errors_use_their_status(self, exc, status):
        response = error_response(exc)
        assert response.status_code == status
        assert json.loads(response.body) == exc.to_payload()

    def test_internal_error_response(self):
        response = internal_error_response(ValueError("kaboom"))
        assert response.status_code == 500
        error = json.loads(response.body)["error"]
        assert error["type"] == "internal_error"
        assert "kaboom" in error["message"]
