"""Core exceptions for the gateway."""

from typing import Any, Optional


class ProxyError(Exception):
    """Base exception for gateway errors.

    Carries everything needed to render an OpenAI-style error envelope:
    ``{"error": {"message", "type", "code"}}`` with an HTTP status.
    """

    status_code = 500
    error_type = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.error_type
        if status_code is not None:
            self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }


class ConfigurationError(ProxyError):
    """Raised when there's an issue with the configuration."""
    pass


class InvalidRequestError(ProxyError):
    """Raised when an incoming request is invalid."""

    status_code = 400
    error_type = "invalid_request_error"

    def __init__(self, message: str, code: str = "invalid_request") -> None:
        super().__init__(message, code=code)


class AuthenticationError(InvalidRequestError):
    """Missing or malformed bearer credential."""

    status_code = 401

    def __init__(self, message: str = "Missing or invalid authorization header") -> None:
        super().__init__(message, code="invalid_authorization")


class UrlTooLongError(InvalidRequestError):
    """The assembled upstream URL exceeds the configured transport limit."""

    status_code = 413

    def __init__(self, length: int, limit: int) -> None:
        super().__init__(
            f"Upstream URL is {length} characters long, exceeding the limit of {limit}",
            code="upstream_url_too_long",
        )
        self.length = length
        self.limit = limit


class InvalidContentError(ProxyError):
    """Message content could not be decoded (e.g. malformed data URL)."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="invalid_content")


class UpstreamError(ProxyError):
    """Non-success response (or transport failure) from an upstream endpoint.

    ``body`` holds the raw upstream body when one was received; routes mirror
    it verbatim together with ``status_code``.
    """

    error_type = "upstream_error"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        body: Optional[bytes] = None,
        content_type: Optional[str] = None,
    ) -> None:
        super().__init__(message, code="upstream_error", status_code=status_code or 502)
        self.body = body
        self.content_type = content_type
