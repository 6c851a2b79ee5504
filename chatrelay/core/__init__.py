"""Core module initialization."""

from .context import RequestContext
from .exceptions import (
    AuthenticationError,
    ConfigurationError,
    InvalidContentError,
    InvalidRequestError,
    ProxyError,
    UpstreamError,
    UrlTooLongError,
)
from .gateway import ChatGateway
from .model_map import ModelMapper
from .registry import get_gateway, set_gateway

__all__ = [
    "AuthenticationError",
    "ChatGateway",
    "ConfigurationError",
    "InvalidContentError",
    "InvalidRequestError",
    "ModelMapper",
    "ProxyError",
    "RequestContext",
    "UpstreamError",
    "UrlTooLongError",
    "get_gateway",
    "set_gateway",
]
