"""Middleware modules for the gateway."""

from .cors import CORS_HEADERS, cors_middleware

__all__ = ["CORS_HEADERS", "cors_middleware"]
