"""Bearer credential extraction.

The gateway does no authentication of its own: the bearer token is the
caller's upstream credential and is passed through unchanged.
"""

from __future__ import annotations

from typing import Mapping

from ..core.exceptions import AuthenticationError

BEARER_PREFIX = "bearer "


def extract_bearer_token(headers: Mapping[str, str]) -> str:
    """Return the token from an ``Authorization: Bearer <token>`` header.

    Raises:
        AuthenticationError: when the header is absent, uses another scheme,
            or carries an empty token.
    """
    value = headers.get("authorization") or ""
    if not value.lower().startswith(BEARER_PREFIX):
        raise AuthenticationError()
    token = value[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthenticationError()
    return token
