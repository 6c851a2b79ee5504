"""Per-host transport overrides for upstream HTTP clients.

Tests mount an in-process app (``httpx.ASGITransport``) or an
``httpx.MockTransport`` under a host name. Every client the gateway opens
towards that host then talks to the mounted transport instead of the network.
"""

from __future__ import annotations

import logging
from typing import Optional, Union
from urllib.parse import urlsplit

import httpx

logger = logging.getLogger("chatrelay")

_mounted: dict[str, httpx.AsyncBaseTransport] = {}


def _host_key(value: str) -> str:
    """Lower-cased netloc of a URL, or of a bare ``host[:port]`` string."""
    value = value.strip().lower()
    if "://" in value:
        return urlsplit(value).netloc
    return value


def register_upstream_transport(host: str, transport: httpx.AsyncBaseTransport) -> None:
    """Mount ``transport`` for ``host`` (``"upstream.local:8000"`` or a full URL)."""
    key = _host_key(host or "")
    if not key:
        raise ValueError("host is required")
    _mounted[key] = transport
    logger.debug("Mounted in-process transport for %s", key)


def clear_upstream_transports() -> None:
    _mounted.clear()


def transport_for(url: str) -> Optional[httpx.AsyncBaseTransport]:
    if not url:
        return None
    return _mounted.get(urlsplit(url).netloc.lower())


def create_async_client(
    url: str,
    timeout: Union[float, httpx.Timeout],
    *,
    http2: bool = False,
) -> httpx.AsyncClient:
    """Open a client for calls to ``url``.

    A mounted transport always speaks HTTP/1.1, so ``http2`` only applies to
    real network connections.
    """
    transport = transport_for(url)
    if transport is not None:
        return httpx.AsyncClient(timeout=timeout, transport=transport, follow_redirects=True)
    return httpx.AsyncClient(timeout=timeout, http2=http2, follow_redirects=True)
