"""chatrelay - OpenAI-compatible chat gateway

Exposes ``/v1/models`` and ``/v1/chat/completions`` and translates each
request for one of several upstreams: a search chat service that takes the
whole conversation on the query string and streams ``youChatToken`` events,
or a JSON chat API.

Example:
    >>> from chatrelay.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="0.0.0.0", port=8000)
"""

from .config_loader import load_config
from .core import ChatGateway, ProxyError
from .logging import logger, setup_logging

__all__ = [
    "ChatGateway",
    "ProxyError",
    "load_config",
    "logger",
    "setup_logging",
]
