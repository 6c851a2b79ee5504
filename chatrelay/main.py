"""FastAPI application for the chat relay gateway."""

import logging
import socket
from typing import Any, Mapping, Optional

from fastapi import FastAPI

from .api.routes import chat_completions, list_models, retrieve_model
from .config_loader import load_config, server_address
from .core import ChatGateway
from .core.registry import set_gateway
from .logging import setup_logging
from .middleware import cors_middleware

logger = logging.getLogger("chatrelay")

CHAT_PATHS = (
    "/v1/chat/completions",
    "/none/v1/chat/completions",
    "/such/chat/completions",
)
MODEL_LIST_PATHS = ("/v1/models", "/api/v1/models")


async def health() -> dict:
    """GET / and GET /health"""
    return {"status": "ok", "service": "chatrelay"}


def create_app(config: Optional[Mapping[str, Any]] = None) -> FastAPI:
    """Build the gateway application.

    Args:
        config: Parsed configuration. Loaded via ``load_config()`` when omitted.

    Returns:
        The configured FastAPI application instance.
    """
    setup_logging()
    if config is None:
        config = load_config()

    gateway = ChatGateway(config)
    set_gateway(gateway)
    host, port = server_address(config)

    app = FastAPI(title="chatrelay")
    app.state.gateway = gateway
    app.state.host = host
    app.state.port = port
    app.middleware("http")(cors_middleware)

    for path in CHAT_PATHS:
        app.post(path)(chat_completions)
    for path in MODEL_LIST_PATHS:
        app.get(path)(list_models)
    app.get("/v1/models/{model_id}")(retrieve_model)
    app.get("/")(health)
    app.get("/health")(health)

    @app.on_event("startup")
    async def startup_event():
        """Handle application startup."""
        logger.info("chatrelay gateway starting up...")
        logger.info("Configured bind address %s:%s", host, port)
        if host == "0.0.0.0":
            hostname = socket.gethostname()
            logger.info("Reachable on local network at http://%s:%s", hostname, port)
        for name, upstream in gateway.upstreams.items():
            logger.info("  - %s (%s): %s", name, upstream.type, upstream.api_base)
        logger.info("Advertising %d models", len(gateway.model_ids()))

    logger.info("FastAPI application created")
    return app


__all__ = ["CHAT_PATHS", "MODEL_LIST_PATHS", "create_app", "health"]
