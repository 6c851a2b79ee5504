"""Logging configuration for the gateway."""

import logging
import os
import sys
from typing import Optional

LOGGER_NAME = "chatrelay"
LOG_LEVEL_ENV = "CHATRELAY_LOG_LEVEL"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# httpx logs every request line at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "hpack")


def _resolve_level(value: Optional[str]) -> int:
    level = logging.getLevelName((value or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach one stdout handler to the ``chatrelay`` logger.

    Calling it again replaces the previous handler, so app factories and
    tests can call it freely. The level comes from ``level`` or
    CHATRELAY_LOG_LEVEL (default INFO).
    """
    resolved = _resolve_level(level or os.getenv(LOG_LEVEL_ENV))
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.handlers[:] = [handler]
    # Still propagate so uvicorn and pytest's caplog see the records
    logger.propagate = True

    transport_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(transport_level)
    return logger


logger = setup_logging()
