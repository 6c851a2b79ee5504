"""YAML configuration with ``.env`` backed placeholder expansion."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

logger = logging.getLogger("chatrelay")

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"
CONFIG_PATH_ENV = "CHATRELAY_CONFIG"
HOST_ENV = "CHATRELAY_HOST"
PORT_ENV = "CHATRELAY_PORT"
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 8000

# ${NAME} or $NAME
_PLACEHOLDER = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def resolve_config_path(path: str) -> Path:
    """Absolute paths are kept; relative ones start at the project root."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Pick the env file paired with ``config_path``.

    ``config_<name>.yaml`` reads ``.env_<name>`` from the same directory; any
    other file name reads ``.env``.
    """
    if env_path:
        return resolve_config_path(env_path)
    prefix, _, name = config_path.stem.partition("config_")
    if not prefix and name:
        return config_path.with_name(f".env_{name}")
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Read ``env_path`` without touching ``os.environ``."""
    if not env_path.exists():
        return {}
    return {key: value for key, value in dotenv_values(env_path).items() if value is not None}


def _read_yaml(config_path: Path) -> dict:
    with config_path.open("r", encoding="utf-8") as fh:
        data = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise RuntimeError(f"Config file {config_path} must contain a mapping")
    return data


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Read the gateway configuration.

    Args:
        path: Config file. Defaults to CHATRELAY_CONFIG, then
              configs/config_default.yaml under the project root.
        env_path: Env file used for placeholder expansion instead of the one
              paired with ``path``.
        substitute_env: Expand ``${NAME}`` / ``$NAME`` placeholders.

    Raises:
        RuntimeError: when the file is missing or its top level is not a
            mapping.
    """
    config_path = resolve_config_path(path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        logger.error("Config file not found: %s", config_path)
        raise RuntimeError(f"Config file not found: {config_path}")

    data = _read_yaml(config_path)
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        env_values = load_env_values(env_file)
        if env_values:
            logger.info("Expanding placeholders with %d values from %s", len(env_values), env_file)
        data = _substitute_env_vars(data, env_values)

    logger.info("Loaded configuration from %s", config_path)
    return data


def _substitute_env_vars(obj: Any, env_values: Mapping[str, str] | None = None) -> Any:
    """Expand placeholders in every string inside ``obj``.

    ``env_values`` wins over the process environment. Unknown names are kept
    exactly as written.
    """
    env_values = env_values or {}

    def expand(match: re.Match) -> str:
        name = match.group(1) or match.group(2)
        value = env_values.get(name)
        if value is None:
            value = os.getenv(name)
        if value is None:
            logger.warning("Config placeholder %s is not set; keeping it literally", match.group(0))
            return match.group(0)
        return value

    def walk(value: Any) -> Any:
        if isinstance(value, dict):
            return {key: walk(item) for key, item in value.items()}
        if isinstance(value, list):
            return [walk(item) for item in value]
        if isinstance(value, str):
            return _PLACEHOLDER.sub(expand, value)
        return value

    return walk(obj)


def server_address(config: Mapping[str, Any]) -> tuple[str, int]:
    """Bind address: CHATRELAY_HOST / CHATRELAY_PORT, then gateway_settings.server."""
    server_cfg = (config.get("gateway_settings") or {}).get("server") or {}
    host = os.getenv(HOST_ENV) or str(server_cfg.get("host", DEFAULT_HOST))

    raw_port = os.getenv(PORT_ENV) or server_cfg.get("port", DEFAULT_PORT)
    try:
        port = int(raw_port)
    except (TypeError, ValueError):
        logger.warning("Invalid port %r; using %d", raw_port, DEFAULT_PORT)
        port = DEFAULT_PORT
    return host, port
