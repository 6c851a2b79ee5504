"""Upstream configuration and utilities."""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .exceptions import ConfigurationError
from .model_map import ModelMapper
from .offload import (
    DEFAULT_HISTORY_THRESHOLD,
    DEFAULT_NONCE_PATH,
    DEFAULT_QUERY_CEILING,
    DEFAULT_REFERENCE_TEMPLATE,
    DEFAULT_UPLOAD_PATH,
)

logger = logging.getLogger("chatrelay")

SEARCH = "search"
JSON = "json"
UPSTREAM_TYPES = (SEARCH, JSON)

DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_URL_LENGTH = 65536
DEFAULT_SEARCH_PATH = "/api/streamingSearch"
DEFAULT_CHAT_PATH = "/v1/chat/completions"
DEFAULT_MARKET = "zh-HK"
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36 Edg/133.0.0.0"
)


@dataclass
class Upstream:
    """Represents one configured upstream chat provider."""

    name: str
    type: str
    api_base: str
    mapper: ModelMapper
    timeout: float = DEFAULT_TIMEOUT
    http2: bool = False
    api_key: Optional[str] = None
    headers: dict[str, str] = field(default_factory=dict)
    # search upstream
    search_path: str = DEFAULT_SEARCH_PATH
    nonce_path: str = DEFAULT_NONCE_PATH
    upload_path: str = DEFAULT_UPLOAD_PATH
    history_threshold: int = DEFAULT_HISTORY_THRESHOLD
    query_ceiling: int = DEFAULT_QUERY_CEILING
    reference_template: str = DEFAULT_REFERENCE_TEMPLATE
    warmup_request: bool = False
    max_url_length: int = DEFAULT_MAX_URL_LENGTH
    market: str = DEFAULT_MARKET
    user_agent: str = DEFAULT_USER_AGENT
    cookies: dict[str, str] = field(default_factory=dict)
    # json upstream
    chat_path: str = DEFAULT_CHAT_PATH

    def build_url(self, path: str) -> str:
        base = self.api_base.rstrip("/")
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{base}{path}"

    def serves(self, model_id: str) -> bool:
        return self.mapper.serves(model_id)


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _str_dict(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): str(v) for k, v in value.items()}


def parse_upstream(entry: Mapping[str, Any], default_model: Optional[str] = None) -> Upstream:
    """Build an Upstream from one ``upstreams`` config entry."""
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError("Every upstream needs a non-empty 'name'")
    upstream_type = str(entry.get("type") or SEARCH).lower()
    if upstream_type not in UPSTREAM_TYPES:
        raise ConfigurationError(
            f"Upstream '{name}' has unsupported type '{upstream_type}' "
            f"(expected one of {', '.join(UPSTREAM_TYPES)})"
        )
    api_base = entry.get("api_base")
    if not isinstance(api_base, str) or not api_base:
        raise ConfigurationError(f"Upstream '{name}' is missing 'api_base'")

    mapper_cfg = dict(entry)
    if default_model and not mapper_cfg.get("default_model"):
        mapper_cfg["default_model"] = default_model
    if upstream_type == JSON and mapper_cfg.get("model_map") is None:
        # JSON upstreams forward the advertised ids unchanged unless mapped
        models = [str(m) for m in entry.get("models") or []]
        mapper_cfg["model_map"] = {m: m for m in models}
    if upstream_type == JSON and not mapper_cfg.get("default_upstream_model"):
        mapped = list((mapper_cfg.get("model_map") or {}).values())
        if mapped:
            mapper_cfg["default_upstream_model"] = mapped[0]
    mapper = ModelMapper.from_config(mapper_cfg, include_env_agents=upstream_type == SEARCH)

    offload_cfg = entry.get("offload") or {}
    try:
        timeout = float(entry.get("timeout") or DEFAULT_TIMEOUT)
        history_threshold = int(offload_cfg.get("history_threshold", DEFAULT_HISTORY_THRESHOLD))
        query_ceiling = int(offload_cfg.get("query_ceiling", DEFAULT_QUERY_CEILING))
        max_url_length = int(entry.get("max_url_length") or DEFAULT_MAX_URL_LENGTH)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Upstream '{name}' has an invalid numeric setting: {exc}") from exc

    api_key = entry.get("api_key")
    upstream = Upstream(
        name=name,
        type=upstream_type,
        api_base=api_base,
        mapper=mapper,
        timeout=timeout,
        http2=_parse_bool(entry.get("http2", False)),
        api_key=str(api_key) if api_key else None,
        headers=_str_dict(entry.get("headers")),
        search_path=str(entry.get("search_path") or DEFAULT_SEARCH_PATH),
        nonce_path=str(entry.get("nonce_path") or DEFAULT_NONCE_PATH),
        upload_path=str(entry.get("upload_path") or DEFAULT_UPLOAD_PATH),
        history_threshold=history_threshold,
        query_ceiling=query_ceiling,
        reference_template=str(offload_cfg.get("reference_template") or DEFAULT_REFERENCE_TEMPLATE),
        warmup_request=_parse_bool(entry.get("warmup_request", False)),
        max_url_length=max_url_length,
        market=str(entry.get("market") or DEFAULT_MARKET),
        user_agent=str(entry.get("user_agent") or DEFAULT_USER_AGENT),
        cookies=_str_dict(entry.get("cookies")),
        chat_path=str(entry.get("chat_path") or DEFAULT_CHAT_PATH),
    )
    logger.debug(
        "Parsed upstream %s (type=%s, base=%s, models=%d, agents=%d)",
        upstream.name,
        upstream.type,
        upstream.api_base,
        len(mapper.external_ids()),
        len(mapper.agent_ids),
    )
    return upstream


def safe_headers_for_log(headers: Mapping[str, str]) -> dict[str, str]:
    """Mask credentials before headers reach a log line."""
    masked: dict[str, str] = {}
    for key, value in headers.items():
        if key.lower() in {"authorization", "cookie", "x-api-key"}:
            masked[key] = "***"
        else:
            masked[key] = value
    return masked
