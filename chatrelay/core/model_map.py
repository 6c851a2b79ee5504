"""Bidirectional mapping between advertised model ids and upstream ids."""

import logging
import os
from typing import Iterable, Mapping, Optional

logger = logging.getLogger("chatrelay")

AGENT_MODEL_IDS_ENV = "AGENT_MODEL_IDS"

DEFAULT_UPSTREAM_MODEL = "deepseek_v3"
DEFAULT_EXTERNAL_MODEL = "deepseek-chat"

# Advertised OpenAI-style id -> search upstream's internal model id
DEFAULT_MODEL_MAP: dict[str, str] = {
    "deepseek-reasoner": "deepseek_r1",
    "deepseek-chat": "deepseek_v3",
    "o3-mini-high": "openai_o3_mini_high",
    "o1": "openai_o1",
    "gpt5": "gpt_5",
    "gpt5-mini": "gpt_5_mini",
    "gpt-4o": "gpt_4o",
    "gpt-4o-mini": "gpt_4o_mini",
    "claude-3-opus": "claude_3_opus",
    "claude-3.5-sonnet": "claude_3_5_sonnet",
    "gemini-1.5-pro": "gemini_1_5_pro",
    "gemini-2.0-flash": "gemini_2_flash",
    "llama-3.3-70b": "llama3_3_70b",
    "llama-4-maverick": "llama4_maverick",
    "llama-4-scout": "llama4_scout",
    "mistral-large-2": "mistral_large_2",
    "qwen3-235b": "qwen3_235b",
    "qwq-32b": "qwq_32b",
    "qwen-2.5-72b": "qwen2p5_72b",
    "qwen-2.5-coder-32b": "qwen2p5_coder_32b",
    "command-r-plus": "command_r_plus",
    "claude-3-7-sonnet": "claude_3_7_sonnet",
    "claude-3-7-sonnet-think": "claude_3_7_sonnet_thinking",
    "claude-4-sonnet": "claude_4_sonnet",
    "claude-4-sonnet-think": "claude_4_sonnet_thinking",
    "claude-4-opus": "claude_4_opus",
    "claude-4-1-opus": "claude_4_1_opus",
    "claude-4-opus-think": "claude_4_opus_thinking",
    "claude-4-1-opus-think": "claude_4_1_opus_thinking",
    "gemini-2.5-pro": "gemini_2_5_pro_preview",
    "o3": "openai_o3",
    "o3-pro": "openai_o3_pro",
    "o4-mini-high": "openai_o4_mini_high",
    "gpt-4.1": "gpt_4_1",
    "grok-4": "grok_4",
    "grok-3-beta": "grok_3",
    "grok-3-mini": "grok_3_mini",
    "grok-2": "grok_2",
    "nous-hermes-2": "nous_hermes_2",
}


def parse_agent_ids(raw: Optional[str]) -> list[str]:
    """Split a comma-separated id list, dropping blanks."""
    if not raw:
        return []
    return [item.strip() for item in raw.split(",") if item.strip()]


class ModelMapper:
    """Read-only model id lookup for one upstream.

    Forward and reverse lookups never fail: misses fall back to the default
    upstream model and default external model respectively. Agent ids bypass
    mapping entirely and travel to the upstream as a chat-mode selector.
    """

    def __init__(
        self,
        model_map: Optional[Mapping[str, str]] = None,
        *,
        default_upstream_model: str = DEFAULT_UPSTREAM_MODEL,
        default_external_model: str = DEFAULT_EXTERNAL_MODEL,
        agent_models: Iterable[str] = (),
    ) -> None:
        self._forward: dict[str, str] = dict(
            DEFAULT_MODEL_MAP if model_map is None else model_map
        )
        self._reverse: dict[str, str] = {}
        for external, internal in self._forward.items():
            # First advertised id wins for many-to-one tables
            self._reverse.setdefault(internal, external)
        self.default_upstream_model = default_upstream_model
        self.default_external_model = default_external_model
        agents: list[str] = []
        for agent_id in agent_models:
            if agent_id and agent_id not in agents:
                agents.append(agent_id)
        self._agents = tuple(agents)
        self._agent_set = frozenset(agents)

    @classmethod
    def from_config(cls, cfg: Mapping[str, object], *, include_env_agents: bool = True) -> "ModelMapper":
        model_map = cfg.get("model_map")
        if model_map is not None and not isinstance(model_map, Mapping):
            logger.warning("Ignoring non-mapping model_map: %r", model_map)
            model_map = None
        agents = [str(item) for item in (cfg.get("agent_models") or [])]
        if include_env_agents:
            agents.extend(parse_agent_ids(os.getenv(AGENT_MODEL_IDS_ENV)))
        return cls(
            {str(k): str(v) for k, v in model_map.items()} if model_map is not None else None,
            default_upstream_model=str(cfg.get("default_upstream_model") or DEFAULT_UPSTREAM_MODEL),
            default_external_model=str(cfg.get("default_model") or DEFAULT_EXTERNAL_MODEL),
            agent_models=agents,
        )

    def to_upstream(self, external_id: str) -> str:
        return self._forward.get(external_id, self.default_upstream_model)

    def to_external(self, internal_id: str) -> str:
        return self._reverse.get(internal_id, self.default_external_model)

    def is_agent(self, model_id: str) -> bool:
        return model_id in self._agent_set

    def response_model(self, requested: str) -> str:
        """Model id reported back to the client for ``requested``."""
        if self.is_agent(requested):
            return requested
        return self.to_external(self.to_upstream(requested))

    def serves(self, model_id: str) -> bool:
        return model_id in self._forward or model_id in self._agent_set

    def external_ids(self) -> list[str]:
        return list(self._forward.keys())

    @property
    def agent_ids(self) -> tuple[str, ...]:
        return self._agents
