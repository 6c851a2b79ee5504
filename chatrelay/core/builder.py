"""Assembly of the outbound upstream request."""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Sequence
from urllib.parse import urlencode

from .context import RequestContext
from .exceptions import UrlTooLongError
from .history import ChatTurn
from .upstream import Upstream

logger = logging.getLogger("chatrelay")

# OpenAI request fields a JSON upstream receives unchanged when present
PASSTHROUGH_FIELDS = (
    "temperature",
    "top_p",
    "n",
    "stop",
    "max_tokens",
    "presence_penalty",
    "frequency_penalty",
    "logit_bias",
    "user",
    "response_format",
    "tools",
    "tool_choice",
)

BASE_SESSION_COOKIES = {
    "guest_has_seen_legal_disclaimer": "true",
    "youchat_personalization": "true",
    "you_subscription": "youpro_standard_year",
    "youpro_subscription": "true",
    "ai_model": "deepseek_r1",
    "youchat_smart_learn": "true",
}


@dataclass
class UpstreamRequest:
    """A fully assembled upstream call."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    json_body: Optional[dict[str, Any]] = None
    params: dict[str, str] = field(default_factory=dict)


def cookie_header(cookies: Mapping[str, str]) -> str:
    return ";".join(f"{key}={value}" for key, value in cookies.items())


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SearchRequestBuilder:
    """Builds the GET request for the search upstream's SSE endpoint.

    The whole conversation travels on the query string: the live query as
    ``q``, prior turns as JSON in ``chat``, uploaded files in ``sources``.
    """

    def __init__(self, upstream: Upstream) -> None:
        self.upstream = upstream

    def build_params(
        self,
        ctx: RequestContext,
        query: str,
        history: Sequence[ChatTurn],
        sources: Sequence[Mapping[str, Any]],
    ) -> dict[str, str]:
        chat_id = str(uuid.uuid4())
        turn_id = str(uuid.uuid4())
        params = {
            "page": "1",
            "count": "10",
            "safeSearch": "Moderate",
            "mkt": self.upstream.market,
            "enable_worklow_generation_ux": "true",
            "domain": "youchat",
            "use_personalization_extraction": "true",
            "queryTraceId": chat_id,
            "chatId": chat_id,
            "conversationTurnId": turn_id,
            "pastChatLength": str(len(history)),
            "enable_agent_clarification_questions": "true",
            "traceId": f"{chat_id}|{turn_id}|{_timestamp()}",
            "use_nested_youchat_updates": "true",
        }

        mapper = self.upstream.mapper
        if mapper.is_agent(ctx.model):
            logger.info("Using agent chat mode: %s", ctx.model)
            params["selectedChatMode"] = ctx.model
        else:
            internal = mapper.to_upstream(ctx.model)
            logger.info("Using model %s (mapped to %s)", ctx.model, internal)
            params["selectedAiModel"] = internal
            params["selectedChatMode"] = "custom"

        if sources:
            params["sources"] = json.dumps(list(sources), ensure_ascii=False)
        params["q"] = query
        params["chat"] = json.dumps([turn.to_dict() for turn in history], ensure_ascii=False)
        return params

    def build_headers(self, ctx: RequestContext) -> dict[str, str]:
        cookies = {**BASE_SESSION_COOKIES, "DS": ctx.credential, **self.upstream.cookies}
        headers = {
            "Accept": "text/event-stream",
            "User-Agent": self.upstream.user_agent,
            "sec-ch-ua-platform": "Windows",
            "sec-ch-ua": '"Not(A:Brand";v="99", "Microsoft Edge";v="133", "Chromium";v="133"',
            "sec-ch-ua-mobile": "?0",
            "Cache-Control": "no-cache",
            "Cookie": cookie_header(cookies),
            "Sec-Fetch-Site": "same-origin",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Dest": "empty",
        }
        headers.update(self.upstream.headers)
        return headers

    def build(
        self,
        ctx: RequestContext,
        query: str,
        history: Sequence[ChatTurn],
        sources: Sequence[Mapping[str, Any]],
    ) -> UpstreamRequest:
        """Assemble the request, failing fast if the URL is too long.

        Raises:
            UrlTooLongError: when the encoded URL exceeds the upstream's
                ``max_url_length``.
        """
        params = self.build_params(ctx, query, history, sources)
        url = f"{self.upstream.build_url(self.upstream.search_path)}?{urlencode(params)}"
        if len(url) > self.upstream.max_url_length:
            raise UrlTooLongError(len(url), self.upstream.max_url_length)
        logger.debug("Search upstream URL length: %d", len(url))
        return UpstreamRequest(
            method="GET",
            url=url,
            headers=self.build_headers(ctx),
            params=params,
        )


class JsonRequestBuilder:
    """Builds the POST request for a JSON chat-completion upstream."""

    def __init__(self, upstream: Upstream) -> None:
        self.upstream = upstream

    def build_body(self, ctx: RequestContext) -> dict[str, Any]:
        mapper = self.upstream.mapper
        model = ctx.model if mapper.is_agent(ctx.model) else mapper.to_upstream(ctx.model)
        body: dict[str, Any] = {
            "model": model,
            "messages": list(ctx.messages),
            "stream": ctx.stream,
        }
        for key in PASSTHROUGH_FIELDS:
            if key in ctx.payload and ctx.payload[key] is not None:
                body[key] = ctx.payload[key]
        return body

    def build(self, ctx: RequestContext) -> UpstreamRequest:
        api_key = self.upstream.api_key or ctx.credential
        headers = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream" if ctx.stream else "application/json",
            "Accept-Encoding": "identity",
        }
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        headers.update(self.upstream.headers)
        return UpstreamRequest(
            method="POST",
            url=self.upstream.build_url(self.upstream.chat_path),
            headers=headers,
            json_body=self.build_body(ctx),
        )
