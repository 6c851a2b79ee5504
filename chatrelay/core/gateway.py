"""Gateway that routes chat completions to the configured upstreams."""

import logging
import time
from typing import Any, Mapping, Optional, Union

from fastapi.responses import StreamingResponse

from ..types.chat import ChatCompletionResponse, ModelCard
from .builder import JsonRequestBuilder, SearchRequestBuilder, UpstreamRequest
from .content import estimate_message_tokens, extract_text, has_image
from .context import RequestContext
from .exceptions import ConfigurationError
from .history import build_history, fold_system_into_user
from .offload import AssetClient, ContextOffloader
from .relay import JsonRelay, SearchRelay
from .upstream import SEARCH, Upstream, parse_upstream

logger = logging.getLogger("chatrelay")

MODEL_OWNER = "organization-owner"

CompletionResult = Union[ChatCompletionResponse, StreamingResponse]


class ChatGateway:
    """Translates OpenAI-style chat requests for one of several upstreams.

    The first configured upstream is the default; a model id is routed to the
    first upstream that advertises it (or lists it as an agent), otherwise to
    the default.
    """

    def __init__(self, config: Mapping[str, Any]) -> None:
        settings = config.get("gateway_settings") or {}
        self.default_model: Optional[str] = settings.get("default_model") or None
        max_url_length = settings.get("max_url_length")

        entries = config.get("upstreams") or []
        if not isinstance(entries, list) or not entries:
            raise ConfigurationError("At least one entry under 'upstreams' is required")

        self.upstreams: dict[str, Upstream] = {}
        for entry in entries:
            if not isinstance(entry, Mapping):
                raise ConfigurationError(f"Upstream entries must be mappings, got {entry!r}")
            if max_url_length and "max_url_length" not in entry:
                entry = {**entry, "max_url_length": max_url_length}
            upstream = parse_upstream(entry, self.default_model)
            if upstream.name in self.upstreams:
                raise ConfigurationError(f"Duplicate upstream name '{upstream.name}'")
            self.upstreams[upstream.name] = upstream

        self.default_upstream = next(iter(self.upstreams.values()))
        if self.default_model is None:
            self.default_model = self.default_upstream.mapper.default_external_model
        self.created = int(time.time())
        logger.info(
            "Gateway initialized with %d upstreams (default: %s)",
            len(self.upstreams),
            self.default_upstream.name,
        )

    # -------------------------------------------------------------------------
    # Model catalogue
    # -------------------------------------------------------------------------

    def route(self, model: str) -> Upstream:
        for upstream in self.upstreams.values():
            if upstream.serves(model):
                return upstream
        logger.debug("Model %s not advertised; using default upstream %s", model, self.default_upstream.name)
        return self.default_upstream

    def model_ids(self) -> list[str]:
        """Every advertised external id, then every agent id, deduplicated."""
        seen: list[str] = []
        for upstream in self.upstreams.values():
            for model_id in upstream.mapper.external_ids():
                if model_id not in seen:
                    seen.append(model_id)
        for upstream in self.upstreams.values():
            for agent_id in upstream.mapper.agent_ids:
                if agent_id not in seen:
                    seen.append(agent_id)
        return seen

    def _model_card(self, model_id: str) -> ModelCard:
        return {
            "id": model_id,
            "object": "model",
            "created": self.created,
            "owned_by": MODEL_OWNER,
        }

    def list_models(self) -> list[ModelCard]:
        return [self._model_card(model_id) for model_id in self.model_ids()]

    def get_model(self, model_id: str) -> Optional[ModelCard]:
        if model_id not in self.model_ids():
            return None
        return self._model_card(model_id)

    # -------------------------------------------------------------------------
    # Chat completions
    # -------------------------------------------------------------------------

    async def chat_completion(self, ctx: RequestContext) -> CompletionResult:
        """Serve one chat completion, streaming or not.

        Raises:
            ProxyError: any translation or upstream failure raised before the
                response started.
        """
        upstream = self.route(ctx.model)
        ctx.response_model = upstream.mapper.response_model(ctx.model)
        logger.info(
            "Routing model %s to upstream %s (stream=%s, %d messages, ~%d tokens)",
            ctx.model,
            upstream.name,
            ctx.stream,
            len(ctx.messages),
            estimate_message_tokens(ctx.messages),
        )
        if upstream.type == SEARCH:
            return await self._search_completion(upstream, ctx)
        return await self._json_completion(upstream, ctx)

    def _offloader(self, upstream: Upstream) -> ContextOffloader:
        assets = AssetClient(
            upstream.api_base,
            nonce_path=upstream.nonce_path,
            upload_path=upstream.upload_path,
            timeout=upstream.timeout,
            http2=upstream.http2,
        )
        return ContextOffloader(
            assets,
            history_threshold=upstream.history_threshold,
            query_ceiling=upstream.query_ceiling,
            reference_template=upstream.reference_template,
            download_timeout=upstream.timeout,
        )

    async def prepare_search_request(self, upstream: Upstream, ctx: RequestContext) -> UpstreamRequest:
        """Compact the conversation, offload what is too large, build the URL."""
        messages = fold_system_into_user(ctx.messages)
        offloader = self._offloader(upstream)
        sources: list[dict[str, Any]] = []

        history = await offloader.offload_history(build_history(messages), ctx.credential, sources)

        last = messages[-1]
        content = last.get("content")
        query = extract_text(content)

        image_sources: list[dict[str, Any]] = []
        if has_image(content):
            await offloader.upload_images(content, ctx.credential, image_sources)

        query_tokens = estimate_message_tokens([last])
        if query_tokens > offloader.query_ceiling:
            logger.info(
                "Live query too large (%d tokens > %d); offloading",
                query_tokens,
                offloader.query_ceiling,
            )
            query = await offloader.offload_text(query, ctx.credential, sources)

        # Text offloads come before images in the sources list
        sources.extend(image_sources)
        logger.info(
            "Prepared search request: %d history turns, %d sources",
            len(history),
            len(sources),
        )
        return SearchRequestBuilder(upstream).build(ctx, query, history, sources)

    async def _search_completion(self, upstream: Upstream, ctx: RequestContext) -> CompletionResult:
        request = await self.prepare_search_request(upstream, ctx)
        relay = SearchRelay(upstream)
        if upstream.warmup_request:
            logger.debug("Issuing warm-up request to %s", upstream.name)
            await relay.warm_up(request)
        if ctx.stream:
            return await relay.stream(request, ctx)
        return await relay.complete(request, ctx)

    async def _json_completion(self, upstream: Upstream, ctx: RequestContext) -> CompletionResult:
        request = JsonRequestBuilder(upstream).build(ctx)
        relay = JsonRelay(upstream)
        if ctx.stream:
            return await relay.stream(request, ctx)
        return await relay.complete(request, ctx)
