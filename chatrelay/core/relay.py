"""Relay of upstream responses into OpenAI-shaped completions and streams."""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator, Mapping, Optional

import httpx
from fastapi.responses import StreamingResponse

from ..types.chat import ChatCompletionChunk, ChatCompletionResponse
from .builder import UpstreamRequest
from .context import RequestContext
from .exceptions import ProxyError, UpstreamError
from .sse import DONE_SENTINEL, DataLineDecoder, TokenEventDecoder, encode_sse_data
from .upstream import Upstream, safe_headers_for_log
from .upstream_transport import create_async_client

logger = logging.getLogger("chatrelay")

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


def chunk_object(
    ctx: RequestContext,
    delta: Mapping[str, Any],
    finish_reason: Optional[str] = None,
) -> ChatCompletionChunk:
    return {
        "id": ctx.completion_id,
        "object": "chat.completion.chunk",
        "created": ctx.created,
        "model": ctx.response_model,
        "choices": [
            {"index": 0, "delta": dict(delta), "finish_reason": finish_reason}
        ],
    }


def completion_object(
    ctx: RequestContext, content: str, finish_reason: str = "stop"
) -> ChatCompletionResponse:
    return {
        "id": ctx.completion_id,
        "object": "chat.completion",
        "created": ctx.created,
        "model": ctx.response_model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": finish_reason,
            }
        ],
    }


def error_frame(exc: BaseException) -> bytes:
    if isinstance(exc, ProxyError):
        payload = exc.to_payload()
    else:
        payload = {
            "error": {
                "message": f"{exc.__class__.__name__}: {exc}",
                "type": "internal_error",
                "code": "internal_error",
            }
        }
    return encode_sse_data(payload)


# -----------------------------------------------------------------------------
# JSON upstream response shapes
# -----------------------------------------------------------------------------

OPENAI = "openai"
TEXT = "text"

# Envelope fields checked for bare-text answers, highest priority first
TEXT_FIELDS = ("content", "response", "text", "message")


@dataclass
class ParsedCompletion:
    """Result of classifying a JSON upstream body.

    ``kind`` is ``"openai"`` when the body already carries ``choices`` (kept in
    ``raw``), otherwise ``"text"`` with the answer in ``content``.
    """

    kind: str
    content: str
    raw: Optional[Mapping[str, Any]] = None


def parse_json_completion(payload: Any) -> ParsedCompletion:
    """Classify a JSON upstream body.

    Shapes, checked in order:

    1. ``{"choices": [...]}`` (non-empty list): an OpenAI completion; the text
       is ``choices[0].message.content`` when present.
    2. ``{"content" | "response" | "text" | "message": ...}``: a bare text
       envelope; the first of those fields present (in that order) wins. A
       ``message`` object contributes its own ``content``.
    3. A JSON string: the answer itself.
    4. Anything else: an empty answer.
    """
    if isinstance(payload, str):
        return ParsedCompletion(TEXT, payload)
    if not isinstance(payload, Mapping):
        return ParsedCompletion(TEXT, "")

    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        content = ""
        first = choices[0]
        if isinstance(first, Mapping):
            message = first.get("message")
            if isinstance(message, Mapping) and isinstance(message.get("content"), str):
                content = message["content"]
        return ParsedCompletion(OPENAI, content, payload)

    for key in TEXT_FIELDS:
        if key not in payload or payload[key] is None:
            continue
        value = payload[key]
        if isinstance(value, Mapping):
            value = value.get("content", "")
        return ParsedCompletion(TEXT, value if isinstance(value, str) else json.dumps(value, ensure_ascii=False))
    return ParsedCompletion(TEXT, "")


# -----------------------------------------------------------------------------
# Transport helpers
# -----------------------------------------------------------------------------


def _upstream_error_from_response(resp: httpx.Response, body: bytes, label: str) -> UpstreamError:
    return UpstreamError(
        f"{label} returned status {resp.status_code}",
        status_code=resp.status_code,
        body=body,
        content_type=resp.headers.get("content-type"),
    )


def _format_httpx_error(exc: httpx.HTTPError, upstream: Upstream) -> str:
    parts = [exc.__class__.__name__]
    message = str(exc).strip()
    if message:
        parts.append(message)
    if isinstance(exc, httpx.TimeoutException):
        parts.append(f"timeout={upstream.timeout}s")
    return "; ".join(parts)


async def open_stream(
    request: UpstreamRequest,
    upstream: Upstream,
    http2: Optional[bool] = None,
) -> tuple[httpx.AsyncClient, httpx.Response]:
    """Send ``request`` and return the client and the unread response.

    The caller owns both and must close them. Connect, write and pool phases
    are bounded by the upstream timeout; reads are not, since token cadence is
    unpredictable.
    """
    use_http2 = upstream.http2 if http2 is None else http2
    timeout = upstream.timeout
    stream_timeout = httpx.Timeout(connect=timeout, read=None, write=timeout, pool=timeout)
    client = create_async_client(request.url, stream_timeout, http2=use_http2)
    try:
        outbound = client.build_request(
            request.method, request.url, headers=request.headers, json=request.json_body
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Sending %s %s (url length %d), headers: %s",
                request.method,
                upstream.name,
                len(request.url),
                safe_headers_for_log(request.headers),
            )
        resp = await client.send(outbound, stream=True)
    except httpx.HTTPError as exc:
        await client.aclose()
        if use_http2:
            logger.warning(
                "HTTP/2 request to %s failed (%s); retrying with HTTP/1.1",
                upstream.name,
                exc.__class__.__name__,
            )
            return await open_stream(request, upstream, http2=False)
        raise UpstreamError(f"{upstream.name} request error: {_format_httpx_error(exc, upstream)}") from exc
    except BaseException:
        await client.aclose()
        raise
    logger.info("Upstream %s responded with status %s", upstream.name, resp.status_code)
    return client, resp


async def _close(client: httpx.AsyncClient, resp: httpx.Response) -> None:
    await resp.aclose()
    await client.aclose()


async def open_checked_stream(
    request: UpstreamRequest, upstream: Upstream
) -> tuple[httpx.AsyncClient, httpx.Response]:
    """Like :func:`open_stream` but raises UpstreamError on non-2xx status."""
    client, resp = await open_stream(request, upstream)
    if not resp.is_success:
        try:
            body = await resp.aread()
        finally:
            await _close(client, resp)
        logger.warning(
            "Upstream %s returned error status %s: %s",
            upstream.name,
            resp.status_code,
            body[:500],
        )
        raise _upstream_error_from_response(resp, body, upstream.name)
    return client, resp


async def _iter_upstream(
    resp: httpx.Response, ctx: RequestContext
) -> AsyncIterator[bytes]:
    """Yield upstream chunks, stopping with CancelledError on client disconnect."""
    stream = resp.aiter_bytes()
    while True:
        if await ctx.client_disconnected():
            raise asyncio.CancelledError("client disconnected")
        try:
            chunk = await stream.__anext__()
        except StopAsyncIteration:
            break
        if chunk:
            yield chunk


def _streaming_response(body: AsyncIterator[bytes]) -> StreamingResponse:
    return StreamingResponse(
        body,
        status_code=200,
        headers=dict(STREAM_HEADERS),
        media_type="text/event-stream",
    )


async def _relay_frames(
    frames: AsyncGenerator[bytes, None],
    client: httpx.AsyncClient,
    resp: httpx.Response,
    label: str,
) -> AsyncIterator[bytes]:
    """Forward ``frames`` and always finish with the ``[DONE]`` sentinel.

    A failure after the stream started becomes one error frame. Cancellation
    and generator close release the upstream connection without the sentinel.
    """
    frame_count = 0
    try:
        async for frame in frames:
            frame_count += 1
            yield frame
    except asyncio.CancelledError:
        logger.info("Stream from %s cancelled by client after %d frames", label, frame_count)
        raise
    except Exception as exc:
        logger.error("Error during streaming from %s: %s", label, exc)
        yield error_frame(exc)
    finally:
        logger.debug("Stream completed for %s, total frames: %d", label, frame_count)
        await frames.aclose()
        await _close(client, resp)
    yield DONE_SENTINEL


# -----------------------------------------------------------------------------
# Search upstream relay
# -----------------------------------------------------------------------------


class SearchRelay:
    """Relays the search upstream's ``youChatToken`` event stream."""

    def __init__(self, upstream: Upstream) -> None:
        self.upstream = upstream

    async def warm_up(self, request: UpstreamRequest) -> None:
        """Issue a throwaway request and check its status (warm-up quirk)."""
        client, resp = await open_checked_stream(request, self.upstream)
        await _close(client, resp)

    async def _collect(self, request: UpstreamRequest) -> str:
        client, resp = await open_checked_stream(request, self.upstream)
        decoder = TokenEventDecoder()
        parts: list[str] = []
        try:
            async for chunk in resp.aiter_bytes():
                parts.extend(decoder.feed(chunk))
            parts.extend(decoder.flush())
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"{self.upstream.name} stream error: {_format_httpx_error(exc, self.upstream)}"
            ) from exc
        finally:
            await _close(client, resp)
        return "".join(parts)

    async def complete(self, request: UpstreamRequest, ctx: RequestContext) -> ChatCompletionResponse:
        """Drain the whole answer within the upstream timeout."""
        try:
            content = await asyncio.wait_for(self._collect(request), timeout=self.upstream.timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(
                f"{self.upstream.name} did not finish within {self.upstream.timeout}s",
                status_code=504,
            ) from exc
        logger.info("Collected %d characters from %s", len(content), self.upstream.name)
        return completion_object(ctx, content)

    async def stream(self, request: UpstreamRequest, ctx: RequestContext) -> StreamingResponse:
        client, resp = await open_checked_stream(request, self.upstream)

        async def frames() -> AsyncIterator[bytes]:
            decoder = TokenEventDecoder()
            async for chunk in _iter_upstream(resp, ctx):
                for token in decoder.feed(chunk):
                    yield encode_sse_data(chunk_object(ctx, {"content": token}))
            for token in decoder.flush():
                yield encode_sse_data(chunk_object(ctx, {"content": token}))

        return _streaming_response(_relay_frames(frames(), client, resp, self.upstream.name))


# -----------------------------------------------------------------------------
# JSON upstream relay
# -----------------------------------------------------------------------------


def _is_event_stream(resp: httpx.Response) -> bool:
    return "text/event-stream" in resp.headers.get("content-type", "").lower()


def _decode_json_body(body: bytes) -> ParsedCompletion:
    text = body.decode("utf-8", errors="replace")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        # Plain-text answers are the completion itself
        return ParsedCompletion(TEXT, text)
    return parse_json_completion(payload)


def _delta_content(value: str) -> str:
    try:
        payload = json.loads(value)
    except json.JSONDecodeError:
        return ""
    if not isinstance(payload, Mapping):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], Mapping):
        return ""
    delta = choices[0].get("delta")
    if isinstance(delta, Mapping) and isinstance(delta.get("content"), str):
        return delta["content"]
    return ""


def _with_response_model(value: str, model: str) -> str:
    """Report ``model`` in a passed-through frame that names a model."""
    try:
        payload = json.loads(value)
    except json.JSONDecodeError:
        return value
    if not isinstance(payload, dict) or "model" not in payload:
        return value
    payload["model"] = model
    return json.dumps(payload, ensure_ascii=False)


class JsonRelay:
    """Relays a JSON chat upstream (single document or ``data:`` stream)."""

    def __init__(self, upstream: Upstream) -> None:
        self.upstream = upstream

    async def _read(self, request: UpstreamRequest) -> tuple[httpx.Response, bytes]:
        client, resp = await open_checked_stream(request, self.upstream)
        try:
            body = await resp.aread()
        except httpx.HTTPError as exc:
            raise UpstreamError(
                f"{self.upstream.name} read error: {_format_httpx_error(exc, self.upstream)}"
            ) from exc
        finally:
            await _close(client, resp)
        return resp, body

    async def complete(self, request: UpstreamRequest, ctx: RequestContext) -> ChatCompletionResponse:
        try:
            resp, body = await asyncio.wait_for(self._read(request), timeout=self.upstream.timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamError(
                f"{self.upstream.name} did not finish within {self.upstream.timeout}s",
                status_code=504,
            ) from exc

        if _is_event_stream(resp):
            decoder = DataLineDecoder()
            parts: list[str] = []
            for kind, value in decoder.feed(body) + decoder.flush():
                if kind == "text":
                    parts.append(value)
                elif value != "[DONE]":
                    parts.append(_delta_content(value))
            return completion_object(ctx, "".join(parts))

        parsed = _decode_json_body(body)
        if parsed.kind == OPENAI and parsed.raw is not None:
            raw = parsed.raw
            result: dict[str, Any] = {
                "id": raw.get("id") or ctx.completion_id,
                "object": "chat.completion",
                "created": raw.get("created") or ctx.created,
                "model": ctx.response_model,
                "choices": raw["choices"],
            }
            if raw.get("usage"):
                result["usage"] = raw["usage"]
            return result  # type: ignore[return-value]
        return completion_object(ctx, parsed.content)

    async def stream(self, request: UpstreamRequest, ctx: RequestContext) -> StreamingResponse:
        client, resp = await open_checked_stream(request, self.upstream)

        async def sse_frames() -> AsyncIterator[bytes]:
            decoder = DataLineDecoder()

            def convert(items: list[tuple[str, str]]) -> list[bytes]:
                out: list[bytes] = []
                for kind, value in items:
                    if kind == "data":
                        if value != "[DONE]":
                            value = _with_response_model(value, ctx.response_model)
                            out.append(f"data: {value}\n\n".encode("utf-8"))
                    elif value:
                        out.append(encode_sse_data(chunk_object(ctx, {"content": value})))
                return out

            async for chunk in _iter_upstream(resp, ctx):
                for frame in convert(decoder.feed(chunk)):
                    yield frame
            for frame in convert(decoder.flush()):
                yield frame

        async def document_frames() -> AsyncIterator[bytes]:
            body = bytearray()
            async for chunk in _iter_upstream(resp, ctx):
                body.extend(chunk)
            parsed = _decode_json_body(bytes(body))
            yield encode_sse_data(chunk_object(ctx, {"role": "assistant"}))
            if parsed.content:
                yield encode_sse_data(chunk_object(ctx, {"content": parsed.content}))
            yield encode_sse_data(chunk_object(ctx, {}, finish_reason="stop"))

        frames = sse_frames() if _is_event_stream(resp) else document_frames()
        return _streaming_response(_relay_frames(frames, client, resp, self.upstream.name))
