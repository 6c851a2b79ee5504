"""OpenAI-compatible chat completions endpoint."""

import json
import logging
from typing import Any, Mapping

from fastapi import Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.requests import ClientDisconnect

from ...auth import extract_bearer_token
from ...core.context import RequestContext
from ...core.exceptions import InvalidRequestError, ProxyError, UpstreamError
from ...core.registry import get_gateway

logger = logging.getLogger("chatrelay")


def error_response(exc: ProxyError) -> Response:
    """Render ``exc`` for the client.

    Upstream failures that carried a body are mirrored verbatim with the
    upstream's status; everything else gets the OpenAI error envelope.
    """
    if isinstance(exc, UpstreamError) and exc.body is not None:
        return Response(
            content=exc.body,
            status_code=exc.status_code,
            media_type=exc.content_type or "application/json",
        )
    return JSONResponse(exc.to_payload(), status_code=exc.status_code)


def internal_error_response(exc: Exception) -> JSONResponse:
    return JSONResponse(
        {
            "error": {
                "message": f"Internal server error: {exc}",
                "type": "internal_error",
                "code": "internal_error",
            }
        },
        status_code=500,
    )


def parse_chat_payload(body: bytes) -> Mapping[str, Any]:
    """Decode and validate a chat completions request body.

    Raises:
        InvalidRequestError: on invalid JSON, a non-object body, or a missing
            or empty ``messages`` array.
    """
    try:
        payload = json.loads(body or b"{}")
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequestError("Invalid JSON payload", code="invalid_json") from exc
    if not isinstance(payload, Mapping):
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json_shape")
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError("You must provide a messages array", code="missing_parameter")
    if not all(isinstance(message, Mapping) for message in messages):
        raise InvalidRequestError("Every message must be a JSON object", code="invalid_messages")
    return payload


async def handle_chat_request(request: Request) -> Response:
    """Validate the request, build its context and hand it to the gateway.

    Args:
        request: The FastAPI request object.

    Returns:
        A JSON completion, a StreamingResponse, or an error response.
    """
    logger.info(f"Handling {request.method} request to {request.url.path}")
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.warning("Client disconnected before request body was fully read")
        return Response(status_code=499)  # Client Closed Request

    try:
        credential = extract_bearer_token(request.headers)
        payload = parse_chat_payload(body)
        gateway = get_gateway()

        model = payload.get("model")
        if not isinstance(model, str) or not model:
            model = gateway.default_model

        ctx = RequestContext(
            model=model,
            messages=list(payload["messages"]),
            credential=credential,
            stream=bool(payload.get("stream")),
            payload=payload,
            disconnect_checker=request.is_disconnected,
        )
        logger.info(f"Processing request for model {ctx.model}, stream={ctx.stream}")
        result = await gateway.chat_completion(ctx)
    except ProxyError as exc:
        logger.warning(f"Request failed ({exc.status_code}): {exc.message}")
        return error_response(exc)
    except Exception as exc:
        logger.exception(f"Unexpected error handling chat completion: {exc}")
        return internal_error_response(exc)

    if isinstance(result, StreamingResponse):
        return result
    return JSONResponse(result)


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    return await handle_chat_request(request)
