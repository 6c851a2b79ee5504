"""Models listing endpoints - OpenAI compatible."""

import logging

from fastapi.responses import JSONResponse

from ...core.registry import get_gateway

logger = logging.getLogger("chatrelay")


async def list_models() -> dict:
    """List available models in OpenAI API format.

    GET /v1/models

    Returns:
        A dictionary containing the list of available models.
    """
    logger.info("Received models list request")
    gateway = get_gateway()
    return {
        "object": "list",
        "data": gateway.list_models(),
    }


async def retrieve_model(model_id: str):
    """GET /v1/models/{model_id}"""
    card = get_gateway().get_model(model_id)
    if card is None:
        return JSONResponse(
            {
                "error": {
                    "message": f"The model '{model_id}' does not exist",
                    "type": "invalid_request_error",
                    "code": "model_not_found",
                }
            },
            status_code=404,
        )
    return card
