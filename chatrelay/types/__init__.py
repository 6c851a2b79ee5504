"""Type definitions for the gateway."""

from .chat import (
    ChatCompletionChunk,
    ChatCompletionResponse,
    ChatMessage,
    Choice,
    ContentPart,
    Delta,
    ErrorBody,
    ErrorResponse,
    ImageUrl,
    ModelCard,
    ModelList,
    Usage,
)

__all__ = [
    "ChatCompletionChunk",
    "ChatCompletionResponse",
    "ChatMessage",
    "Choice",
    "ContentPart",
    "Delta",
    "ErrorBody",
    "ErrorResponse",
    "ImageUrl",
    "ModelCard",
    "ModelList",
    "Usage",
]
