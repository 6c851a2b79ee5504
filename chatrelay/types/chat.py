"""Wire types of the OpenAI-compatible surface the gateway exposes.

Responses have the same shape whichever upstream served the request; the
``model`` field always carries the advertised id, never the upstream's own.
"""

from typing_extensions import TypedDict


class ImageUrl(TypedDict, total=False):
    """``url`` is http(s) or ``data:<mime>;base64,<payload>``; ``detail`` is ignored."""
    url: str
    detail: str | None


class ContentPart(TypedDict, total=False):
    """One element of a multi-part ``content`` list.

    Only ``"text"`` and ``"image_url"`` parts matter to the gateway; other
    part types are carried along but contribute no text.
    """
    type: str
    text: str | None
    image_url: ImageUrl | None


class ChatMessage(TypedDict, total=False):
    """Inbound message. ``role`` is system, user, assistant or tool."""
    role: str
    content: str | list[ContentPart] | None
    name: str | None


class Delta(TypedDict, total=False):
    role: str | None
    content: str | None


class Choice(TypedDict, total=False):
    """``delta`` in stream chunks, ``message`` in complete responses."""
    index: int
    delta: Delta | None
    message: ChatMessage | None
    finish_reason: str | None


class Usage(TypedDict, total=False):
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


class ChatCompletionChunk(TypedDict, total=False):
    """One ``data:`` frame of a streamed completion.

    ``id`` and ``created`` are fixed for the whole stream; ``object`` is
    always ``"chat.completion.chunk"``.
    """
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]


class ChatCompletionResponse(TypedDict, total=False):
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage | None


class ModelCard(TypedDict):
    """One entry of ``GET /v1/models``."""
    id: str
    object: str
    created: int
    owned_by: str


class ModelList(TypedDict):
    object: str
    data: list[ModelCard]


class ErrorBody(TypedDict, total=False):
    message: str
    type: str
    code: str | None


class ErrorResponse(TypedDict):
    error: ErrorBody


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
