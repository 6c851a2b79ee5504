"""API module for the gateway."""

from .routes import chat_completions, handle_chat_request, list_models, retrieve_model

__all__ = [
    "chat_completions",
    "handle_chat_request",
    "list_models",
    "retrieve_model",
]
