"""API module for the relay."""

from .routes import chat_completions, handle_chat_request, list_models, translations_router

__all__ = [
    "chat_completions",
    "handle_chat_request",
    "list_models",
    "translations_router",
]
