"""API routes for the relay."""

from .chat import chat_completions, handle_chat_request
from .models import list_models
from .translations import router as translations_router

__all__ = [
    "chat_completions",
    "handle_chat_request",
    "list_models",
    "translations_router",
]
