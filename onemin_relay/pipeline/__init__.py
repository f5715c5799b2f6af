"""Request pipelines: single-shot, streamed and chunked."""

from .chat import CHUNKING_THRESHOLD, ChatService
from .orchestrator import (
    ChunkedTranslator,
    RunState,
    TranslationRun,
    approximate_usage,
    build_completion_response,
)

__all__ = [
    "CHUNKING_THRESHOLD",
    "ChatService",
    "ChunkedTranslator",
    "RunState",
    "TranslationRun",
    "approximate_usage",
    "build_completion_response",
]
