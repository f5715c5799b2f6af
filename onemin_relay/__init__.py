"""onemin-relay - an OpenAI-compatible front for the 1min.ai API

Lets OpenAI-style chat clients talk to a backend with a different request
shape, size limits and streaming format.

This module provides:
- ChatService: routes a request to the single-shot, streamed or chunked path
- Segmentation of oversized input and sequential chunked translation
- Transcoding of the backend's raw text stream into SSE chunk frames
- Per-request lifecycle metrics

Example:
    >>> from onemin_relay.main import create_app
    >>> import uvicorn
    >>> uvicorn.run(create_app(), host="0.0.0.0", port=8000)
"""

from .chunking import Segment, SegmentationConfig, reassemble, segment_text
from .config_loader import load_config
from .core import BackendClient, StreamTranscoder
from .logging import TranslationRecorder, logger, setup_logging
from .pipeline import ChatService, ChunkedTranslator

__all__ = [
    "BackendClient",
    "ChatService",
    "ChunkedTranslator",
    "Segment",
    "SegmentationConfig",
    "StreamTranscoder",
    "TranslationRecorder",
    "load_config",
    "logger",
    "reassemble",
    "segment_text",
    "setup_logging",
]
