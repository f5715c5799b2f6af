"""Core module initialization."""

from .exceptions import (
    BackendCallError,
    ConfigurationError,
    InvalidRequestError,
    ModelNotFoundError,
    ProxyError,
    StreamTranscodeError,
    TranslationPipelineError,
)
from .backend import (
    Backend,
    BackendClient,
    BackendStream,
    build_chat_request_body,
    build_outbound_headers,
    build_prompt,
    extract_result_text,
    format_httpx_error,
)
from .registry import get_service, set_service
from .sse import SSEChannel, StreamTranscoder, encode_sse_frame

__all__ = [
    "Backend",
    "BackendCallError",
    "BackendClient",
    "BackendStream",
    "ConfigurationError",
    "InvalidRequestError",
    "ModelNotFoundError",
    "ProxyError",
    "SSEChannel",
    "StreamTranscodeError",
    "StreamTranscoder",
    "TranslationPipelineError",
    "build_chat_request_body",
    "build_outbound_headers",
    "build_prompt",
    "encode_sse_frame",
    "extract_result_text",
    "format_httpx_error",
    "get_service",
    "set_service",
]
