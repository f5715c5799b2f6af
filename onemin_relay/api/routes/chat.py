"""OpenAI-compatible chat completions endpoint."""

import json
import logging
from typing import Any, Optional

from fastapi import HTTPException, Request, Response

from ...core.exceptions import (
    BackendCallError,
    InvalidRequestError,
    StreamTranscodeError,
    TranslationPipelineError,
)
from ...core.registry import get_service
from ...types.request import ChatRequest

logger = logging.getLogger("onemin-relay")


def _error_detail(message: str, error_type: str, code: str, param: Optional[str] = None) -> dict[str, Any]:
    error: dict[str, Any] = {"message": message, "type": error_type, "code": code}
    if param:
        error["param"] = param
    return {"error": error}


async def handle_chat_request(request: Request) -> Response:
    """Handle OpenAI-compatible chat completions requests.

    Decodes and validates the body, then hands it to the chat service.
    Validation problems become 400s; every failure after a run has started
    becomes a generic 500.

    Args:
        request: The FastAPI request object.

    Returns:
        A JSON response, or a StreamingResponse for streamed short requests.
    """
    logger.info(f"Handling {request.method} request to {request.url.path}")

    body = await request.body()
    try:
        payload = json.loads(body or b"{}")
    except json.JSONDecodeError as exc:
        logger.error(f"Invalid JSON payload: {exc}")
        raise HTTPException(
            status_code=400,
            detail=_error_detail("Invalid JSON payload", "invalid_request_error", "invalid_json"),
        ) from exc

    try:
        chat_request = ChatRequest.from_payload(payload)
        logger.info(
            f"[REQUEST-CONTENT] Messages: {len(chat_request.messages)}, "
            f"Total text length: {chat_request.text_length()}"
        )
        logger.info(
            f"[REQUEST-CONTENT] Model: {chat_request.model or 'default'}, "
            f"Stream: {chat_request.stream}"
        )
        return await get_service().translate(chat_request)
    except InvalidRequestError as exc:
        logger.error(f"Rejected request: {exc.message}")
        raise HTTPException(
            status_code=400,
            detail=_error_detail(exc.message, "invalid_request_error", exc.code, exc.param),
        ) from exc
    except (BackendCallError, TranslationPipelineError, StreamTranscodeError) as exc:
        logger.error(f"Chat completion failed: {exc.message}")
        raise HTTPException(
            status_code=500,
            detail=_error_detail("Internal server error", "server_error", "internal_error"),
        ) from exc


async def chat_completions(request: Request) -> Response:
    """Chat completions endpoint - OpenAI compatible.

    POST /v1/chat/completions
    """
    logger.info("Received chat completions request")
    return await handle_chat_request(request)
