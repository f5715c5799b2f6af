"""The relay's chat operation: route a request to the single-shot, streamed or chunked path."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Mapping, Optional

from fastapi.responses import JSONResponse, Response

from ..config_loader import get_section
from ..core.backend import (
    Backend,
    BackendClient,
    build_chat_request_body,
    extract_result_text,
)
from ..core.exceptions import BackendCallError, StreamTranscodeError
from ..core.sse import StreamTranscoder
from ..logging.recorder import TranslationRecorder, get_recorder
from ..models import ModelCatalog, ResolvedModel, resolve_model
from ..types.request import ChatRequest
from .orchestrator import ChunkedTranslator, build_completion_response

logger = logging.getLogger("onemin-relay")

# Requests whose string contents exceed this many characters are chunked.
# Chunked requests are always answered with one non-streamed completion.
CHUNKING_THRESHOLD = 2000


class ChatService:
    """Adapt OpenAI-style chat requests to the backend."""

    def __init__(
        self,
        client: BackendClient,
        catalog: ModelCatalog,
        recorder: TranslationRecorder,
        translator: ChunkedTranslator,
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.recorder = recorder
        self.translator = translator

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        recorder: Optional[TranslationRecorder] = None,
    ) -> "ChatService":
        if recorder is None:
            recorder = get_recorder()
        metrics_cfg = get_section(config, "metrics")
        if "ttl_seconds" in metrics_cfg:
            recorder.ttl_seconds = float(metrics_cfg["ttl_seconds"])
        if "slow_request_warning_s" in metrics_cfg:
            recorder.slow_request_warning_s = float(metrics_cfg["slow_request_warning_s"])

        client = BackendClient(Backend.from_config(config))
        translator = ChunkedTranslator.from_config(
            client, recorder, get_section(config, "chunking")
        )
        return cls(client, ModelCatalog.from_config(config), recorder, translator)

    async def translate(self, request: ChatRequest) -> Response:
        """Answer one chat request.

        Raises:
            InvalidRequestError: Before any backend call, for a bad model.
            BackendCallError: When a single-shot call fails or its reply is unreadable.
            StreamTranscodeError: When a backend stream cannot be handed to the client.
            TranslationPipelineError: When a chunked run fails.
        """
        model = resolve_model(request.model, self.catalog)
        request_id = str(uuid.uuid4())
        text_length = request.text_length()

        self.recorder.start(request_id, text_length, model.name)

        if text_length > CHUNKING_THRESHOLD:
            logger.info(
                f"[CHUNKING] Request {request_id} - Text length {text_length} "
                f"exceeds limit, chunking enabled"
            )
            if request.stream:
                logger.info(
                    f"[CHUNKING] Request {request_id} asked for streaming; "
                    f"answering with a single completion"
                )
            body = await self.translator.translate_chunked(request, model, request_id)
            return JSONResponse(body)

        if request.stream:
            return await self._stream(request, model, request_id)
        return await self._complete(request, model, request_id)

    def _payload(self, request: ChatRequest, model: ResolvedModel) -> dict[str, Any]:
        return build_chat_request_body(
            request.messages,
            model.name,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            web_search=model.web_search,
        )

    async def _complete(
        self, request: ChatRequest, model: ResolvedModel, request_id: str
    ) -> Response:
        try:
            data = await self.client.send_chat(self._payload(request, model), streaming=False)
            usage = data.get("usage") if isinstance(data, Mapping) else None
            body = build_completion_response(
                model.name,
                extract_result_text(data),
                usage if isinstance(usage, Mapping) else {},
            )
        except asyncio.CancelledError:
            self.recorder.fail(request_id, "request cancelled")
            raise
        except BackendCallError as exc:
            self.recorder.fail(request_id, exc.message)
            raise
        except Exception as exc:
            logger.error(f"Unreadable backend reply for request {request_id}: {exc}")
            self.recorder.fail(request_id, str(exc))
            raise BackendCallError(f"unreadable backend reply: {exc}") from exc

        self.recorder.complete(request_id)
        return JSONResponse(body)

    async def _stream(
        self, request: ChatRequest, model: ResolvedModel, request_id: str
    ) -> Response:
        try:
            stream = await self.client.send_chat(self._payload(request, model), streaming=True)
        except asyncio.CancelledError:
            self.recorder.fail(request_id, "request cancelled")
            raise
        except BackendCallError as exc:
            self.recorder.fail(request_id, exc.message)
            raise
        except Exception as exc:
            logger.error(f"Backend stream failed to open for request {request_id}: {exc}")
            self.recorder.fail(request_id, str(exc))
            raise BackendCallError(f"backend stream failed to open: {exc}") from exc

        try:
            transcoder = StreamTranscoder(model.name, request_id, self.recorder)
            return transcoder.start(stream.aiter_bytes(), close_source=stream.aclose)
        except Exception as exc:
            logger.error(f"Could not start stream for request {request_id}: {exc}")
            self.recorder.fail(request_id, str(exc))
            await stream.aclose()
            raise StreamTranscodeError(f"could not start stream: {exc}") from exc
