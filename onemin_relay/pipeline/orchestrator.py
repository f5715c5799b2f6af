"""Chunked translation: drive oversized requests through the backend one segment at a time."""

from __future__ import annotations

import asyncio
import enum
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from ..chunking import Segment, SegmentationConfig, detect_structured_text, segment_text
from ..core.backend import BackendClient, build_chat_request_body, extract_result_text
from ..core.exceptions import BackendCallError, TranslationPipelineError
from ..logging.recorder import TranslationRecorder
from ..models import ResolvedModel
from ..types.chat import ChatCompletionResponse
from ..types.request import ChatRequest

logger = logging.getLogger("onemin-relay")

# Rough characters-per-token ratio used for the usage block.
CHARS_PER_TOKEN = 4
DEFAULT_INTER_SEGMENT_DELAY_S = 0.1

STRUCTURED_SEPARATOR = "\n\n"
PLAIN_SEPARATOR = " "


class RunState(str, enum.Enum):
    STARTED = "started"
    SEGMENTING = "segmenting"
    PROCESSING = "processing"
    AGGREGATING = "aggregating"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class TranslationRun:
    """Per-request state of one chunked translation."""

    request_id: str
    model: str
    status: RunState = RunState.STARTED
    structured: bool = False
    segments: list[Segment] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    processing_index: Optional[int] = None
    error: Optional[str] = None

    def advance(self, state: RunState) -> None:
        logger.debug(f"[CHUNKING] Request {self.request_id}: {self.status.value} -> {state.value}")
        self.status = state


def approximate_usage(prompt: str, completion: str) -> dict[str, int]:
    return {
        "prompt_tokens": len(prompt) // CHARS_PER_TOKEN,
        "completion_tokens": len(completion) // CHARS_PER_TOKEN,
        "total_tokens": (len(prompt) + len(completion)) // CHARS_PER_TOKEN,
    }


def _token_count(value: Any) -> int:
    """Backend token counts may be missing, null or strings; those count as 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def build_completion_response(
    model: str, content: str, usage: Mapping[str, Any]
) -> ChatCompletionResponse:
    return {
        "id": f"chatcmpl-{uuid.uuid4()}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": content},
                "finish_reason": "stop",
            }
        ],
        "usage": {
            "prompt_tokens": _token_count(usage.get("prompt_tokens")),
            "completion_tokens": _token_count(usage.get("completion_tokens")),
            "total_tokens": _token_count(usage.get("total_tokens")),
        },
    }


class ChunkedTranslator:
    """Translate oversized requests segment by segment.

    Segments are sent strictly in order, one at a time, with a short pause
    between calls. The first failing segment aborts the whole run; there is
    no retry and no partial result.
    """

    def __init__(
        self,
        client: BackendClient,
        recorder: TranslationRecorder,
        segmentation: Optional[SegmentationConfig] = None,
        inter_segment_delay_s: float = DEFAULT_INTER_SEGMENT_DELAY_S,
    ) -> None:
        self.client = client
        self.recorder = recorder
        self.segmentation = segmentation or SegmentationConfig()
        self.inter_segment_delay_s = inter_segment_delay_s

    @classmethod
    def from_config(
        cls,
        client: BackendClient,
        recorder: TranslationRecorder,
        section: Mapping[str, Any],
    ) -> "ChunkedTranslator":
        delay_ms = section.get("inter_segment_delay_ms")
        delay_s = (
            float(delay_ms) / 1000.0 if delay_ms is not None else DEFAULT_INTER_SEGMENT_DELAY_S
        )
        return cls(
            client,
            recorder,
            segmentation=SegmentationConfig.from_config(section),
            inter_segment_delay_s=max(0.0, delay_s),
        )

    async def translate_chunked(
        self,
        request: ChatRequest,
        model: ResolvedModel,
        request_id: str,
    ) -> ChatCompletionResponse:
        """Run the full segment → translate → join pipeline.

        Raises:
            TranslationPipelineError: If any segment call fails.
        """
        run = TranslationRun(request_id=request_id, model=model.name)
        try:
            return await self._run(run, request, model)
        except asyncio.CancelledError:
            run.advance(RunState.FAILED)
            run.error = "request cancelled"
            self.recorder.fail(request_id, run.error)
            raise
        except Exception as exc:
            run.advance(RunState.FAILED)
            run.error = str(exc)
            self.recorder.fail(request_id, run.error)
            logger.error(f"[CHUNKING] Request {request_id} failed: {exc}")
            if isinstance(exc, TranslationPipelineError):
                raise
            raise TranslationPipelineError(
                f"Chunked translation failed: {exc}", segment_index=run.processing_index
            ) from exc

    async def _run(
        self, run: TranslationRun, request: ChatRequest, model: ResolvedModel
    ) -> ChatCompletionResponse:
        run.advance(RunState.SEGMENTING)
        text = request.joined_text()
        run.structured = detect_structured_text(text)
        run.segments = segment_text(text, run.structured, self.segmentation)
        total = len(run.segments)
        logger.info(
            f"[CHUNKING] Processing {total} {'structured' if run.structured else 'plain'} "
            f"segments for request {run.request_id}"
        )

        run.advance(RunState.PROCESSING)
        for segment in run.segments:
            run.processing_index = segment.index
            logger.info(
                f"[CHUNKING] Processing segment {segment.index + 1}/{total} "
                f"({len(segment.content)} chars)"
            )
            run.outputs.append(await self._translate_segment(segment, request, model))

            if segment.index < total - 1 and self.inter_segment_delay_s > 0:
                await asyncio.sleep(self.inter_segment_delay_s)
        run.processing_index = None

        run.advance(RunState.AGGREGATING)
        separator = STRUCTURED_SEPARATOR if run.structured else PLAIN_SEPARATOR
        translation = separator.join(run.outputs)
        response = build_completion_response(
            model.name, translation, approximate_usage(text, translation)
        )

        run.advance(RunState.COMPLETED)
        self.recorder.complete(run.request_id, total)
        return response

    async def _translate_segment(
        self, segment: Segment, request: ChatRequest, model: ResolvedModel
    ) -> str:
        payload = build_chat_request_body(
            [{"role": "user", "content": segment.content}],
            model.name,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            web_search=model.web_search,
        )
        try:
            data = await self.client.send_chat(payload, streaming=False)
        except BackendCallError as exc:
            raise TranslationPipelineError(
                f"Segment {segment.index + 1} failed: {exc.message}",
                segment_index=segment.index,
            ) from exc
        return extract_result_text(data)
