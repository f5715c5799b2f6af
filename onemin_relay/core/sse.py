"""SSE (Server-Sent Events) framing and the backend stream transcoder.

The backend streams raw text. The transcoder turns every piece it reads into
an OpenAI ``chat.completion.chunk`` frame:

    data: {"id":"chatcmpl-...","object":"chat.completion.chunk",...,
           "choices":[{"index":0,"delta":{"content":"Hola"},"finish_reason":null}]}

    data: {..."choices":[{"index":0,"delta":{},"finish_reason":"stop"}]}

    data: [DONE]

Frames are produced by a background task and handed to the HTTP response
through an :class:`SSEChannel`. The response object is returned to the
caller before the first frame exists.
"""

import asyncio
import codecs
import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from fastapi.responses import StreamingResponse

from ..logging.recorder import TranslationRecorder
from ..types.chat import ChatCompletionChunk
from .exceptions import StreamTranscodeError

logger = logging.getLogger("onemin-relay")

DONE_FRAME = b"data: [DONE]\n\n"
CHANNEL_MAX_FRAMES = 64
# A frame nobody reads for this long means the consumer is gone.
CHANNEL_WRITE_TIMEOUT_S = 30.0
SHUTDOWN_STREAM_WAIT_S = 30.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

_PENDING_STREAM_TASKS: set[asyncio.Task] = set()


def _register_background_task(task: asyncio.Task) -> None:
    """Register a background task and set up cleanup."""
    _PENDING_STREAM_TASKS.add(task)

    def _cleanup(_task: asyncio.Task) -> None:
        _PENDING_STREAM_TASKS.discard(_task)

    task.add_done_callback(_cleanup)


async def wait_for_pending_streams(timeout_s: float = SHUTDOWN_STREAM_WAIT_S) -> None:
    """Wait for detached transcoding tasks, cancelling any still running after ``timeout_s``."""
    if not _PENDING_STREAM_TASKS:
        return
    tasks = list(_PENDING_STREAM_TASKS)
    logger.info("Waiting for %d pending stream tasks", len(tasks))
    _, pending = await asyncio.wait(tasks, timeout=timeout_s)
    if pending:
        logger.warning(
            "Cancelling %d stream tasks still running after %.1fs", len(pending), timeout_s
        )
        for task in pending:
            task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


def encode_sse_frame(payload: Any) -> bytes:
    """Encode one ``data: <json>`` frame."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n".encode("utf-8")


def build_chunk(
    completion_id: str,
    model: str,
    content: Optional[str] = None,
    finish_reason: Optional[str] = None,
) -> ChatCompletionChunk:
    delta = {"content": content} if content is not None else {}
    return {
        "id": completion_id,
        "object": "chat.completion.chunk",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": delta,
                "finish_reason": finish_reason,
            }
        ],
    }


_END = object()


class SSEChannel:
    """A bounded hand-off between one producer task and one HTTP body.

    The producer calls :meth:`write`, then :meth:`close` or :meth:`abort`.
    The consumer iterates :meth:`frames`. When the consumer goes away the
    next write raises :class:`StreamTranscodeError`. A consumer that stops
    reading for ``write_timeout_s`` is treated as gone, which also covers a
    response whose body is never iterated.
    """

    def __init__(
        self,
        max_frames: int = CHANNEL_MAX_FRAMES,
        write_timeout_s: float = CHANNEL_WRITE_TIMEOUT_S,
    ) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_frames)
        self.write_timeout_s = write_timeout_s
        self._closed = False
        self._consumer_closed = False
        self._error: Optional[BaseException] = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def consumer_closed(self) -> bool:
        return self._consumer_closed

    async def write(self, data: bytes) -> None:
        if self._consumer_closed:
            raise StreamTranscodeError("stream consumer is gone")
        if self._closed:
            raise StreamTranscodeError("write to a closed stream")
        if not await self._put(data):
            raise StreamTranscodeError("stream consumer stalled")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if not self._consumer_closed:
            if not await self._put(_END):
                raise StreamTranscodeError("stream consumer stalled")

    def close_nowait(self) -> None:
        """Close a channel nothing has been written to yet."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_END)

    async def abort(self, error: BaseException) -> None:
        if self._closed:
            return
        self._error = error
        self._closed = True
        if not self._consumer_closed:
            await self._put(_END)

    def abort_nowait(self, error: BaseException) -> None:
        """Abort without waiting for room; a full queue loses its undelivered frames."""
        if self._closed:
            return
        self._error = error
        self._closed = True
        if self._consumer_closed:
            return
        if self._queue.full():
            while not self._queue.empty():
                self._queue.get_nowait()
        self._queue.put_nowait(_END)

    async def _put(self, item: Any) -> bool:
        """Queue ``item``; False when the consumer stalled and was dropped."""
        try:
            await asyncio.wait_for(self._queue.put(item), self.write_timeout_s)
        except asyncio.TimeoutError:
            logger.warning(
                "Stream consumer read nothing for %.1fs, dropping it", self.write_timeout_s
            )
            self.close_consumer()
            # A reader that shows up late sees the failure instead of waiting forever.
            if self._error is None:
                self._error = StreamTranscodeError("stream consumer stalled")
            self._queue.put_nowait(_END)
            return False
        return True

    def close_consumer(self) -> None:
        """Mark the consumer as gone and release a blocked producer."""
        if self._consumer_closed:
            return
        self._consumer_closed = True
        while not self._queue.empty():
            self._queue.get_nowait()

    async def frames(self) -> AsyncIterator[bytes]:
        """Yield frames until the producer closes; re-raise an abort."""
        try:
            while True:
                item = await self._queue.get()
                if item is _END:
                    if self._error is not None:
                        raise StreamTranscodeError(
                            f"stream aborted: {self._error}"
                        ) from self._error
                    return
                yield item
        finally:
            if not self._closed:
                logger.info("Stream consumer closed before the producer finished")
            self.close_consumer()


class StreamTranscoder:
    """Convert a raw backend byte stream into chat completion chunk frames."""

    def __init__(
        self,
        model: str,
        request_id: str,
        recorder: Optional[TranslationRecorder] = None,
        channel: Optional[SSEChannel] = None,
    ) -> None:
        self.model = model
        self.request_id = request_id
        self.recorder = recorder
        self.channel = channel or SSEChannel()
        self.completion_id = f"chatcmpl-{uuid.uuid4()}"
        self.frames_written = 0
        self.task: Optional[asyncio.Task] = None

    def start(
        self,
        source: Optional[AsyncIterator[bytes]],
        close_source: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> StreamingResponse:
        """Launch the pump and return the event-stream response immediately.

        With no source the channel is closed at once and the client sees an
        empty stream.
        """
        if source is None:
            logger.warning(f"No stream body for request {self.request_id}")
            self.channel.close_nowait()
            if self.recorder is not None:
                self.recorder.complete(self.request_id)
        else:
            self.task = asyncio.get_running_loop().create_task(
                self.pump(source, close_source)
            )
            _register_background_task(self.task)

        return StreamingResponse(
            self.channel.frames(),
            media_type="text/event-stream",
            headers=dict(SSE_HEADERS),
        )

    async def pump(
        self,
        source: AsyncIterator[bytes],
        close_source: Optional[Callable[[], Awaitable[None]]] = None,
    ) -> None:
        """Read ``source`` to exhaustion, writing one frame per read.

        Errors abort the channel and are recorded as a failed run; frames
        already written stay delivered.
        """
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            async for raw in source:
                await self._write_piece(decoder.decode(raw))
            await self._write_piece(decoder.decode(b"", final=True))

            await self.channel.write(
                encode_sse_frame(
                    build_chunk(self.completion_id, self.model, finish_reason="stop")
                )
            )
            await self.channel.write(DONE_FRAME)
            await self.channel.close()
        except asyncio.CancelledError:
            logger.info(f"Stream for request {self.request_id} cancelled")
            if self.recorder is not None:
                self.recorder.fail(self.request_id, "stream cancelled")
            self.channel.abort_nowait(StreamTranscodeError("stream cancelled"))
            raise
        except Exception as exc:
            logger.error(f"Streaming error for request {self.request_id}: {exc}")
            if self.recorder is not None:
                self.recorder.fail(self.request_id, str(exc))
            # The consumer re-raises this, which is how the transport sees it.
            await self.channel.abort(exc)
        else:
            logger.debug(
                f"Stream for request {self.request_id} finished after {self.frames_written} frames"
            )
            if self.recorder is not None:
                self.recorder.complete(self.request_id)
        finally:
            if close_source is not None:
                await close_source()

    async def _write_piece(self, piece: str) -> None:
        if not piece:
            return
        await self.channel.write(
            encode_sse_frame(build_chunk(self.completion_id, self.model, content=piece))
        )
        self.frames_written += 1
