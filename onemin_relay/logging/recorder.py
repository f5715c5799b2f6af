"""Translation lifecycle recording.

The recorder is a passive sink for ``started``/``completed``/``failed``
events keyed by request id. It keeps the latest metrics snapshot for each
request so they can be inspected while the process runs. Entries expire
after ``ttl_seconds`` and callers may release them explicitly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from threading import Lock
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger("onemin-relay")

PHASE_STARTED = "started"
PHASE_COMPLETED = "completed"
PHASE_FAILED = "failed"

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_SLOW_REQUEST_WARNING_S = 45.0


@dataclass(frozen=True)
class LifecycleEvent:
    """An immutable lifecycle signal for one request."""

    request_id: str
    phase: str
    timestamp: float
    attributes: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class TranslationMetrics:
    """Latest known state of a single translation request."""

    request_id: str
    model: str
    text_length: int
    started_at: float
    status: str = PHASE_STARTED
    ended_at: Optional[float] = None
    duration_ms: Optional[float] = None
    segment_count: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "request_id": self.request_id,
            "model": self.model,
            "text_length": self.text_length,
            "started_at": self.started_at,
            "status": self.status,
            "ended_at": self.ended_at,
            "duration_ms": self.duration_ms,
            "segment_count": self.segment_count,
            "error": self.error,
        }


class TranslationRecorder:
    """Collect lifecycle events into a per-request metrics map."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        slow_request_warning_s: float = DEFAULT_SLOW_REQUEST_WARNING_S,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.slow_request_warning_s = slow_request_warning_s
        self._clock = clock
        self._lock = Lock()
        self._metrics: dict[str, TranslationMetrics] = {}
        self._listeners: list[Callable[[LifecycleEvent], None]] = []

    def add_listener(self, listener: Callable[[LifecycleEvent], None]) -> None:
        """Register a callable invoked with every emitted event.

        A listener that raises is logged and skipped; it never affects the
        recorded state or the caller.
        """
        self._listeners.append(listener)

    def start(self, request_id: str, text_length: int, model: str) -> None:
        now = self._clock()
        metrics = TranslationMetrics(
            request_id=request_id,
            model=model,
            text_length=text_length,
            started_at=now,
        )
        with self._lock:
            self._evict_expired(now)
            self._metrics[request_id] = metrics
        logger.info(
            "[TRANSLATION-START] %s - Text length: %d, Model: %s",
            request_id,
            text_length,
            model,
        )
        self._emit(
            request_id,
            PHASE_STARTED,
            now,
            {"text_length": text_length, "model": model},
        )

    def complete(self, request_id: str, segment_count: Optional[int] = None) -> None:
        now = self._clock()
        with self._lock:
            metrics = self._metrics.get(request_id)
            if metrics is None:
                return
            metrics.ended_at = now
            metrics.duration_ms = (now - metrics.started_at) * 1000.0
            metrics.status = PHASE_COMPLETED
            metrics.segment_count = segment_count
            duration_ms = metrics.duration_ms

        logger.info(
            "[TRANSLATION-COMPLETE] %s - Duration: %.0fms, Segments: %d",
            request_id,
            duration_ms,
            segment_count or 1,
        )
        if duration_ms > self.slow_request_warning_s * 1000.0:
            logger.warning(
                "[TRANSLATION-WARNING] %s - Duration %.0fms exceeds %.0fs",
                request_id,
                duration_ms,
                self.slow_request_warning_s,
            )
        self._emit(request_id, PHASE_COMPLETED, now, {"segment_count": segment_count})

    def fail(self, request_id: str, error: str) -> None:
        now = self._clock()
        with self._lock:
            metrics = self._metrics.get(request_id)
            if metrics is None:
                return
            metrics.ended_at = now
            metrics.duration_ms = (now - metrics.started_at) * 1000.0
            metrics.status = PHASE_FAILED
            metrics.error = error
            duration_ms = metrics.duration_ms

        logger.error(
            "[TRANSLATION-FAILED] %s - Duration: %.0fms, Error: %s",
            request_id,
            duration_ms,
            error,
        )
        self._emit(request_id, PHASE_FAILED, now, {"error": error})

    def get(self, request_id: str) -> Optional[TranslationMetrics]:
        """Return a copy of the metrics for ``request_id`` if still held."""
        with self._lock:
            metrics = self._metrics.get(request_id)
            return replace(metrics) if metrics is not None else None

    def all_metrics(self) -> list[TranslationMetrics]:
        with self._lock:
            return [replace(m) for m in self._metrics.values()]

    def release(self, request_id: str) -> None:
        """Drop the entry for a request once its response is done."""
        with self._lock:
            self._metrics.pop(request_id, None)

    def clear(self) -> None:
        with self._lock:
            self._metrics.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)

    def _evict_expired(self, now: float) -> None:
        # Caller holds the lock.
        if self.ttl_seconds <= 0:
            return
        cutoff = now - self.ttl_seconds
        expired = [
            key
            for key, metrics in self._metrics.items()
            if (metrics.ended_at or metrics.started_at) < cutoff
        ]
        for key in expired:
            del self._metrics[key]
        if expired:
            logger.debug("Evicted %d expired translation metrics", len(expired))

    def _emit(
        self,
        request_id: str,
        phase: str,
        timestamp: float,
        attributes: Mapping[str, Any],
    ) -> None:
        if not self._listeners:
            return
        event = LifecycleEvent(
            request_id=request_id,
            phase=phase,
            timestamp=timestamp,
            attributes=MappingProxyType(dict(attributes)),
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Lifecycle listener failed on %s for %s", phase, request_id)


_RECORDER: Optional[TranslationRecorder] = None


def get_recorder() -> TranslationRecorder:
    """Return the process-wide recorder, creating it on first use."""
    global _RECORDER
    if _RECORDER is None:
        _RECORDER = TranslationRecorder()
    return _RECORDER


def set_recorder(recorder: Optional[TranslationRecorder]) -> None:
    """Replace the process-wide recorder (``None`` resets it)."""
    global _RECORDER
    _RECORDER = recorder
