"""Split oversized text into bounded, ordered segments.

Two strategies are available. Plain text is cut into windows of
``max_segment_size`` characters, preferring to break just after a sentence
terminator near the window edge. Structured (subtitle-like) text is split
into blank-line separated blocks which are packed into segments without
ever cutting a block in half.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

logger = logging.getLogger("onemin-relay")

SENTENCE_TERMINATORS = frozenset(".!?\n。！？")

_BLOCK_SEPARATOR = re.compile(r"(?:\r?\n){2,}")

STRUCTURED_PATTERNS = (
    re.compile(r"\d{2}:\d{2}:\d{2}[,.]\d{3}"),
    re.compile(r"^\d+$", re.MULTILINE),
    re.compile(r"-->"),
    re.compile(r"<[^>]+>"),
    re.compile(r"\[\w+\]"),
)


@dataclass(frozen=True)
class SegmentationConfig:
    """Sizes used by the segmenters.

    Attributes:
        max_segment_size: Window size for plain text.
        structured_max_segment_size: Segment budget for structured text.
        overlap_size: Characters of context shared between plain segments.
        lookahead: How far past the window edge a sentence break may be sought.
        min_break_ratio: A break closer to the window start than this share of
            the window is rejected in favour of a hard cut.
    """

    max_segment_size: int = 2000
    structured_max_segment_size: int = 1500
    overlap_size: int = 100
    lookahead: int = 200
    min_break_ratio: float = 0.7

    @classmethod
    def from_config(cls, section: Mapping[str, Any]) -> "SegmentationConfig":
        defaults = cls()
        return cls(
            max_segment_size=int(section.get("max_segment_size", defaults.max_segment_size)),
            structured_max_segment_size=int(
                section.get(
                    "structured_max_segment_size",
                    defaults.structured_max_segment_size,
                )
            ),
            overlap_size=int(section.get("overlap_size", defaults.overlap_size)),
            lookahead=int(section.get("lookahead", defaults.lookahead)),
            min_break_ratio=float(section.get("min_break_ratio", defaults.min_break_ratio)),
        )


DEFAULT_SEGMENTATION = SegmentationConfig()


@dataclass(frozen=True)
class Segment:
    """One bounded slice of an oversized input."""

    id: str
    content: str
    index: int
    total_segments: int
    original_length: int


def detect_structured_text(text: str) -> bool:
    """Return True if ``text`` looks like subtitle or caption data."""
    return any(pattern.search(text) for pattern in STRUCTURED_PATTERNS)


def _break_score(position: int, target: int) -> int:
    return max(0, 100 - abs(position - target))


def find_sentence_break(
    text: str, start: int, target: int, lookahead: int = DEFAULT_SEGMENTATION.lookahead
) -> int:
    """Find the best break position near ``target``.

    Scans ``text[start:target + lookahead]`` backwards down to ``lookahead``
    characters before ``target``. Returns ``target`` when no terminator
    scores above zero.
    """
    window = text[start:target + lookahead]
    lower = max(0, target - start - lookahead)

    best_break = target
    best_score = 0
    for offset in range(len(window) - 1, lower - 1, -1):
        if window[offset] not in SENTENCE_TERMINATORS:
            continue
        position = start + offset + 1
        score = _break_score(position, target)
        if score > best_score:
            best_score = score
            best_break = position
    return best_break


def split_plain_text(
    text: str, config: SegmentationConfig = DEFAULT_SEGMENTATION
) -> list[Segment]:
    """Cut plain text into windows that end on sentence boundaries when possible."""
    max_size = config.max_segment_size
    if len(text) <= max_size:
        return [_single_segment(text)]

    segments: list[Segment] = []
    start = 0
    while start < len(text):
        end = min(start + max_size, len(text))
        if end < len(text):
            sentence_end = find_sentence_break(text, start, end, config.lookahead)
            if sentence_end > start + max_size * config.min_break_ratio:
                end = sentence_end

        segments.append(
            Segment(
                id=f"segment-{len(segments)}",
                content=text[start:end],
                index=len(segments),
                total_segments=0,
                original_length=len(text),
            )
        )
        # Overlap only applies when it does not move the cursor back past the break.
        start = max(end - config.overlap_size, end)

    return _finalize(segments)


def split_structured_text(
    text: str, max_size: int = DEFAULT_SEGMENTATION.structured_max_segment_size
) -> list[Segment]:
    """Pack blank-line separated blocks into segments without splitting a block."""
    blocks = _BLOCK_SEPARATOR.split(text)
    contents: list[str] = []
    current = ""

    for block in blocks:
        if current and len(current) + len(block) > max_size:
            contents.append(current.strip())
            current = block
        else:
            current = f"{current}\n\n{block}" if current else block

    if current.strip():
        contents.append(current.strip())

    segments = [
        Segment(
            id=f"block-segment-{index}",
            content=content,
            index=index,
            total_segments=0,
            original_length=len(text),
        )
        for index, content in enumerate(c for c in contents if c)
    ]
    return _finalize(segments)


def segment_text(
    text: str,
    structured: Optional[bool] = None,
    config: SegmentationConfig = DEFAULT_SEGMENTATION,
) -> list[Segment]:
    """Split ``text`` using the strategy that fits its shape.

    Args:
        text: The text to split.
        structured: Force a strategy; ``None`` runs structure detection.
        config: Segment sizes.

    Returns:
        Segments in index order, all carrying the final ``total_segments``.
    """
    if structured is None:
        structured = detect_structured_text(text)

    max_size = config.structured_max_segment_size if structured else config.max_segment_size
    if len(text) <= max_size:
        return [_single_segment(text)]

    if structured:
        segments = split_structured_text(text, max_size)
    else:
        segments = split_plain_text(text, config)

    logger.debug(
        "Split %d characters into %d %s segments",
        len(text),
        len(segments),
        "structured" if structured else "plain",
    )
    return segments


def _single_segment(text: str) -> Segment:
    return Segment(
        id="segment-0",
        content=text,
        index=0,
        total_segments=1,
        original_length=len(text),
    )


def _finalize(segments: list[Segment]) -> list[Segment]:
    total = len(segments)
    return [replace(segment, total_segments=total) for segment in segments]
