"""Text segmentation for oversized translation requests."""

from .reassembler import find_overlap, reassemble
from .segmenter import (
    DEFAULT_SEGMENTATION,
    Segment,
    SegmentationConfig,
    detect_structured_text,
    find_sentence_break,
    segment_text,
    split_plain_text,
    split_structured_text,
)

__all__ = [
    "DEFAULT_SEGMENTATION",
    "Segment",
    "SegmentationConfig",
    "detect_structured_text",
    "find_overlap",
    "find_sentence_break",
    "reassemble",
    "segment_text",
    "split_plain_text",
    "split_structured_text",
]
