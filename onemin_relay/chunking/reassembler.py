"""Rebuild text from ordered segments, dropping duplicated overlap."""

from __future__ import annotations

from typing import Iterable

from .segmenter import DEFAULT_SEGMENTATION, Segment


def find_overlap(left: str, right: str, overlap_size: int = DEFAULT_SEGMENTATION.overlap_size) -> int:
    """Length of the longest suffix of ``left`` that is also a prefix of ``right``.

    The search is bounded by twice ``overlap_size``. Returns 0 when nothing
    matches.
    """
    max_overlap = min(overlap_size * 2, len(left), len(right))
    for size in range(max_overlap, 0, -1):
        if left.endswith(right[:size]):
            return size
    return 0


def reassemble(
    segments: Iterable[Segment], overlap_size: int = DEFAULT_SEGMENTATION.overlap_size
) -> str:
    """Join segments back into one text.

    Segments are ordered by ``index`` before joining. Only a provable overlap
    is removed; otherwise the next segment is appended unchanged.
    """
    ordered = sorted(segments, key=lambda segment: segment.index)
    if not ordered:
        return ""
    if len(ordered) == 1:
        return ordered[0].content

    result = ordered[0].content
    for segment in ordered[1:]:
        overlap = find_overlap(result, segment.content, overlap_size)
        result += segment.content[overlap:]
    return result
