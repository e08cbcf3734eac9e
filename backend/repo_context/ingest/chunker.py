"""Chunking utilities."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class Segment:
    text: str
    start: int
    end: int


def chunk_text(text: str, size: int = 1000, overlap: int = 200) -> list[str]:
    """Split text into overlapping fixed-size character windows.

    Text no longer than ``size`` comes back as a single chunk. Longer text is
    covered by windows of ``size`` characters advancing ``size - overlap``
    characters at a time; the final window is the first one that reaches the
    end of the text, so a text of length ``L`` yields
    ``ceil((L - overlap) / (size - overlap))`` chunks.
    """
    return [segment.text for segment in chunk_segments(text, size, overlap)]


def chunk_segments(text: str, size: int = 1000, overlap: int = 200) -> list[Segment]:
    """Like :func:`chunk_text` but keeps the character offsets of each window."""
    validate_chunking(size, overlap)
    length = len(text)
    if length <= size:
        return [Segment(text=text, start=0, end=length)]

    step = size - overlap
    segments: list[Segment] = []
    start = 0
    while start < length:
        end = min(start + size, length)
        segments.append(Segment(text=text[start:end], start=start, end=end))
        if end >= length:
            break
        start += step
    return segments


def chunk_spans(text: str, size: int = 1000, overlap: int = 200) -> list[tuple[int, int]]:
    return [(segment.start, segment.end) for segment in chunk_segments(text, size, overlap)]


def validate_chunking(size: int, overlap: int) -> None:
    if size <= 0:
        raise ValueError("chunk size must be positive")
    if overlap < 0:
        raise ValueError("chunk overlap cannot be negative")
    if overlap >= size:
        raise ValueError(f"chunk overlap ({overlap}) must be smaller than chunk size ({size})")


__all__ = ["Segment", "chunk_text", "chunk_segments", "chunk_spans", "validate_chunking"]
