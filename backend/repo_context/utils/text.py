"""Text processing helpers."""

from __future__ import annotations

ELLIPSIS = "..."


def truncate_preview(text: str, max_length: int, boundary_ratio: float = 0.8) -> str:
    """Cut text to max_length, backing off to the last whitespace when it is close to the limit."""
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    last_space = max(truncated.rfind(" "), truncated.rfind("\n"))
    if last_space > max_length * boundary_ratio:
        return truncated[:last_space] + ELLIPSIS
    return truncated + ELLIPSIS
