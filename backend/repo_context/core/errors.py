"""Exception hierarchy for Repo Context."""

from __future__ import annotations

from datetime import datetime


class RepoContextError(Exception):
    """Base class for errors raised by the retrieval pipeline."""


class ConfigurationError(RepoContextError):
    """Invalid or incomplete configuration detected at setup time."""


class SourceError(RepoContextError):
    """A document collection could not be resolved."""


class RateLimitError(SourceError):
    """The remote service refused the request because the rate limit is spent."""

    def __init__(self, message: str, reset_at: datetime | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at


class EmbeddingError(RepoContextError):
    """The embedding backend failed to produce vectors."""


class OperationCancelled(RepoContextError):
    """The caller cancelled the operation before it completed."""


__all__ = [
    "RepoContextError",
    "ConfigurationError",
    "SourceError",
    "RateLimitError",
    "EmbeddingError",
    "OperationCancelled",
]
