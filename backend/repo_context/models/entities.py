"""Internal dataclasses shared by sources, stores and the engine."""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Mapping
from urllib.parse import urlparse

from repo_context.utils.time import utc_now


class SourceType(str, Enum):
    GITHUB = "github"
    FILESYSTEM = "filesystem"


class DocumentType(str, Enum):
    CODE = "code"
    DOCUMENTATION = "documentation"
    CONFIGURATION = "configuration"
    ISSUE = "issue"
    PULL_REQUEST = "pull_request"
    OTHER = "other"


class IndexingStatus(str, Enum):
    PENDING = "pending"
    INDEXING = "indexing"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class SourceConfig:
    """One logical collection, built once at startup."""

    id: str
    name: str
    source_type: SourceType
    configuration: Mapping[str, Any] = field(default_factory=dict)
    is_active: bool = True

    @property
    def url(self) -> str | None:
        value = self.configuration.get("url")
        return str(value) if value else None

    @classmethod
    def for_url(cls, url: str, source_type: SourceType, **configuration: Any) -> "SourceConfig":
        """Build a config whose id is derived from the collection URL."""
        return cls(
            id=source_id_for(url),
            name=_name_from_url(url),
            source_type=source_type,
            configuration={"url": url, **configuration},
        )


@dataclass(frozen=True, slots=True)
class Document:
    """A single indexable chunk. Re-indexing produces a new instance with the same id."""

    id: str
    content: str
    title: str
    type: DocumentType
    source_id: str
    source_name: str
    url: str | None = None
    path: str | None = None
    last_modified: datetime = field(default_factory=utc_now)
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class DocumentEmbedding:
    document: Document
    embedding: list[float]
    created_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class VectorSearchResult:
    document: Document
    similarity: float

    @property
    def distance(self) -> float:
        return 1.0 - self.similarity


@dataclass(slots=True)
class SourceStatus:
    source_id: str
    source_name: str
    status: IndexingStatus
    error_message: str | None = None
    last_updated: datetime | None = None
    document_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_id": self.source_id,
            "source_name": self.source_name,
            "status": self.status.value,
            "error_message": self.error_message,
            "last_updated": self.last_updated,
            "document_count": self.document_count,
        }


@dataclass(slots=True)
class DocumentResult:
    """Scored excerpt returned by a search."""

    content: str
    title: str
    repository: str
    file_path: str
    url: str | None
    similarity: float
    type: DocumentType
    last_modified: datetime


@dataclass(slots=True)
class RAGResult:
    query: str
    documents: list[DocumentResult]
    total_results: int
    query_time: timedelta
    timestamp: datetime = field(default_factory=utc_now)

    @classmethod
    def empty(cls, query: str, query_time: timedelta) -> "RAGResult":
        return cls(query=query, documents=[], total_results=0, query_time=query_time)


@dataclass(slots=True)
class IndexStats:
    """Aggregated statistics for one indexing cycle."""

    sources: int = 0
    documents: int = 0
    stored: int = 0
    failed_batches: int = 0
    cancelled: bool = False
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sources": self.sources,
            "documents": self.documents,
            "stored": self.stored,
            "failed_batches": self.failed_batches,
            "cancelled": self.cancelled,
            "skipped": self.skipped,
        }


def source_id_for(url: str) -> str:
    """Stable URL-safe identifier for a collection URL."""
    encoded = base64.urlsafe_b64encode(url.encode("utf-8")).decode("ascii")
    return encoded.rstrip("=")


def _name_from_url(url: str) -> str:
    parsed = urlparse(url)
    path = parsed.path.strip("/")
    if parsed.scheme in ("http", "https") and "/" in path:
        owner, repo = path.split("/")[:2]
        return f"{owner}/{repo.removesuffix('.git')}"
    return path.rsplit("/", 1)[-1] or url


__all__ = [
    "SourceType",
    "DocumentType",
    "IndexingStatus",
    "SourceConfig",
    "Document",
    "DocumentEmbedding",
    "VectorSearchResult",
    "SourceStatus",
    "DocumentResult",
    "RAGResult",
    "IndexStats",
    "source_id_for",
]
