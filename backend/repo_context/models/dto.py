"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str
    max_results: int = Field(default=5, ge=1, le=50)


class SearchResultItem(BaseModel):
    title: str
    repository: str
    file_path: str
    content_preview: str
    similarity_score: float
    document_type: str
    url: str | None = None
    last_modified: str


class SearchData(BaseModel):
    query: str
    results: list[SearchResultItem]
    total_results: int
    query_time_ms: int
    repositories_searched: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    success: bool
    message: str | None = None
    data: SearchData | None = None
    error: str | None = None


class ReadyResponse(BaseModel):
    ready: bool
    state: Literal["cold", "indexing", "ready"]


class SourceStatusResponse(BaseModel):
    source_id: str
    source_name: str
    status: Literal["pending", "indexing", "ready", "error"]
    error_message: str | None = None
    last_updated: datetime | None = None
    document_count: int = 0


class IndexResponse(BaseModel):
    status: Literal["started"]
    state: Literal["cold", "indexing", "ready"]


__all__ = [
    "SearchRequest",
    "SearchResultItem",
    "SearchData",
    "SearchResponse",
    "ReadyResponse",
    "SourceStatusResponse",
    "IndexResponse",
]
