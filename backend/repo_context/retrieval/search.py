"""Search orchestration."""

from __future__ import annotations

import threading
from typing import Any

from repo_context.core.config import Settings
from repo_context.core.errors import RepoContextError
from repo_context.core.logging import get_logger
from repo_context.models.entities import DocumentResult, RAGResult
from repo_context.retrieval.engine import RetrievalEngine

logger = get_logger(__name__)

DEFAULT_MAX_RESULTS = 5
SUMMARY_RESULTS = 3
SUMMARY_PREVIEW_CHARS = 200
NOT_READY_MESSAGE = "Repository indexing is still in progress. Please try again in a few moments."
EMPTY_QUERY_MESSAGE = "Query parameter is required and cannot be empty"


def relevance_label(similarity: float) -> str:
    if similarity >= 0.9:
        return "Highly relevant"
    if similarity >= 0.8:
        return "Very relevant"
    if similarity >= 0.7:
        return "Relevant"
    return "Potentially relevant"


def _plural(count: int) -> str:
    return "" if count == 1 else "s"


def _unique(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


class QueryService:
    """Turns a free-text query into a formatted search response."""

    def __init__(self, engine: RetrievalEngine, settings: Settings) -> None:
        self.engine = engine
        self.settings = settings

    def clamp_max_results(self, max_results: int | None) -> int:
        if max_results is None:
            return DEFAULT_MAX_RESULTS
        return max(1, min(int(max_results), self.settings.max_results_cap))

    def search(
        self,
        query: str | None,
        max_results: int | None = None,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        if not query or not query.strip():
            return self._failure(EMPTY_QUERY_MESSAGE)
        limit = self.clamp_max_results(max_results)
        logger.info("Searching repositories for: %r (max results: %s)", query, limit)

        if not self.engine.is_ready():
            logger.warning("Retrieval engine not ready for search")
            return self._failure(NOT_READY_MESSAGE)

        try:
            result = self.engine.search(query, limit, cancel=cancel)
        except RepoContextError as exc:
            logger.error("Error executing search for query %r: %s", query, exc)
            return self._failure(f"Search failed: {exc}")

        query_time_ms = int(result.query_time.total_seconds() * 1000)
        if not result.documents:
            logger.info("No results found for query: %r", query)
            return {
                "success": True,
                "message": (
                    f"No relevant results found for '{query}'. Try a different search term "
                    "or check if repositories are properly indexed."
                ),
                "data": {
                    "query": query,
                    "results": [],
                    "total_results": 0,
                    "query_time_ms": query_time_ms,
                    "repositories_searched": [],
                },
                "error": None,
            }

        results = [self._format_result(document) for document in result.documents]
        return {
            "success": True,
            "message": self._summary(query, result),
            "data": {
                "query": query,
                "results": results,
                "total_results": result.total_results,
                "query_time_ms": query_time_ms,
                "repositories_searched": _unique([item["repository"] for item in results]),
            },
            "error": None,
        }

    # ------------------------------------------------------------------

    @staticmethod
    def _failure(error: str) -> dict[str, Any]:
        return {"success": False, "message": None, "data": None, "error": error}

    @staticmethod
    def _format_result(document: DocumentResult) -> dict[str, Any]:
        return {
            "title": document.title,
            "repository": document.repository,
            "file_path": document.file_path,
            "content_preview": document.content,
            "similarity_score": round(document.similarity, 3),
            "document_type": document.type.value,
            "url": document.url,
            "last_modified": document.last_modified.strftime("%Y-%m-%d"),
        }

    @staticmethod
    def _summary(query: str, result: RAGResult) -> str:
        documents = result.documents
        repositories = _unique([document.repository for document in documents])
        message = f"Found {len(documents)} relevant result{_plural(len(documents))} for '{query}'"
        if len(repositories) > 1:
            message += f" across {len(repositories)} repositories ({', '.join(repositories)})"
        elif repositories:
            message += f" in {repositories[0]}"
        message += ":"

        for document in documents[:SUMMARY_RESULTS]:
            message += f"\n\n- **{document.title}** ({relevance_label(document.similarity)})\n"
            message += f"  Repository: {document.repository}\n"
            message += f"  Path: {document.file_path}\n"
            if document.url:
                message += f"  URL: {document.url}\n"
            if len(document.content) > SUMMARY_PREVIEW_CHARS:
                preview = document.content[:SUMMARY_PREVIEW_CHARS].strip() + "..."
            else:
                preview = document.content.strip()
            message += f"  Preview: {preview}"

        remaining = len(documents) - SUMMARY_RESULTS
        if remaining > 0:
            message += f"\n\n... and {remaining} more result{_plural(remaining)}"
        return message


__all__ = ["QueryService", "relevance_label"]
