"""Query API routes."""

from __future__ import annotations

import time

from fastapi import APIRouter, Depends

from repo_context.api.dependencies import get_query_service
from repo_context.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from repo_context.models.dto import SearchRequest, SearchResponse
from repo_context.retrieval.search import QueryService

router = APIRouter()


@router.post("/search", response_model=SearchResponse, summary="Search indexed repositories")
def run_search(
    request: SearchRequest,
    service: QueryService = Depends(get_query_service),
) -> SearchResponse:
    start_time = time.perf_counter()
    payload = service.search(request.query, request.max_results)
    REQUEST_LATENCY.labels(endpoint="search", method="POST").observe(time.perf_counter() - start_time)
    REQUEST_COUNT.labels(endpoint="search", method="POST", status="200").inc()
    return SearchResponse(**payload)


__all__ = ["router"]
