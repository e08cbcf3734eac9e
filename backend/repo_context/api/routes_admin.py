"""Administrative routes for the retrieval service."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from repo_context.api.dependencies import get_engine
from repo_context.core.metrics import REQUEST_COUNT, metrics_response
from repo_context.models.dto import IndexResponse, ReadyResponse, SourceStatusResponse
from repo_context.retrieval.engine import RetrievalEngine

router = APIRouter()


@router.get("/ready", response_model=ReadyResponse, summary="Report whether searches can be served")
def ready(engine: RetrievalEngine = Depends(get_engine)) -> ReadyResponse:
    return ReadyResponse(ready=engine.is_ready(), state=engine.state.value)


@router.get("/sources/status", response_model=list[SourceStatusResponse], summary="Per-source indexing status")
def sources_status(engine: RetrievalEngine = Depends(get_engine)) -> list[SourceStatusResponse]:
    REQUEST_COUNT.labels(endpoint="sources_status", method="GET", status="200").inc()
    return [SourceStatusResponse(**status.to_dict()) for status in engine.get_source_status()]


@router.post("/index", response_model=IndexResponse, status_code=202, summary="Start an indexing cycle")
def trigger_index(engine: RetrievalEngine = Depends(get_engine)) -> IndexResponse:
    if not engine.index_in_background():
        REQUEST_COUNT.labels(endpoint="index", method="POST", status="409").inc()
        raise HTTPException(status_code=409, detail="Indexing cycle already running")
    REQUEST_COUNT.labels(endpoint="index", method="POST", status="202").inc()
    return IndexResponse(status="started", state=engine.state.value)


@router.get("/metrics", summary="Prometheus metrics")
def get_metrics():
    return metrics_response()


__all__ = ["router"]
