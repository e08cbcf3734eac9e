"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "rpcx_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

REQUEST_LATENCY = Histogram(
    "rpcx_request_latency_seconds",
    "Latency of HTTP requests",
    labelnames=("endpoint", "method"),
    registry=REGISTRY,
)

INDEX_CYCLE_DURATION = Histogram(
    "rpcx_index_cycle_duration_seconds",
    "Duration of a full indexing cycle",
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "rpcx_index_documents",
    "Number of document chunks stored in the vector store",
    registry=REGISTRY,
)

EMBED_BATCH_FAILURES = Counter(
    "rpcx_embedding_batch_failures_total",
    "Embedding batches skipped because the backend failed",
    labelnames=("source",),
    registry=REGISTRY,
)

SEARCH_LATENCY = Histogram(
    "rpcx_search_latency_seconds",
    "Latency of engine searches",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "INDEX_CYCLE_DURATION",
    "INDEX_SIZE",
    "EMBED_BATCH_FAILURES",
    "SEARCH_LATENCY",
    "metrics_response",
]
