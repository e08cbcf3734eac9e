"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from repo_context.core.config import Settings, get_settings
from repo_context.retrieval import QueryService, RetrievalEngine, build_engine

_ENGINE: RetrievalEngine | None = None
_QUERY_SERVICE: QueryService | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_engine() -> RetrievalEngine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = build_engine(get_app_settings())
    return _ENGINE


def get_query_service() -> QueryService:
    global _QUERY_SERVICE
    if _QUERY_SERVICE is None:
        _QUERY_SERVICE = QueryService(engine=get_engine(), settings=get_app_settings())
    return _QUERY_SERVICE


def set_engine(engine: RetrievalEngine | None) -> None:
    """Install a pre-built engine (or clear it) and drop the cached query service."""
    global _ENGINE, _QUERY_SERVICE
    _ENGINE = engine
    _QUERY_SERVICE = None


def shutdown_engine() -> None:
    if _ENGINE is not None:
        _ENGINE.stop()


__all__ = [
    "get_app_settings",
    "get_engine",
    "get_query_service",
    "set_engine",
    "shutdown_engine",
]
