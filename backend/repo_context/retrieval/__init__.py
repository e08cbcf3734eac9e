"""Retrieval orchestration components."""

from .engine import EngineState, RetrievalEngine, build_engine
from .search import QueryService
from .vector_store import BaseVectorStore, InMemoryVectorStore, SQLiteVectorStore, cosine_similarity

__all__ = [
    "BaseVectorStore",
    "EngineState",
    "InMemoryVectorStore",
    "QueryService",
    "RetrievalEngine",
    "SQLiteVectorStore",
    "build_engine",
    "cosine_similarity",
]
