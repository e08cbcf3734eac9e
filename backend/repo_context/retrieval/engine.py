"""Retrieval engine: background indexing cycle and similarity search."""

from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from enum import Enum
from typing import Sequence

from repo_context.core.config import Settings
from repo_context.core.errors import ConfigurationError, EmbeddingError, OperationCancelled
from repo_context.core.logging import get_logger, source_logger
from repo_context.core.metrics import EMBED_BATCH_FAILURES, INDEX_CYCLE_DURATION, INDEX_SIZE, SEARCH_LATENCY
from repo_context.db.sqlite import SQLiteDatabase
from repo_context.ingest.embeddings import BaseEmbedder, create_embedder
from repo_context.models.entities import (
    Document,
    DocumentEmbedding,
    DocumentResult,
    IndexingStatus,
    IndexStats,
    RAGResult,
    SourceConfig,
    SourceStatus,
)
from repo_context.retrieval.vector_store import BaseVectorStore, InMemoryVectorStore, SQLiteVectorStore
from repo_context.sources.base import is_cancelled
from repo_context.sources.registry import SourceRegistry, build_source_configs
from repo_context.utils.text import truncate_preview

logger = get_logger(__name__)


class EngineState(str, Enum):
    COLD = "cold"
    INDEXING = "indexing"
    READY = "ready"


class RetrievalEngine:
    """Owns the document sources and one vector store.

    Indexing cycles are serialised by a non-blocking lock; searches never take
    it, so they keep serving the previous cycle's data while a new one runs.
    Readiness flips to true once any embedding has been stored and never
    reverts for the lifetime of the engine.
    """

    def __init__(
        self,
        settings: Settings,
        embedder: BaseEmbedder,
        vector_store: BaseVectorStore,
        registry: SourceRegistry,
        source_configs: Sequence[SourceConfig] | None = None,
    ) -> None:
        if vector_store.dimension != embedder.dimension:
            raise ConfigurationError(
                f"Vector store dimension {vector_store.dimension} does not match "
                f"embedder dimension {embedder.dimension}"
            )
        self.settings = settings
        self.embedder = embedder
        self.vector_store = vector_store
        self.registry = registry
        self.source_configs: list[SourceConfig] = list(
            source_configs if source_configs is not None else build_source_configs(settings)
        )
        self.last_stats: IndexStats | None = None

        self._cycle_lock = threading.Lock()
        self._ready = threading.Event()
        self._stop = threading.Event()
        self._reindex_cancel = threading.Event()
        self._worker: threading.Thread | None = None
        self._status_lock = threading.Lock()
        self._indexing_source: str | None = None
        self._loaded_sources: set[str] = set()
        self._load_errors: dict[str, str] = {}
        self._total_stored = 0

    # State ------------------------------------------------------------

    def is_ready(self) -> bool:
        return self._ready.is_set()

    def is_indexing(self) -> bool:
        return self._cycle_lock.locked()

    @property
    def state(self) -> EngineState:
        if self.is_indexing():
            return EngineState.INDEXING
        return EngineState.READY if self.is_ready() else EngineState.COLD

    # Indexing ---------------------------------------------------------

    def index_documents(self, cancel: threading.Event | None = None) -> IndexStats:
        """Run one indexing cycle over every active source.

        Returns immediately with ``skipped=True`` when another cycle is in
        progress. Batches stored before a cancellation stay in the store.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Indexing cycle already running; skipping request")
            return IndexStats(skipped=True)
        return self._run_locked_cycle(cancel)

    def _run_locked_cycle(self, cancel: threading.Event | None) -> IndexStats:
        # caller holds _cycle_lock; released here even when the cycle raises
        try:
            return self._run_cycle(cancel)
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, cancel: threading.Event | None) -> IndexStats:
        started = time.perf_counter()
        stats = IndexStats()
        active = [config for config in self.source_configs if config.is_active]
        logger.info("Starting document indexing for %s sources", len(active))

        for config in active:
            if is_cancelled(cancel):
                stats.cancelled = True
                break
            stats.sources += 1
            self._index_source(config, stats, cancel)

        if is_cancelled(cancel):
            stats.cancelled = True
        self._total_stored += stats.stored
        if self._total_stored > 0:
            self._ready.set()
        self.last_stats = stats

        duration = time.perf_counter() - started
        INDEX_CYCLE_DURATION.observe(duration)
        INDEX_SIZE.set(self.vector_store.count())
        logger.info(
            "Document indexing completed in %.1fs. Stored: %s, failed batches: %s, ready: %s",
            duration,
            stats.stored,
            stats.failed_batches,
            self.is_ready(),
            extra={"ctx_stats": stats.to_dict()},
        )
        return stats

    def _index_source(self, config: SourceConfig, stats: IndexStats, cancel: threading.Event | None) -> None:
        source = self.registry.for_config(config)
        if source is None:
            message = f"No document source can handle {config.source_type.value} source {config.name}"
            logger.warning(message)
            self._record_error(config.id, message)
            return

        log = source_logger(logger, config.id)
        log.info("Indexing source: %s", config.name)
        with self._status_lock:
            self._indexing_source = config.id
        try:
            documents = source.load_documents(config, cancel)
            documents = [document for document in documents if document.content.strip()]
            stats.documents += len(documents)
            if not documents:
                log.warning("No documents loaded from source: %s", config.name)
            stored = self._embed_and_store(config, documents, stats, cancel, log)
        except Exception as exc:
            log.exception("Error indexing source: %s", config.name)
            self._record_error(config.id, str(exc))
            return
        finally:
            with self._status_lock:
                self._indexing_source = None

        with self._status_lock:
            self._loaded_sources.add(config.id)
            self._load_errors.pop(config.id, None)
        if stored:
            log.info("Indexed %s documents from %s", stored, config.name)

    def _embed_and_store(
        self,
        config: SourceConfig,
        documents: list[Document],
        stats: IndexStats,
        cancel: threading.Event | None,
        log: logging.LoggerAdapter,
    ) -> int:
        batch_size = self.settings.embed_batch_size
        delay = self.settings.batch_delay_ms / 1000.0
        stored = 0
        for start in range(0, len(documents), batch_size):
            if is_cancelled(cancel):
                stats.cancelled = True
                break
            batch = documents[start : start + batch_size]
            end = start + len(batch)
            try:
                vectors = self.embedder.embed_batch([document.content for document in batch])
            except EmbeddingError as exc:
                log.warning(
                    "Error generating embeddings for batch %s-%s of %s: %s",
                    start + 1,
                    end,
                    len(documents),
                    exc,
                    extra={"ctx_batch": start // batch_size},
                )
                stats.failed_batches += 1
                EMBED_BATCH_FAILURES.labels(source=config.name).inc()
            else:
                pairs = [DocumentEmbedding(document=document, embedding=vector) for document, vector in zip(batch, vectors)]
                count = self.vector_store.store_embeddings(pairs)
                stored += count
                stats.stored += count
                log.debug("Generated embeddings for batch %s-%s of %s", start + 1, end, len(documents))
            if end < len(documents) and delay > 0:
                (cancel or self._stop).wait(delay)
        return stored

    def _record_error(self, source_id: str, message: str) -> None:
        with self._status_lock:
            self._load_errors[source_id] = message

    # Search -----------------------------------------------------------

    def search(self, query: str, max_results: int = 5, cancel: threading.Event | None = None) -> RAGResult:
        """Embed the query and return up to ``max_results`` scored excerpts.

        An engine that has not finished a successful cycle answers with an
        empty result rather than an error.
        """
        started = time.perf_counter()
        if not self.is_ready():
            logger.warning("Retrieval engine not ready, returning empty results")
            return RAGResult.empty(query, _elapsed(started))
        if is_cancelled(cancel):
            raise OperationCancelled("search cancelled before embedding the query")
        if not query or not query.strip() or max_results <= 0:
            return RAGResult.empty(query, _elapsed(started))

        try:
            query_vector = self.embedder.embed(query)
        except EmbeddingError as exc:
            logger.error("Error embedding query %r: %s", query, exc)
            return RAGResult.empty(query, _elapsed(started))
        if is_cancelled(cancel):
            raise OperationCancelled("search cancelled")

        # over-fetch so truncation still leaves max_results candidates
        candidates = self.vector_store.search_similar(
            query_vector,
            k=max_results * 2,
            min_score=self.settings.search_min_score,
        )
        documents = [
            DocumentResult(
                content=truncate_preview(result.document.content, self.settings.preview_chars),
                title=result.document.title,
                repository=result.document.source_name,
                file_path=result.document.path or "",
                url=result.document.url,
                similarity=result.similarity,
                type=result.document.type,
                last_modified=result.document.last_modified,
            )
            for result in candidates[:max_results]
        ]
        elapsed = _elapsed(started)
        SEARCH_LATENCY.observe(elapsed.total_seconds())
        logger.info(
            "Search for %r returned %s results in %.0fms",
            query,
            len(documents),
            elapsed.total_seconds() * 1000,
        )
        return RAGResult(query=query, documents=documents, total_results=len(candidates), query_time=elapsed)

    # Status -----------------------------------------------------------

    def get_source_status(self) -> list[SourceStatus]:
        statuses: list[SourceStatus] = []
        for config in self.source_configs:
            source = self.registry.for_config(config)
            if source is None:
                status = SourceStatus(
                    config.id,
                    config.name,
                    IndexingStatus.ERROR,
                    error_message=f"No document source for {config.source_type.value}",
                )
            else:
                try:
                    status = source.get_status(config)
                except Exception as exc:
                    logger.warning("Error getting status for source %s: %s", config.name, exc)
                    status = SourceStatus(config.id, config.name, IndexingStatus.ERROR, error_message=str(exc))

            with self._status_lock:
                if config.id == self._indexing_source:
                    status.status = IndexingStatus.INDEXING
                elif status.status is IndexingStatus.READY:
                    if config.id in self._load_errors:
                        status.status = IndexingStatus.ERROR
                        status.error_message = self._load_errors[config.id]
                    elif config.id not in self._loaded_sources:
                        status.status = IndexingStatus.PENDING
            status.document_count = self.vector_store.count(config.id)
            statuses.append(status)
        return statuses

    # Lifecycle --------------------------------------------------------

    def start(self) -> None:
        """Index once now and then every ``sync_interval_hours`` on a worker thread."""
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        self._worker = threading.Thread(target=self._run_loop, name="retrieval-indexer", daemon=True)
        self._worker.start()
        logger.info("Started retrieval engine with %s sources", len(self.source_configs))

    def stop(self, timeout: float | None = 10.0) -> None:
        """Cancel any running cycle and wait for the worker to exit."""
        self._stop.set()
        self._reindex_cancel.set()
        worker = self._worker
        if worker is not None:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning("Indexing worker did not stop within %ss", timeout)
        self._worker = None
        logger.info("Stopped retrieval engine")

    def index_in_background(self) -> bool:
        """Start a one-off cycle on its own thread; False when a cycle is already running."""
        if not self._cycle_lock.acquire(blocking=False):
            return False
        self._reindex_cancel.clear()
        thread = threading.Thread(
            target=self._guarded_cycle,
            args=(self._reindex_cancel, True),
            name="retrieval-reindex",
            daemon=True,
        )
        try:
            thread.start()
        except RuntimeError:
            self._cycle_lock.release()
            raise
        return True

    def _run_loop(self) -> None:
        interval = self.settings.sync_interval_seconds
        while not self._stop.is_set():
            self._guarded_cycle(self._stop)
            if self._stop.wait(interval):
                break

    def _guarded_cycle(self, cancel: threading.Event, lock_held: bool = False) -> None:
        try:
            if lock_held:
                self._run_locked_cycle(cancel)
            else:
                self.index_documents(cancel=cancel)
        except Exception:
            logger.exception("Error during document indexing")


def build_engine(settings: Settings) -> RetrievalEngine:
    """Wire one embedder, one vector store and the default sources from configuration."""
    source_configs = build_source_configs(settings)
    if not source_configs:
        raise ConfigurationError("At least one repository URL or local path must be configured")
    embedder = create_embedder(settings)
    if settings.vector_store == "sqlite":
        store: BaseVectorStore = SQLiteVectorStore(SQLiteDatabase(settings.db_path), embedder.dimension)
    else:
        store = InMemoryVectorStore(embedder.dimension)
    return RetrievalEngine(
        settings=settings,
        embedder=embedder,
        vector_store=store,
        registry=SourceRegistry.default(settings),
        source_configs=source_configs,
    )


def _elapsed(started: float) -> timedelta:
    return timedelta(seconds=time.perf_counter() - started)


__all__ = ["EngineState", "RetrievalEngine", "build_engine"]
