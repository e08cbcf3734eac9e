"""Local directory document source."""

from __future__ import annotations

import os
import threading
from pathlib import Path
from urllib.parse import urlparse

from repo_context.core.errors import SourceError
from repo_context.core.logging import get_logger, source_logger
from repo_context.models.entities import Document, IndexingStatus, SourceConfig, SourceStatus, SourceType
from repo_context.sources.base import BaseSource, all_known_extensions, is_cancelled
from repo_context.utils.time import from_timestamp

logger = get_logger(__name__)


def resolve_root(url: str | None) -> Path | None:
    if not url:
        return None
    parsed = urlparse(url)
    if parsed.scheme and parsed.scheme != "file":
        return None
    return Path(parsed.path if parsed.scheme else url).expanduser()


class FilesystemDocumentSource(BaseSource):
    """Indexes a checked-out working tree with the same rules as remote repositories."""

    source_type = SourceType.FILESYSTEM

    def can_handle(self, config: SourceConfig) -> bool:
        return config.source_type is SourceType.FILESYSTEM and resolve_root(config.url) is not None

    def load_documents(self, config: SourceConfig, cancel: threading.Event | None = None) -> list[Document]:
        root = resolve_root(config.url)
        if root is None:
            logger.warning("Unsupported local source URL: %s", config.url)
            return []
        if not root.is_dir():
            raise SourceError(f"Directory not found: {root}")

        file_filter = self.file_filter(all_known_extensions())
        documents: list[Document] = []
        for dirpath, dirnames, filenames in os.walk(root):
            if is_cancelled(cancel):
                break
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            rel_dir = "" if rel_dir == "." else rel_dir + "/"
            dirnames[:] = sorted(name for name in dirnames if not file_filter.is_excluded_dir(rel_dir + name))
            for filename in sorted(filenames):
                if is_cancelled(cancel):
                    break
                rel_path = rel_dir + filename
                if file_filter.is_excluded(rel_path) or not file_filter.has_extension(rel_path):
                    continue
                file_path = Path(dirpath) / filename
                try:
                    stat = file_path.stat()
                    if file_filter.too_large(stat.st_size):
                        logger.debug("Skipping large file: %s (%s bytes)", rel_path, stat.st_size)
                        continue
                    raw = file_path.read_bytes()
                except OSError as exc:
                    logger.warning("Error loading file %s: %s", rel_path, exc)
                    continue
                documents.extend(
                    self.build_chunk_documents(
                        config=config,
                        source_name=config.name,
                        id_prefix=config.id,
                        path=rel_path,
                        text=raw.decode("utf-8", errors="replace"),
                        file_size=stat.st_size,
                        url=file_path.resolve().as_uri(),
                        last_modified=from_timestamp(stat.st_mtime),
                    )
                )
        source_logger(logger, config.id).info("Loaded %s documents from %s", len(documents), root)
        return documents

    def get_status(self, config: SourceConfig) -> SourceStatus:
        root = resolve_root(config.url)
        if root is None or not root.is_dir():
            return SourceStatus(config.id, config.name, IndexingStatus.ERROR, error_message="Directory not found")
        return SourceStatus(
            config.id,
            config.name,
            IndexingStatus.READY,
            last_updated=from_timestamp(root.stat().st_mtime),
        )


__all__ = ["FilesystemDocumentSource", "resolve_root"]
