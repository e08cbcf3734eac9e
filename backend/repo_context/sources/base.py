"""Document source interface and shared file selection rules."""

from __future__ import annotations

import posixpath
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from repo_context.core.config import Settings
from repo_context.ingest.chunker import chunk_text
from repo_context.models.entities import Document, DocumentType, SourceConfig, SourceStatus, SourceType

DOCUMENTATION_EXTENSIONS = (".md", ".txt", ".rst", ".adoc")
CONFIGURATION_EXTENSIONS = (".json", ".yml", ".yaml", ".xml", ".toml")
FALLBACK_EXTENSIONS = (".json", ".yml", ".yaml")

LANGUAGE_EXTENSIONS: dict[str, tuple[str, ...]] = {
    "c#": (".cs", ".csproj", ".sln", ".json"),
    "typescript": (".ts", ".tsx", ".js", ".jsx", ".json"),
    "javascript": (".js", ".jsx", ".json"),
    "python": (".py", ".yml", ".yaml", ".toml"),
    "java": (".java", ".xml"),
    "go": (".go", ".mod"),
    "rust": (".rs", ".toml"),
    "c": (".c", ".h"),
    "c++": (".cpp", ".cc", ".h", ".hpp"),
}

_LANGUAGE_BY_EXTENSION = {
    ".cs": "csharp",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".py": "python",
    ".java": "java",
    ".go": "go",
    ".rs": "rust",
    ".cpp": "cpp",
    ".cc": "cpp",
    ".hpp": "cpp",
    ".c": "c",
    ".h": "c",
    ".md": "markdown",
    ".rst": "restructuredtext",
    ".adoc": "asciidoc",
    ".json": "json",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".xml": "xml",
    ".toml": "toml",
}


def extension_of(path: str) -> str:
    return posixpath.splitext(path)[1].lower()


def select_extensions(language: str | None) -> frozenset[str]:
    """Documentation extensions plus those implied by the primary language."""
    selected = set(DOCUMENTATION_EXTENSIONS)
    selected.update(LANGUAGE_EXTENSIONS.get((language or "").lower(), FALLBACK_EXTENSIONS))
    return frozenset(selected)


def all_known_extensions() -> frozenset[str]:
    selected = set(DOCUMENTATION_EXTENSIONS) | set(CONFIGURATION_EXTENSIONS)
    for extensions in LANGUAGE_EXTENSIONS.values():
        selected.update(extensions)
    return frozenset(selected)


def document_type_for(path: str) -> DocumentType:
    extension = extension_of(path)
    if extension in DOCUMENTATION_EXTENSIONS:
        return DocumentType.DOCUMENTATION
    if extension in CONFIGURATION_EXTENSIONS:
        return DocumentType.CONFIGURATION
    return DocumentType.CODE


def detect_language(path: str) -> str:
    return _LANGUAGE_BY_EXTENSION.get(extension_of(path), "text")


@dataclass(frozen=True, slots=True)
class FileFilter:
    """Exclusion prefixes, allowed extensions and the size ceiling for one load."""

    exclude_prefixes: tuple[str, ...]
    extensions: frozenset[str]
    max_file_size: int

    def is_excluded(self, path: str) -> bool:
        lowered = path.lower()
        return any(lowered.startswith(prefix.lower()) for prefix in self.exclude_prefixes)

    def is_excluded_dir(self, path: str) -> bool:
        return self.is_excluded(path.rstrip("/") + "/")

    def has_extension(self, path: str) -> bool:
        return extension_of(path) in self.extensions

    def too_large(self, size: int) -> bool:
        return size > self.max_file_size


class BaseSource:
    """Common document source interface."""

    source_type: SourceType

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def can_handle(self, config: SourceConfig) -> bool:  # pragma: no cover - interface
        raise NotImplementedError

    def load_documents(
        self,
        config: SourceConfig,
        cancel: threading.Event | None = None,
    ) -> list[Document]:  # pragma: no cover - interface
        raise NotImplementedError

    def get_status(self, config: SourceConfig) -> SourceStatus:  # pragma: no cover - interface
        raise NotImplementedError

    def file_filter(self, extensions: Iterable[str]) -> FileFilter:
        return FileFilter(
            exclude_prefixes=tuple(self.settings.exclude_paths),
            extensions=frozenset(extensions),
            max_file_size=self.settings.max_file_size,
        )

    def build_chunk_documents(
        self,
        *,
        config: SourceConfig,
        source_name: str,
        id_prefix: str,
        path: str,
        text: str,
        file_size: int,
        url: str | None,
        last_modified: datetime,
    ) -> list[Document]:
        """Chunk file text and wrap each chunk in a Document whose id carries the chunk index."""
        chunks = chunk_text(text, self.settings.chunk_size, self.settings.chunk_overlap)
        name = posixpath.basename(path)
        doc_type = document_type_for(path)
        language = detect_language(path)
        documents: list[Document] = []
        for index, chunk in enumerate(chunks):
            documents.append(
                Document(
                    id=f"{id_prefix}/{path}#{index}",
                    content=chunk,
                    title=name + (f" (Part {index + 1})" if len(chunks) > 1 else ""),
                    type=doc_type,
                    source_id=config.id,
                    source_name=source_name,
                    url=url,
                    path=path,
                    last_modified=last_modified,
                    metadata={
                        "file_size": file_size,
                        "chunk_index": index,
                        "total_chunks": len(chunks),
                        "language": language,
                    },
                )
            )
        return documents


def is_cancelled(cancel: threading.Event | None) -> bool:
    return cancel is not None and cancel.is_set()


__all__ = [
    "BaseSource",
    "FileFilter",
    "DOCUMENTATION_EXTENSIONS",
    "CONFIGURATION_EXTENSIONS",
    "select_extensions",
    "all_known_extensions",
    "document_type_for",
    "detect_language",
    "extension_of",
    "is_cancelled",
]
