"""Document sources."""

from .base import BaseSource
from .filesystem import FilesystemDocumentSource
from .github import GitHubClient, GitHubDocumentSource
from .registry import SourceRegistry, build_source_configs

__all__ = [
    "BaseSource",
    "FilesystemDocumentSource",
    "GitHubClient",
    "GitHubDocumentSource",
    "SourceRegistry",
    "build_source_configs",
]
