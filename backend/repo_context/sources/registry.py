"""Source registry and source configuration bootstrap."""

from __future__ import annotations

from pathlib import Path

from repo_context.core.config import Settings
from repo_context.models.entities import SourceConfig, SourceType
from repo_context.sources.base import BaseSource
from repo_context.sources.filesystem import FilesystemDocumentSource
from repo_context.sources.github import GitHubDocumentSource


class SourceRegistry:
    """Registry that selects the document source for a configuration."""

    def __init__(self, sources: list[BaseSource] | None = None) -> None:
        self._sources: list[BaseSource] = list(sources or [])

    @classmethod
    def default(cls, settings: Settings) -> "SourceRegistry":
        return cls([GitHubDocumentSource(settings), FilesystemDocumentSource(settings)])

    def register(self, source: BaseSource) -> None:
        self._sources.append(source)

    def for_config(self, config: SourceConfig) -> BaseSource | None:
        for source in self._sources:
            if source.source_type is config.source_type and source.can_handle(config):
                return source
        return None


def build_source_configs(settings: Settings) -> list[SourceConfig]:
    """Create one SourceConfig per configured repository URL or local path."""
    configs = [SourceConfig.for_url(url, SourceType.GITHUB) for url in settings.repositories]
    for raw_path in settings.local_paths:
        url = raw_path if raw_path.startswith("file://") else Path(raw_path).expanduser().resolve().as_uri()
        configs.append(SourceConfig.for_url(url, SourceType.FILESYSTEM))
    return configs


__all__ = ["SourceRegistry", "build_source_configs"]
