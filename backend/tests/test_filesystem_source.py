"""Tests for the local directory source and source registry."""

from pathlib import Path

import pytest

from repo_context.core.config import Settings
from repo_context.core.errors import SourceError
from repo_context.ingest.embeddings import HashedEmbedder
from repo_context.models.entities import DocumentType, IndexingStatus, SourceConfig, SourceType
from repo_context.retrieval.engine import RetrievalEngine
from repo_context.retrieval.vector_store import InMemoryVectorStore
from repo_context.sources import FilesystemDocumentSource, GitHubDocumentSource, SourceRegistry, build_source_configs


def test_loads_supported_files_and_skips_excluded(docs_tree: Path) -> None:
    source = FilesystemDocumentSource(Settings())
    config = SourceConfig.for_url(docs_tree.as_uri(), SourceType.FILESYSTEM)
    documents = source.load_documents(config)

    assert sorted(doc.id for doc in documents) == [
        f"{config.id}/README.md#0",
        f"{config.id}/docs/setup.md#0",
        f"{config.id}/src/main.py#0",
    ]
    by_path = {doc.path: doc for doc in documents}
    assert by_path["src/main.py"].type is DocumentType.CODE
    assert by_path["src/main.py"].metadata["language"] == "python"
    assert by_path["README.md"].url.startswith("file://")
    assert all(doc.source_id == config.id for doc in documents)


def test_large_files_skipped(docs_tree: Path) -> None:
    (docs_tree / "docs" / "big.md").write_text("x" * 600, encoding="utf-8")
    source = FilesystemDocumentSource(Settings(max_file_size=500, chunk_size=100, chunk_overlap=10))
    documents = source.load_documents(SourceConfig.for_url(str(docs_tree), SourceType.FILESYSTEM))
    assert not any(doc.path == "docs/big.md" for doc in documents)


def test_missing_directory(tmp_path: Path) -> None:
    source = FilesystemDocumentSource(Settings())
    config = SourceConfig.for_url((tmp_path / "gone").as_uri(), SourceType.FILESYSTEM)
    with pytest.raises(SourceError):
        source.load_documents(config)
    status = source.get_status(config)
    assert status.status is IndexingStatus.ERROR
    assert status.error_message == "Directory not found"


def test_build_source_configs(tmp_path: Path) -> None:
    settings = Settings(
        repositories=["https://github.com/acme/widgets", "https://github.com/acme/docs.git"],
        local_paths=[str(tmp_path)],
    )
    configs = build_source_configs(settings)
    assert [config.source_type for config in configs] == [SourceType.GITHUB, SourceType.GITHUB, SourceType.FILESYSTEM]
    assert [config.name for config in configs[:2]] == ["acme/widgets", "acme/docs"]
    assert configs[2].url == tmp_path.resolve().as_uri()
    assert len({config.id for config in configs}) == 3
    assert "=" not in configs[0].id


def test_registry_dispatch(tmp_path: Path) -> None:
    settings = Settings()
    registry = SourceRegistry.default(settings)
    github = SourceConfig.for_url("https://github.com/acme/widgets", SourceType.GITHUB)
    local = SourceConfig.for_url(tmp_path.as_uri(), SourceType.FILESYSTEM)
    assert isinstance(registry.for_config(github), GitHubDocumentSource)
    assert isinstance(registry.for_config(local), FilesystemDocumentSource)
    assert registry.for_config(SourceConfig.for_url("ftp://example.com/x", SourceType.FILESYSTEM)) is None


def test_roots_with_same_basename_keep_separate_documents(tmp_path: Path) -> None:
    configs = []
    for parent in ("a", "b"):
        root = tmp_path / parent / "docs"
        root.mkdir(parents=True)
        (root / "README.md").write_text(f"Notes kept in tree {parent}.", encoding="utf-8")
        configs.append(SourceConfig.for_url(root.as_uri(), SourceType.FILESYSTEM))
    settings = Settings(batch_delay_ms=0, embedding_dim=64)
    store = InMemoryVectorStore(64)
    engine = RetrievalEngine(
        settings, HashedEmbedder(dimension=64), store, SourceRegistry([FilesystemDocumentSource(settings)]), configs
    )

    stats = engine.index_documents()

    assert [config.name for config in configs] == ["docs", "docs"]
    assert stats.stored == 2
    assert store.count() == 2
    assert [store.count(config.id) for config in configs] == [1, 1]
    store.delete_by_source(configs[0].id)
    assert store.count(configs[1].id) == 1
