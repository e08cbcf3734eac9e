"""Tests for embedding backends."""

import math
import sys
import types

import pytest

from repo_context.core.config import Settings
from repo_context.core.errors import ConfigurationError, EmbeddingError
from repo_context.ingest.embeddings import HashedEmbedder, OpenAIEmbedder, SentenceTransformerEmbedder, create_embedder

API_URL = "https://api.example.test/v1"


def test_hashed_embedder_deterministic() -> None:
    embedder = HashedEmbedder(dimension=64)
    first = embedder.embed("vector search over repositories")
    second = embedder.embed("vector search over repositories")
    assert first == second
    assert len(first) == 64
    assert math.isclose(math.sqrt(sum(v * v for v in first)), 1.0, rel_tol=1e-6)


def test_embed_rejects_blank_text() -> None:
    embedder = HashedEmbedder(dimension=16)
    with pytest.raises(ValueError):
        embedder.embed("   ")


def test_embed_batch_drops_blank_texts() -> None:
    embedder = HashedEmbedder(dimension=16)
    vectors = embedder.embed_batch(["alpha", "", "  ", "beta"])
    assert len(vectors) == 2
    assert vectors[0] == embedder.embed("alpha")
    assert embedder.embed_batch(["", " "]) == []


def test_health_check() -> None:
    assert HashedEmbedder(dimension=8).health_check() is True


def test_openai_embedder_orders_by_index(fake_session) -> None:
    fake_session.add(
        f"{API_URL}/embeddings",
        {
            "data": [
                {"index": 1, "embedding": [0.0, 1.0, 0.0]},
                {"index": 0, "embedding": [1.0, 0.0, 0.0]},
            ]
        },
    )
    embedder = OpenAIEmbedder(api_key="sk-test", dimension=3, api_url=API_URL, session=fake_session)
    vectors = embedder.embed_batch(["first", "second"])
    assert vectors == [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]

    method, url, body = fake_session.calls[0]
    assert (method, url) == ("POST", f"{API_URL}/embeddings")
    assert body == {"model": "text-embedding-3-small", "input": ["first", "second"], "encoding_format": "float"}
    assert fake_session.headers["Authorization"] == "Bearer sk-test"


def test_openai_embedder_http_error_raises(fake_session) -> None:
    fake_session.add(f"{API_URL}/embeddings", {"error": "boom"}, status_code=500)
    embedder = OpenAIEmbedder(api_key="sk-test", dimension=3, api_url=API_URL, session=fake_session)
    with pytest.raises(EmbeddingError):
        embedder.embed_batch(["text"])
    assert embedder.health_check() is False


def test_openai_embedder_dimension_mismatch(fake_session) -> None:
    fake_session.add(f"{API_URL}/embeddings", {"data": [{"index": 0, "embedding": [1.0, 0.0]}]})
    embedder = OpenAIEmbedder(api_key="sk-test", dimension=3, api_url=API_URL, session=fake_session)
    with pytest.raises(EmbeddingError):
        embedder.embed("text")


@pytest.mark.parametrize(
    "payload",
    [
        {"data": [{"index": 0, "embedding": None}]},
        {"data": [{"index": 0}]},
        {"data": [{"index": 0, "embedding": ["x", "y", "z"]}]},
        {"data": ["not-an-object"]},
        ["not", "a", "dict"],
    ],
)
def test_openai_embedder_malformed_payload_raises(fake_session, payload) -> None:
    fake_session.add(f"{API_URL}/embeddings", payload)
    embedder = OpenAIEmbedder(api_key="sk-test", dimension=3, api_url=API_URL, session=fake_session)
    with pytest.raises(EmbeddingError):
        embedder.embed_batch(["text"])


def test_backend_type_errors_become_embedding_errors() -> None:
    class BrokenEmbedder(HashedEmbedder):
        def _encode(self, texts):
            return [None for _ in texts]

    with pytest.raises(EmbeddingError):
        BrokenEmbedder(dimension=4).embed_batch(["text"])

def test_openai_requires_api_key() -> None:
    with pytest.raises(ConfigurationError):
        OpenAIEmbedder(api_key="")
    with pytest.raises(ConfigurationError):
        create_embedder(Settings(embedding_backend="openai"))


def test_create_embedder_defaults_to_hashed() -> None:
    embedder = create_embedder(Settings(embedding_dim=32))
    assert isinstance(embedder, HashedEmbedder)
    assert embedder.dimension == 32


def test_local_backend_defers_model_loading(monkeypatch) -> None:
    loaded: list[str] = []

    class FakeModel:
        def __init__(self, name, device=None) -> None:
            loaded.append(name)

        def encode(self, texts, convert_to_numpy=True, normalize_embeddings=True):
            return [[1.0] + [0.0] * 383 for _ in texts]

    monkeypatch.setitem(sys.modules, "sentence_transformers", types.SimpleNamespace(SentenceTransformer=FakeModel))
    embedder = create_embedder(Settings(embedding_backend="sentence-transformers"))

    assert isinstance(embedder, SentenceTransformerEmbedder)
    assert embedder.model_name == "all-MiniLM-L6-v2"
    assert embedder.dimension == 384
    assert loaded == []

    embedder.embed_batch(["first", "second"])
    embedder.embed("third")
    assert loaded == ["all-MiniLM-L6-v2"]


def test_local_backend_load_failure_is_embedding_error(monkeypatch) -> None:
    class BrokenModel:
        def __init__(self, name, device=None) -> None:
            raise OSError("weights not found")

    monkeypatch.setitem(sys.modules, "sentence_transformers", types.SimpleNamespace(SentenceTransformer=BrokenModel))
    embedder = SentenceTransformerEmbedder(dimension=8)
    with pytest.raises(EmbeddingError):
        embedder.embed_batch(["text"])
