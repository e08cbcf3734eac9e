"""Embedding backends."""

from __future__ import annotations

import hashlib
import logging
import math
import re
import threading
from typing import Any, Sequence

import requests

from repo_context.core.config import Settings
from repo_context.core.errors import ConfigurationError, EmbeddingError

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

OPENAI_DEFAULT_MODEL = "text-embedding-3-small"
OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

LOCAL_DEFAULT_MODEL = "all-MiniLM-L6-v2"
LOCAL_MODEL_DIMENSIONS = {
    "all-MiniLM-L6-v2": 384,
    "all-MiniLM-L12-v2": 384,
    "all-mpnet-base-v2": 768,
    "multi-qa-MiniLM-L6-cos-v1": 384,
}


class BaseEmbedder:
    """Common embedder interface.

    Subclasses implement ``_encode`` for a non-empty list of non-blank texts;
    validation, blank filtering and dimension checks live here so every
    backend behaves the same way.
    """

    name: str = "base"

    def __init__(self, dimension: int) -> None:
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed(self, text: str) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        return self._encode_checked([text.strip()])[0]

    def embed_batch(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed non-blank texts; the result is aligned with the filtered input."""
        cleaned = [text.strip() for text in texts if text and text.strip()]
        if not cleaned:
            return []
        return self._encode_checked(cleaned)

    def health_check(self) -> bool:
        try:
            self.embed("test")
            return True
        except Exception as exc:
            logger.warning("%s embedding backend health check failed: %s", self.name, exc)
            return False

    def _encode(self, texts: list[str]) -> list[list[float]]:  # pragma: no cover - interface
        raise NotImplementedError

    def _encode_checked(self, texts: list[str]) -> list[list[float]]:
        try:
            return self._checked(self._encode(texts), expected=len(texts))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise EmbeddingError(f"{self.name} returned a malformed embedding response: {exc!r}") from exc

    def _checked(self, vectors: list[list[float]], expected: int) -> list[list[float]]:
        if len(vectors) != expected:
            raise EmbeddingError(f"{self.name} returned {len(vectors)} embeddings for {expected} texts")
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    f"{self.name} returned a {len(vector)}-dimensional vector, expected {self._dimension}"
                )
        return vectors


class HashedEmbedder(BaseEmbedder):
    """Lightweight hashed embedding model with deterministic output."""

    name = "hashed"

    def __init__(self, dimension: int = 384) -> None:
        super().__init__(dimension)

    def _encode(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for text in texts:
            vector = [0.0] * self._dimension
            for token in _tokenize(text):
                vector[_hash_token(token, self._dimension)] += 1.0
            _normalize(vector)
            vectors.append(vector)
        return vectors


class OpenAIEmbedder(BaseEmbedder):
    """Embeddings from an OpenAI-compatible ``/embeddings`` endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = OPENAI_DEFAULT_MODEL,
        dimension: int | None = None,
        api_url: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        if not api_key:
            raise ConfigurationError("An API key is required for the OpenAI embedding backend")
        super().__init__(dimension or OPENAI_MODEL_DIMENSIONS.get(model, 1536))
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "User-Agent": "repo-context/0.1",
            }
        )

    def _encode(self, texts: list[str]) -> list[list[float]]:
        body = {"model": self.model, "input": texts, "encoding_format": "float"}
        try:
            resp = self._session.post(f"{self.api_url}/embeddings", json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc
        if not resp.ok:
            logger.error("Embedding API error: %s - %s", resp.status_code, resp.text[:500])
            raise EmbeddingError(f"Embedding API error: {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise EmbeddingError("Embedding API returned invalid JSON") from exc
        data = payload.get("data") if isinstance(payload, dict) else None
        if not data:
            raise EmbeddingError("No embedding data received from the embedding API")
        try:
            ordered = sorted(data, key=lambda item: item.get("index", 0))
            return [[float(value) for value in item["embedding"]] for item in ordered]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise EmbeddingError(f"Malformed embedding in API response: {exc!r}") from exc


class SentenceTransformerEmbedder(BaseEmbedder):
    """Local embeddings through sentence-transformers (``local`` extra)."""

    name = "sentence-transformers"

    def __init__(
        self,
        model_name: str = LOCAL_DEFAULT_MODEL,
        dimension: int | None = None,
        device: str | None = None,
    ) -> None:
        self.model_name = model_name
        self.device = device
        self._model: Any = None
        self._load_lock = threading.Lock()
        dimension = dimension or LOCAL_MODEL_DIMENSIONS.get(model_name)
        if dimension is None:
            # unknown model: its dimension is only available from the weights
            dimension = int(self._load().get_sentence_embedding_dimension())
        super().__init__(dimension)

    def _load(self) -> Any:
        with self._load_lock:
            if self._model is None:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading sentence-transformers model %s", self.model_name)
                self._model = SentenceTransformer(self.model_name, device=self.device)
            return self._model

    def _encode(self, texts: list[str]) -> list[list[float]]:
        try:
            vectors = self._load().encode(texts, convert_to_numpy=True, normalize_embeddings=True)
        except Exception as exc:
            raise EmbeddingError(f"Local embedding failed: {exc}") from exc
        return [[float(value) for value in row] for row in vectors]


def create_embedder(settings: Settings) -> BaseEmbedder:
    """Build the embedder selected by configuration."""
    backend = settings.embedding_backend
    if backend == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError("embeddings.api_key (RPCX_OPENAI_API_KEY) is required for the openai backend")
        return OpenAIEmbedder(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimension=settings.embedding_dim,
            api_url=settings.openai_api_url,
            timeout=settings.http_timeout,
        )
    if backend == "sentence-transformers":
        return SentenceTransformerEmbedder(settings.local_model)
    return HashedEmbedder(dimension=settings.embedding_dim)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "BaseEmbedder",
    "HashedEmbedder",
    "OpenAIEmbedder",
    "SentenceTransformerEmbedder",
    "create_embedder",
]
