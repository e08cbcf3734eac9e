"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping
from urllib.parse import urlparse

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from repo_context.core.errors import ConfigurationError

ENV_PREFIX = "RPCX_"
DEFAULT_CONFIG_PATH = Path("~/.config/repo-context/config.yaml")
GITHUB_URL_PREFIX = "https://github.com/"

DEFAULT_EXCLUDE_PATHS = [
    "node_modules/",
    "bin/",
    "obj/",
    ".git/",
    "dist/",
    "build/",
    "target/",
    ".vs/",
    ".vscode/",
    "packages/",
    "__pycache__/",
]

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("github", "token"): "github_token",
    ("github", "api_url"): "github_api_url",
    ("github", "repositories"): "repositories",
    ("local", "paths"): "local_paths",
    ("indexing", "sync_interval_hours"): "sync_interval_hours",
    ("indexing", "max_file_size"): "max_file_size",
    ("indexing", "chunk_size"): "chunk_size",
    ("indexing", "chunk_overlap"): "chunk_overlap",
    ("indexing", "exclude_paths"): "exclude_paths",
    ("indexing", "batch_size"): "embed_batch_size",
    ("indexing", "batch_delay_ms"): "batch_delay_ms",
    ("indexing", "max_issues"): "max_issues",
    ("indexing", "max_pull_requests"): "max_pull_requests",
    ("indexing", "issue_policy"): "issue_policy",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "local_model"): "local_model",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "api_key"): "openai_api_key",
    ("embeddings", "api_url"): "openai_api_url",
    ("retrieval", "min_score"): "search_min_score",
    ("retrieval", "preview_chars"): "preview_chars",
    ("retrieval", "max_results_cap"): "max_results_cap",
    ("storage", "backend"): "vector_store",
    ("storage", "db_path"): "db_path",
    ("http", "timeout"): "http_timeout",
}

_LIST_FIELDS = ("repositories", "local_paths", "exclude_paths")


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    repositories: list[str] = Field(default_factory=list)
    local_paths: list[str] = Field(default_factory=list)

    sync_interval_hours: float = Field(default=6.0, gt=0)
    max_file_size: int = Field(default=50_000, gt=0)
    chunk_size: int = Field(default=1000, gt=0)
    chunk_overlap: int = Field(default=200, ge=0)
    exclude_paths: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATHS))
    embed_batch_size: int = Field(default=20, gt=0)
    batch_delay_ms: int = Field(default=100, ge=0)
    max_issues: int = Field(default=50, ge=0)
    max_pull_requests: int = Field(default=30, ge=0)
    issue_policy: Literal["always", "never", "auto"] = "always"

    embedding_backend: Literal["hashed", "openai", "sentence-transformers"] = "hashed"
    embedding_model: str = "text-embedding-3-small"
    local_model: str = "all-MiniLM-L6-v2"
    embedding_dim: int = Field(default=1536, gt=0)
    openai_api_key: str | None = None
    openai_api_url: str = "https://api.openai.com/v1"

    search_min_score: float = Field(default=0.6, ge=-1.0, le=1.0)
    preview_chars: int = Field(default=500, gt=0)
    max_results_cap: int = Field(default=20, gt=0)

    vector_store: Literal["memory", "sqlite"] = "memory"
    db_path: Path = Field(default=Path.home() / ".repo-context" / "index.db")
    http_timeout: float = Field(default=30.0, gt=0)

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("db_path", mode="before")
    @classmethod
    def _expand_db_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("db_path must be a path or string")

    @field_validator(*_LIST_FIELDS, mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("repositories")
    @classmethod
    def _check_repositories(cls, value: list[str]) -> list[str]:
        for url in value:
            if not url.lower().startswith(GITHUB_URL_PREFIX):
                raise ValueError(f"Invalid GitHub URL format: {url}. Must start with {GITHUB_URL_PREFIX}")
            segments = [part for part in urlparse(url).path.split("/") if part]
            if len(segments) < 2:
                raise ValueError(f"Invalid GitHub URL format: {url}. Expected {GITHUB_URL_PREFIX}owner/repo")
        return value

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @property
    def sync_interval_seconds(self) -> float:
        return self.sync_interval_hours * 3600.0

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with RPCX_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


def load_settings(path: Path | None = None) -> Settings:
    """Load settings, reporting invalid configuration as ConfigurationError."""
    try:
        return Settings.from_yaml(path)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return load_settings()


__all__ = ["Settings", "DEFAULT_EXCLUDE_PATHS", "get_settings", "load_settings"]
