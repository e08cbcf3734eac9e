"""Test fixtures for Repo Context."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import pytest
import requests

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


class FakeResponse:
    """Just enough of requests.Response for the HTTP clients under test."""

    def __init__(
        self,
        payload: Any = None,
        status_code: int = 200,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        links: dict[str, dict[str, str]] | None = None,
    ) -> None:
        self._payload = payload
        self.status_code = status_code
        self.content = content if content is not None else b""
        self.headers = headers or {}
        self.links = links or {}

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON payload")
        return self._payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error", response=self)


class FakeSession:
    """Routes GET/POST calls to canned responses keyed by URL; unknown URLs answer 404."""

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self.routes: dict[str, Any] = {}
        self.calls: list[tuple[str, str, Any]] = []

    def add(self, url: str, payload: Any = None, **kwargs: Any) -> None:
        self.routes[url] = FakeResponse(payload, **kwargs)

    def add_handler(self, url: str, handler) -> None:
        self.routes[url] = handler

    def _dispatch(self, method: str, url: str, body: Any) -> FakeResponse:
        self.calls.append((method, url, body))
        route = self.routes.get(url)
        if route is None:
            return FakeResponse({"message": "Not Found"}, status_code=404)
        if callable(route):
            return route(body)
        return route

    def get(self, url: str, params=None, headers=None, timeout=None) -> FakeResponse:
        return self._dispatch("GET", url, params)

    def post(self, url: str, json=None, timeout=None) -> FakeResponse:
        return self._dispatch("POST", url, json)

    def urls(self, method: str = "GET") -> list[str]:
        return [url for verb, url, _ in self.calls if verb == method]


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("RPCX_DB_PATH", str(tmp_path / "index.db"))
    monkeypatch.setenv("RPCX_CONFIG", str(tmp_path / "missing.yaml"))
    for name in ("RPCX_REPOSITORIES", "RPCX_LOCAL_PATHS", "RPCX_GITHUB_TOKEN", "RPCX_OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)

    from repo_context.api import dependencies as deps
    from repo_context.core.config import get_settings

    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps.set_engine(None)
    yield
    deps.shutdown_engine()
    get_settings.cache_clear()
    deps.get_app_settings.cache_clear()
    deps.set_engine(None)


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def make_response():
    return FakeResponse


@pytest.fixture
def docs_tree(tmp_path: Path) -> Path:
    """A small working tree with documentation, code and excluded output."""
    root = tmp_path / "project"
    (root / "docs").mkdir(parents=True)
    (root / "src").mkdir()
    (root / "node_modules" / "lib").mkdir(parents=True)
    (root / "README.md").write_text(
        "# Project\n\nThe deployment guide explains how to configure the retrieval service.",
        encoding="utf-8",
    )
    (root / "docs" / "setup.md").write_text(
        "Install the package and set the repository list before starting the server.",
        encoding="utf-8",
    )
    (root / "src" / "main.py").write_text("def main():\n    return 'hello'\n", encoding="utf-8")
    (root / "node_modules" / "lib" / "index.md").write_text("vendored readme", encoding="utf-8")
    (root / "image.png").write_bytes(b"\x89PNG")
    return root


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
