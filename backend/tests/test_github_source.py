"""Tests for the GitHub document source."""

from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from repo_context.core.config import Settings
from repo_context.core.errors import RateLimitError, SourceError
from repo_context.models.entities import DocumentType, IndexingStatus, SourceConfig, SourceType
from repo_context.sources.github import GitHubClient, GitHubDocumentSource, parse_github_url

API = "https://api.github.com"
REPO_URL = "https://github.com/acme/widgets"
REPO_API = f"{API}/repos/acme/widgets"


def _file(path: str, size: int) -> dict:
    return {"type": "file", "path": path, "size": size, "html_url": f"https://github.com/acme/widgets/blob/main/{path}"}


def _dir(path: str) -> dict:
    return {"type": "dir", "path": path}


@pytest.fixture
def repo_session(fake_session):
    fake_session.add(
        REPO_API,
        {
            "full_name": "acme/widgets",
            "description": "Widget toolkit",
            "default_branch": "main",
            "language": None,
            "size": 120,
            "updated_at": "2024-05-01T10:00:00Z",
            "pushed_at": "2024-05-03T08:30:00Z",
        },
    )
    fake_session.add(
        f"{REPO_API}/contents",
        [_file("README.md", 200), _dir("docs"), _dir("build"), _file("logo.png", 900)],
    )
    fake_session.add(
        f"{REPO_API}/contents/docs",
        [_file("docs/guide.md", 1500), _file("docs/huge.md", 60_000)],
    )
    fake_session.add(f"{REPO_API}/contents/build", [_file("build/out.md", 100)])
    fake_session.add(f"{REPO_API}/contents/README.md", content=b"r" * 200)
    fake_session.add(f"{REPO_API}/contents/docs/guide.md", content=b"g" * 1500)
    fake_session.add(f"{REPO_API}/contents/docs/huge.md", content=b"h" * 60_000)
    fake_session.add(f"{REPO_API}/contents/build/out.md", content=b"b" * 100)
    return fake_session


def _source(session, **overrides) -> GitHubDocumentSource:
    settings = Settings(repositories=[REPO_URL], **overrides)
    return GitHubDocumentSource(settings, client=GitHubClient(api_url=API, session=session))


def test_parse_github_url_variants() -> None:
    assert parse_github_url("https://github.com/acme/widgets") == ("acme", "widgets")
    assert parse_github_url("https://github.com/acme/widgets.git") == ("acme", "widgets")
    assert parse_github_url("https://github.com/acme/widgets/tree/main/docs") == ("acme", "widgets")
    with pytest.raises(ValueError):
        parse_github_url("https://github.com/acme")


def test_markdown_scenario(repo_session) -> None:
    source = _source(repo_session, issue_policy="never")
    config = SourceConfig.for_url(REPO_URL, SourceType.GITHUB)

    documents = source.load_documents(config)

    assert sorted(doc.id for doc in documents) == [
        "acme/widgets/README.md#0",
        "acme/widgets/docs/guide.md#0",
        "acme/widgets/docs/guide.md#1",
    ]
    guide = [doc for doc in documents if doc.path == "docs/guide.md"]
    assert [doc.title for doc in guide] == ["guide.md (Part 1)", "guide.md (Part 2)"]
    assert all(doc.metadata["total_chunks"] == 2 for doc in guide)
    assert all(doc.source_id == config.id for doc in documents)
    assert all(doc.source_name == "acme/widgets" for doc in documents)
    assert all(doc.type is DocumentType.DOCUMENTATION for doc in documents)
    assert all(doc.last_modified == datetime(2024, 5, 3, 8, 30, tzinfo=timezone.utc) for doc in documents)

    fetched = repo_session.urls()
    assert f"{REPO_API}/contents/build" not in fetched, "excluded directories are not listed"
    assert f"{REPO_API}/contents/docs/huge.md" not in fetched, "oversized files are not downloaded"


def test_failed_file_download_is_skipped(repo_session, make_response) -> None:
    repo_session.routes[f"{REPO_API}/contents/README.md"] = make_response({"message": "boom"}, status_code=500)
    source = _source(repo_session, issue_policy="never")
    documents = source.load_documents(SourceConfig.for_url(REPO_URL, SourceType.GITHUB))
    assert {doc.path for doc in documents} == {"docs/guide.md"}


def test_issues_and_pull_requests(repo_session) -> None:
    repo_session.add(
        f"{REPO_API}/issues",
        [
            {"number": 7, "title": "Crash on start", "body": "Stack trace", "state": "open",
             "updated_at": "2024-04-02T00:00:00Z", "user": {"login": "dev"}, "labels": [{"name": "bug"}]},
            {"number": 8, "title": "A pull request", "pull_request": {"url": "x"}},
        ],
    )
    repo_session.add(
        f"{REPO_API}/pulls",
        [{"number": 3, "title": "Fix crash", "body": None, "state": "closed", "merged_at": "2024-04-03T00:00:00Z"}],
    )
    source = _source(repo_session)
    documents = source.load_documents(SourceConfig.for_url(REPO_URL, SourceType.GITHUB))
    by_id = {doc.id: doc for doc in documents}

    issue = by_id["acme/widgets/issues/7"]
    assert issue.type is DocumentType.ISSUE
    assert issue.content == "# Crash on start\n\nStack trace"
    assert issue.metadata["labels"] == ["bug"]
    assert "acme/widgets/issues/8" not in by_id

    pull = by_id["acme/widgets/pulls/3"]
    assert pull.type is DocumentType.PULL_REQUEST
    assert pull.metadata["merged"] is True


def test_issue_policy_override_per_source(repo_session) -> None:
    source = _source(repo_session, issue_policy="always")
    config = SourceConfig.for_url(REPO_URL, SourceType.GITHUB, index_issues=False)
    source.load_documents(config)
    assert f"{REPO_API}/issues" not in repo_session.urls()


def test_auto_policy_skips_documentation_repositories(repo_session) -> None:
    repo_session.routes[REPO_API]._payload["description"] = "Documentation for widgets"
    source = _source(repo_session, issue_policy="auto")
    source.load_documents(SourceConfig.for_url(REPO_URL, SourceType.GITHUB))
    assert f"{REPO_API}/issues" not in repo_session.urls()


def test_issue_pagination_respects_cap(fake_session, make_response) -> None:
    first = make_response(
        [{"number": n, "title": f"Issue {n}"} for n in range(1, 4)],
        links={"next": {"url": f"{REPO_API}/issues?page=2"}},
    )
    second = make_response([{"number": n, "title": f"Issue {n}"} for n in range(4, 7)])
    fake_session.routes[f"{REPO_API}/issues"] = first
    fake_session.routes[f"{REPO_API}/issues?page=2"] = second
    client = GitHubClient(api_url=API, session=fake_session)
    issues = client.list_issues("acme", "widgets", limit=5)
    assert [issue["number"] for issue in issues] == [1, 2, 3, 4, 5]


def test_unresolvable_repository_raises(fake_session) -> None:
    source = _source(fake_session)
    with pytest.raises(SourceError):
        source.load_documents(SourceConfig.for_url(REPO_URL, SourceType.GITHUB))


def test_rate_limit_carries_reset_time(fake_session) -> None:
    fake_session.add(
        REPO_API,
        {"message": "API rate limit exceeded"},
        status_code=403,
        headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
    )
    source = _source(fake_session)
    with pytest.raises(RateLimitError) as excinfo:
        source.load_documents(SourceConfig.for_url(REPO_URL, SourceType.GITHUB))
    assert excinfo.value.reset_at is not None
    assert excinfo.value.reset_at.year == 2023


def test_invalid_url_yields_nothing(fake_session) -> None:
    source = _source(fake_session)
    config = SourceConfig.for_url("https://gitlab.com/acme/widgets", SourceType.GITHUB)
    assert source.can_handle(config) is False
    assert source.load_documents(config) == []
    assert fake_session.calls == []


def test_cancelled_load_stops_early(repo_session) -> None:
    cancel = threading.Event()
    cancel.set()
    source = _source(repo_session)
    assert source.load_documents(SourceConfig.for_url(REPO_URL, SourceType.GITHUB), cancel) == []


def test_status_reports_repository(repo_session) -> None:
    source = _source(repo_session)
    status = source.get_status(SourceConfig.for_url(REPO_URL, SourceType.GITHUB))
    assert status.status is IndexingStatus.READY
    assert status.last_updated is not None and status.last_updated.year == 2024

    missing = source.get_status(SourceConfig.for_url("https://github.com/acme/missing", SourceType.GITHUB))
    assert missing.status is IndexingStatus.ERROR
    assert missing.error_message == "Repository not found or access denied"

    invalid = source.get_status(SourceConfig.for_url("not a url", SourceType.GITHUB))
    assert invalid.error_message == "Invalid GitHub URL"
