"""GitHub repository document source."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterator
from urllib.parse import quote, urlparse

import requests

from repo_context.core.config import Settings
from repo_context.core.errors import RateLimitError, SourceError
from repo_context.core.logging import get_logger, source_logger
from repo_context.models.entities import (
    Document,
    DocumentType,
    IndexingStatus,
    SourceConfig,
    SourceStatus,
    SourceType,
)
from repo_context.sources.base import BaseSource, FileFilter, is_cancelled, select_extensions
from repo_context.utils.time import from_timestamp, parse_iso8601, utc_now

logger = get_logger(__name__)

_GITHUB_HOSTS = ("github.com", "www.github.com")
_PAGE_SIZE = 100


def is_github_url(url: str | None) -> bool:
    if not url:
        return False
    parsed = urlparse(url)
    return parsed.scheme.lower() in ("http", "https") and parsed.netloc.lower() in _GITHUB_HOSTS


def parse_github_url(url: str) -> tuple[str, str]:
    """Return ``(owner, repo)`` for a repository URL."""
    segments = [part for part in urlparse(url).path.split("/") if part]
    if len(segments) < 2:
        raise ValueError(f"Invalid GitHub URL format: {url}")
    owner, repo = segments[0], segments[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not owner or not repo:
        raise ValueError(f"Invalid GitHub URL format: {url}")
    return owner, repo


@dataclass(slots=True)
class RepositoryInfo:
    full_name: str
    description: str | None
    default_branch: str | None
    language: str | None
    size: int
    updated_at: datetime | None
    pushed_at: datetime | None = None

    @classmethod
    def from_api(cls, payload: dict[str, Any]) -> "RepositoryInfo":
        return cls(
            full_name=payload.get("full_name") or "",
            description=payload.get("description"),
            default_branch=payload.get("default_branch"),
            language=payload.get("language"),
            size=int(payload.get("size") or 0),
            updated_at=parse_iso8601(payload.get("updated_at")),
            pushed_at=parse_iso8601(payload.get("pushed_at")),
        )


class GitHubClient:
    """Minimal read-only GitHub REST client on top of requests."""

    def __init__(
        self,
        token: str = "",
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "User-Agent": "repo-context/0.1",
                "X-GitHub-Api-Version": "2022-11-28",
            }
        )
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        return self._get(f"{self.api_url}/repos/{owner}/{repo}").json()

    def list_contents(self, owner: str, repo: str, path: str = "") -> list[dict[str, Any]]:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents"
        if path:
            url = f"{url}/{quote(path)}"
        payload = self._get(url).json()
        # the contents endpoint returns an object for a file path
        return payload if isinstance(payload, list) else [payload]

    def get_raw_content(self, owner: str, repo: str, path: str) -> bytes:
        url = f"{self.api_url}/repos/{owner}/{repo}/contents/{quote(path)}"
        return self._get(url, accept="application/vnd.github.raw").content

    def list_issues(self, owner: str, repo: str, limit: int) -> list[dict[str, Any]]:
        # the issues endpoint also lists pull requests
        return self._paginate(
            f"{self.api_url}/repos/{owner}/{repo}/issues",
            {"state": "all", "sort": "updated", "direction": "desc"},
            limit,
            keep=lambda item: "pull_request" not in item,
        )

    def list_pull_requests(self, owner: str, repo: str, limit: int) -> list[dict[str, Any]]:
        return self._paginate(
            f"{self.api_url}/repos/{owner}/{repo}/pulls",
            {"state": "all", "sort": "updated", "direction": "desc"},
            limit,
        )

    def _paginate(
        self,
        url: str,
        params: dict[str, Any],
        limit: int,
        keep: Callable[[dict[str, Any]], bool] | None = None,
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        next_url: str | None = url
        next_params: dict[str, Any] | None = {**params, "per_page": _PAGE_SIZE}
        while next_url and len(items) < limit:
            resp = self._get(next_url, params=next_params)
            for item in resp.json():
                if keep is None or keep(item):
                    items.append(item)
                    if len(items) >= limit:
                        break
            next_url = resp.links.get("next", {}).get("url")
            # the next link already carries the query string
            next_params = None
        return items

    def _get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        accept: str | None = None,
    ) -> requests.Response:
        headers = {"Accept": accept} if accept else None
        resp = self._session.get(url, params=params, headers=headers, timeout=self.timeout)
        if resp.status_code in (403, 429) and resp.headers.get("X-RateLimit-Remaining") == "0":
            reset = resp.headers.get("X-RateLimit-Reset")
            reset_at = from_timestamp(float(reset)) if reset else None
            raise RateLimitError(f"GitHub rate limit exceeded for {url}", reset_at=reset_at)
        resp.raise_for_status()
        return resp


class GitHubDocumentSource(BaseSource):
    """Loads files, issues and pull requests from GitHub repositories."""

    source_type = SourceType.GITHUB

    def __init__(self, settings: Settings, client: GitHubClient | None = None) -> None:
        super().__init__(settings)
        self.client = client or GitHubClient(
            token=settings.github_token,
            api_url=settings.github_api_url,
            timeout=settings.http_timeout,
        )

    def can_handle(self, config: SourceConfig) -> bool:
        return config.source_type is SourceType.GITHUB and is_github_url(config.url)

    def load_documents(self, config: SourceConfig, cancel: threading.Event | None = None) -> list[Document]:
        url = config.url
        if not is_github_url(url):
            logger.warning("Invalid GitHub URL: %s", url)
            return []
        try:
            owner, repo = parse_github_url(url)
        except ValueError as exc:
            logger.warning("%s", exc)
            return []

        logger.info("Loading documents from %s/%s", owner, repo)
        try:
            info = RepositoryInfo.from_api(self.client.get_repository(owner, repo))
        except requests.RequestException as exc:
            raise SourceError(f"Unable to resolve repository {owner}/{repo}: {exc}") from exc

        source_name = f"{owner}/{repo}"
        file_filter = self.file_filter(select_extensions(info.language))
        documents = self._load_files(config, owner, repo, file_filter, cancel, info.pushed_at or info.updated_at)

        if self._should_index_issues(config, info) and not is_cancelled(cancel):
            documents.extend(self._load_issues(config, owner, repo, source_name, cancel))
            documents.extend(self._load_pull_requests(config, owner, repo, source_name, cancel))

        source_logger(logger, config.id).info("Loaded %s documents from %s", len(documents), source_name)
        return documents

    def get_status(self, config: SourceConfig) -> SourceStatus:
        url = config.url
        name = url or "Unknown"
        if not is_github_url(url):
            return SourceStatus(config.id, name, IndexingStatus.ERROR, error_message="Invalid GitHub URL")
        try:
            owner, repo = parse_github_url(url)
            info = RepositoryInfo.from_api(self.client.get_repository(owner, repo))
        except ValueError as exc:
            return SourceStatus(config.id, name, IndexingStatus.ERROR, error_message=str(exc))
        except requests.HTTPError as exc:
            if exc.response is not None and exc.response.status_code == 404:
                message = "Repository not found or access denied"
            else:
                message = str(exc)
            return SourceStatus(config.id, name, IndexingStatus.ERROR, error_message=message)
        except (requests.RequestException, SourceError) as exc:
            return SourceStatus(config.id, name, IndexingStatus.ERROR, error_message=str(exc))
        return SourceStatus(
            config.id,
            info.full_name or f"{owner}/{repo}",
            IndexingStatus.READY,
            last_updated=info.updated_at,
        )

    # Internal helpers -------------------------------------------------

    def _load_files(
        self,
        config: SourceConfig,
        owner: str,
        repo: str,
        file_filter: FileFilter,
        cancel: threading.Event | None,
        pushed_at: datetime | None = None,
    ) -> list[Document]:
        # the contents API carries no per-file commit time
        last_modified = pushed_at or utc_now()
        documents: list[Document] = []
        for entry in self._walk(owner, repo, "", file_filter, cancel):
            if is_cancelled(cancel):
                break
            path = entry.get("path") or ""
            if file_filter.is_excluded(path) or not file_filter.has_extension(path):
                continue
            size = int(entry.get("size") or 0)
            if file_filter.too_large(size):
                logger.debug("Skipping large file: %s (%s bytes)", path, size)
                continue
            try:
                raw = self.client.get_raw_content(owner, repo, path)
            except (requests.RequestException, SourceError) as exc:
                logger.warning("Error loading file %s: %s", path, exc)
                continue
            documents.extend(
                self.build_chunk_documents(
                    config=config,
                    source_name=f"{owner}/{repo}",
                    id_prefix=f"{owner}/{repo}",
                    path=path,
                    text=raw.decode("utf-8", errors="replace"),
                    file_size=size,
                    url=entry.get("html_url"),
                    last_modified=last_modified,
                )
            )
        return documents

    def _walk(
        self,
        owner: str,
        repo: str,
        path: str,
        file_filter: FileFilter,
        cancel: threading.Event | None,
    ) -> Iterator[dict[str, Any]]:
        try:
            entries = self.client.list_contents(owner, repo, path)
        except (requests.RequestException, SourceError) as exc:
            logger.warning("Error getting contents for path %s: %s", path or "/", exc)
            return
        for entry in entries:
            if is_cancelled(cancel):
                return
            kind = entry.get("type")
            if kind == "file":
                yield entry
            elif kind == "dir":
                sub_path = entry.get("path") or ""
                if file_filter.is_excluded_dir(sub_path):
                    continue
                yield from self._walk(owner, repo, sub_path, file_filter, cancel)

    def _should_index_issues(self, config: SourceConfig, info: RepositoryInfo) -> bool:
        override = config.configuration.get("index_issues")
        if override is not None:
            return bool(override)
        policy = self.settings.issue_policy
        if policy == "never":
            return False
        if policy == "auto":
            haystack = f"{info.full_name} {info.description or ''}".lower()
            return "documentation" not in haystack
        return True

    def _load_issues(
        self,
        config: SourceConfig,
        owner: str,
        repo: str,
        source_name: str,
        cancel: threading.Event | None,
    ) -> list[Document]:
        if self.settings.max_issues <= 0:
            return []
        try:
            issues = self.client.list_issues(owner, repo, self.settings.max_issues)
        except (requests.RequestException, SourceError) as exc:
            logger.warning("Error loading issues for %s: %s", source_name, exc)
            return []
        documents: list[Document] = []
        for issue in issues:
            if is_cancelled(cancel):
                break
            try:
                number = issue["number"]
                documents.append(
                    Document(
                        id=f"{source_name}/issues/{number}",
                        content=f"# {issue.get('title') or ''}\n\n{issue.get('body') or ''}",
                        title=f"Issue #{number}: {issue.get('title') or ''}",
                        type=DocumentType.ISSUE,
                        source_id=config.id,
                        source_name=source_name,
                        url=issue.get("html_url"),
                        path=f"issues/{number}",
                        last_modified=_item_timestamp(issue),
                        metadata={
                            "issue_number": number,
                            "state": issue.get("state"),
                            "author": (issue.get("user") or {}).get("login"),
                            "labels": [label.get("name") for label in issue.get("labels") or []],
                        },
                    )
                )
            except (KeyError, TypeError, AttributeError) as exc:
                logger.warning("Skipping malformed issue in %s: %s", source_name, exc)
        return documents

    def _load_pull_requests(
        self,
        config: SourceConfig,
        owner: str,
        repo: str,
        source_name: str,
        cancel: threading.Event | None,
    ) -> list[Document]:
        if self.settings.max_pull_requests <= 0:
            return []
        try:
            pulls = self.client.list_pull_requests(owner, repo, self.settings.max_pull_requests)
        except (requests.RequestException, SourceError) as exc:
            logger.warning("Error loading pull requests for %s: %s", source_name, exc)
            return []
        documents: list[Document] = []
        for pr in pulls:
            if is_cancelled(cancel):
                break
            try:
                number = pr["number"]
                documents.append(
                    Document(
                        id=f"{source_name}/pulls/{number}",
                        content=f"# {pr.get('title') or ''}\n\n{pr.get('body') or ''}",
                        title=f"PR #{number}: {pr.get('title') or ''}",
                        type=DocumentType.PULL_REQUEST,
                        source_id=config.id,
                        source_name=source_name,
                        url=pr.get("html_url"),
                        path=f"pulls/{number}",
                        last_modified=_item_timestamp(pr),
                        metadata={
                            "pr_number": number,
                            "state": pr.get("state"),
                            "author": (pr.get("user") or {}).get("login"),
                            "merged": bool(pr.get("merged_at")),
                        },
                    )
                )
            except (KeyError, TypeError, AttributeError) as exc:
                logger.warning("Skipping malformed pull request in %s: %s", source_name, exc)
        return documents


def _item_timestamp(item: dict[str, Any]) -> datetime:
    return parse_iso8601(item.get("updated_at")) or parse_iso8601(item.get("created_at")) or utc_now()


__all__ = [
    "GitHubClient",
    "GitHubDocumentSource",
    "RepositoryInfo",
    "is_github_url",
    "parse_github_url",
]
