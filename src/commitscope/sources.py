"""Commit sources: the GitHub REST API and local git clones.

Both yield RawCommit records newest first and can look up exact change
stats for a single commit. Which one is used is decided at the edge
(CLI or dashboard) by source_for_target().
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
PER_PAGE = 100
REQUEST_TIMEOUT = 30
GIT_TIMEOUT = 60

_FIELD_SEP = "\x1f"
_RECORD_SEP = "\x1e"
_LOG_FORMAT = _FIELD_SEP.join(["%H", "%an", "%ae", "%aI", "%B"]) + _RECORD_SEP


class SourceError(Exception):
    """A commit source could not deliver the requested data."""


@dataclass(frozen=True)
class RawCommit:
    """A commit as delivered by a source, before normalization."""

    sha: str
    message: str
    author_name: str | None = None
    author_login: str | None = None
    authored_at: str | None = None


@dataclass(frozen=True)
class CommitStats:
    files_changed: int
    insertions: int
    deletions: int


class CommitSource:
    """Interface shared by all commit sources."""

    name: str = ""
    paginated: bool = False

    def iter_commits(self) -> Iterator[RawCommit]:
        raise NotImplementedError

    def fetch_stats(self, sha: str) -> CommitStats:
        raise NotImplementedError

    def describe(self) -> dict[str, Any]:
        return {}

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()


class GitHubCommitSource(CommitSource):
    """Commit history of a repository hosted on GitHub."""

    paginated = True

    def __init__(
        self,
        owner: str,
        repo: str,
        token: str | None = None,
        base_url: str = GITHUB_API_URL,
        per_page: int = PER_PAGE,
        max_commits: int | None = None,
    ):
        self.owner = owner
        self.repo = repo
        self.name = f"{owner}/{repo}"
        self.base_url = base_url.rstrip("/")
        self.per_page = per_page
        self.max_commits = max_commits
        headers = {"Accept": "application/vnd.github+json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(timeout=REQUEST_TIMEOUT, headers=headers)

    @property
    def _repo_url(self) -> str:
        return f"{self.base_url}/repos/{self.owner}/{self.repo}"

    def _get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        try:
            resp = self._client.get(url, params=params)
        except httpx.HTTPError as e:
            raise SourceError(f"GitHub request failed for {self.name}: {e}")
        if resp.status_code == 404:
            raise SourceError(f"Repository {self.name} not found or not accessible")
        if resp.status_code in (403, 429):
            raise SourceError(
                f"GitHub rate limit or permission error ({resp.status_code}) for {self.name}"
            )
        if resp.status_code != 200:
            raise SourceError(
                f"GitHub returned {resp.status_code} for {self.name}: {resp.text[:200]}"
            )
        try:
            return resp.json()
        except ValueError:
            raise SourceError(f"GitHub returned a non-JSON body for {self.name}")

    def _get_object(self, url: str) -> dict[str, Any]:
        data = self._get(url)
        if not isinstance(data, dict):
            raise SourceError(f"Unexpected GitHub payload for {self.name}: {type(data).__name__}")
        return data

    def close(self) -> None:
        self._client.close()

    def iter_commits(self) -> Iterator[RawCommit]:
        """Page through the commit list, newest first.

        Pages are requested lazily, so a consumer that stops early also
        stops further requests. ``max_commits`` bounds the walk on its own.
        """
        fetched = 0
        page = 1
        while self.max_commits is None or fetched < self.max_commits:
            batch = self._get(
                f"{self._repo_url}/commits",
                params={"per_page": self.per_page, "page": page},
            )
            if not batch:
                break
            if not isinstance(batch, list):
                raise SourceError(f"Unexpected GitHub commit page for {self.name}")
            logger.debug("Fetched page %d of %s: %d commits", page, self.name, len(batch))
            for item in batch:
                if self.max_commits is not None and fetched >= self.max_commits:
                    return
                yield _parse_github_commit(item)
                fetched += 1
            if len(batch) < self.per_page:
                break
            page += 1

    def fetch_stats(self, sha: str) -> CommitStats:
        data = self._get_object(f"{self._repo_url}/commits/{sha}")
        stats = data.get("stats") or {}
        return CommitStats(
            files_changed=len(data.get("files") or []),
            insertions=stats.get("additions") or 0,
            deletions=stats.get("deletions") or 0,
        )

    def describe(self) -> dict[str, Any]:
        data = self._get_object(self._repo_url)
        return {
            "full_name": data.get("full_name", self.name),
            "description": data.get("description") or "",
            "default_branch": data.get("default_branch", ""),
            "language": data.get("language") or "",
            "stars": data.get("stargazers_count", 0),
        }


def _parse_github_commit(item: dict[str, Any]) -> RawCommit:
    commit = item.get("commit") or {}
    author = commit.get("author") or {}
    account = item.get("author") or {}
    return RawCommit(
        sha=item.get("sha", ""),
        message=commit.get("message") or "",
        author_name=author.get("name") or None,
        author_login=account.get("login") or None,
        authored_at=author.get("date") or None,
    )


class LocalGitCommitSource(CommitSource):
    """Commit history of a local clone, read through the git CLI."""

    def __init__(self, path: str | Path, max_count: int | None = None):
        self.path = Path(path).resolve()
        if not self.path.is_dir():
            raise SourceError(f"Not a directory: {self.path}")
        if not (self.path / ".git").exists():
            raise SourceError(f"Not a git repository: {self.path}")
        self.name = self.path.name
        self.max_count = max_count

    def _git(self, *args: str) -> str:
        try:
            result = subprocess.run(
                ["git", *args],
                cwd=self.path, capture_output=True, text=True, timeout=GIT_TIMEOUT,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise SourceError(f"git {args[0]} failed in {self.path}: {e}")
        if result.returncode != 0:
            raise SourceError(f"git {args[0]} failed: {result.stderr.strip()[:200]}")
        return result.stdout

    def iter_commits(self) -> Iterator[RawCommit]:
        args = ["log", f"--format={_LOG_FORMAT}"]
        if self.max_count:
            args.append(f"-{self.max_count}")
        output = self._git(*args)
        for record in output.split(_RECORD_SEP):
            record = record.lstrip("\n")
            if not record:
                continue
            parts = record.split(_FIELD_SEP, 4)
            if len(parts) < 5:
                continue
            sha, name, email, date, body = parts
            yield RawCommit(
                sha=sha,
                message=body.strip(),
                author_name=name or None,
                author_login=email or None,
                authored_at=date or None,
            )

    def fetch_stats(self, sha: str) -> CommitStats:
        output = self._git("show", "--numstat", "--format=", sha)
        files = insertions = deletions = 0
        for line in output.splitlines():
            parts = line.split("\t")
            if len(parts) < 3:
                continue
            files += 1
            # binary files report "-" for both counts
            if parts[0].isdigit():
                insertions += int(parts[0])
            if parts[1].isdigit():
                deletions += int(parts[1])
        return CommitStats(files, insertions, deletions)

    def describe(self) -> dict[str, Any]:
        branch = self._git("rev-parse", "--abbrev-ref", "HEAD").strip()
        files = sorted(f for f in os.listdir(self.path) if not f.startswith("."))
        return {
            "full_name": self.name,
            "default_branch": branch,
            "files": files[:20],
            "total_files": len(files),
        }


_GITHUB_URL = re.compile(
    r"(?:https?://)?(?:www\.)?github\.com/([^/\s]+)/([^/\s#?]+?)(?:\.git)?(?:[/#?].*)?$"
)
_SHORTHAND = re.compile(r"^([\w.-]+)/([\w.-]+?)(?:\.git)?$")


def parse_github_url(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from a GitHub URL or owner/repo shorthand."""
    url = url.strip()
    match = _GITHUB_URL.search(url)
    if match is None and not url.startswith((".", "/", "~")):
        match = _SHORTHAND.match(url)
    if match is None:
        return None
    return match.group(1), match.group(2)


def source_for_target(target: str, token: str | None = None) -> CommitSource:
    """Resolve a local path, GitHub URL or owner/repo shorthand to a source."""
    if Path(target).expanduser().is_dir():
        return LocalGitCommitSource(Path(target).expanduser())
    parsed = parse_github_url(target)
    if parsed is None:
        raise SourceError(f"Not a local repository or GitHub URL: {target}")
    return GitHubCommitSource(*parsed, token=token)
