"""In-memory list of repositories known to the dashboard.

Process-wide and lost on restart. A durable store only has to provide
the same add / find / remove methods.
"""

from __future__ import annotations

import datetime
import hashlib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .sources import (
    CommitSource,
    GitHubCommitSource,
    LocalGitCommitSource,
    parse_github_url,
)


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


@dataclass
class RepositoryEntry:
    full_name: str
    url: str
    kind: str = "github"  # github | local
    added_at: str = field(default_factory=_now_iso)

    @property
    def key(self) -> str:
        """Identity in the store: the resolved path for clones, else owner/repo."""
        return self.url if self.kind == "local" else self.full_name

    @property
    def id(self) -> str:
        if self.kind == "local":
            digest = hashlib.sha1(self.url.encode("utf-8")).hexdigest()[:8]
            return f"local-{self.full_name}-{digest}"
        return self.full_name.replace("/", "-")

    @classmethod
    def from_github_url(cls, url: str) -> RepositoryEntry | None:
        parsed = parse_github_url(url)
        if parsed is None:
            return None
        owner, repo = parsed
        return cls(full_name=f"{owner}/{repo}", url=url)

    @classmethod
    def from_path(cls, path: str | Path) -> RepositoryEntry:
        resolved = Path(path).expanduser().resolve()
        return cls(full_name=resolved.name, url=str(resolved), kind="local")

    def open_source(self, token: str | None = None) -> CommitSource:
        if self.kind == "local":
            return LocalGitCommitSource(self.url)
        owner, repo = self.full_name.split("/", 1)
        return GitHubCommitSource(owner, repo, token=token)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, **asdict(self)}


class RepositoryStore:
    """Keeps repositories in insertion order, unique by key."""

    def __init__(self):
        self._entries: list[RepositoryEntry] = []

    def all(self) -> list[RepositoryEntry]:
        """Newest first."""
        return list(reversed(self._entries))

    def add(self, entry: RepositoryEntry) -> RepositoryEntry:
        """Add an entry unless one with the same key exists. Returns the stored entry."""
        existing = self.find(entry.key)
        if existing is not None:
            return existing
        self._entries.append(entry)
        return entry

    def find(self, key: str) -> RepositoryEntry | None:
        return next((e for e in self._entries if e.key == key), None)

    def find_by_full_name(self, full_name: str) -> RepositoryEntry | None:
        return next((e for e in self._entries if e.full_name == full_name), None)

    def find_by_id(self, repo_id: str) -> RepositoryEntry | None:
        return next((e for e in self._entries if e.id == repo_id), None)

    def remove(self, key: str) -> bool:
        entry = self.find(key)
        if entry is None:
            return False
        self._entries.remove(entry)
        return True


repository_store = RepositoryStore()
