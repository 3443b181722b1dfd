"""Commit classification and aggregation pipeline.

Normalizes raw commits from a commit source, classifies and scores each
one, then folds them into per-author, per-feature and trend tables.
Single pass, single threaded, no state shared between runs.
"""

from __future__ import annotations

import datetime
import itertools
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable

from .classifier import classify, extract_feature, score_complexity
from .sources import CommitSource, CommitStats, RawCommit, SourceError

logger = logging.getLogger(__name__)

DETAIL_BUDGET = 50  # newest commits that get exact stats
MAX_COMMITS = 1000  # ceiling for paginated sources
UNKNOWN_AUTHOR = "Unknown"

StatsFetcher = Callable[[str], CommitStats]


@dataclass(frozen=True)
class CommitRecord:
    """A commit in canonical shape."""

    hash: str
    timestamp: str
    author: str
    message: str
    files_changed: int
    insertions: int
    deletions: int
    estimated: bool = False

    @property
    def lines_changed(self) -> int:
        return self.insertions + self.deletions


@dataclass(frozen=True)
class ClassifiedCommit(CommitRecord):
    """A commit record plus its derived classification."""

    complexity: float = 0.0
    semantic_category: str = "other"
    business_impact: str = "maintenance"
    business_feature: str = "Core Development"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrendPoint:
    timestamp: str
    complexity: float


@dataclass
class AuthorContribution:
    author: str
    commit_count: int = 0
    total_lines_changed: int = 0


@dataclass
class FeatureTimeline:
    feature: str
    commit_hashes: list[str] = field(default_factory=list)
    timestamps: list[str] = field(default_factory=list)


@dataclass
class AggregateResult:
    """Everything a chart renderer or prompt builder needs from one run."""

    commits: list[ClassifiedCommit] = field(default_factory=list)
    complexity_trend: list[TrendPoint] = field(default_factory=list)
    author_contributions: list[AuthorContribution] = field(default_factory=list)
    business_features: list[FeatureTimeline] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "commits": [c.to_dict() for c in self.commits],
            "complexity_trend": [asdict(p) for p in self.complexity_trend],
            "author_contributions": [asdict(a) for a in self.author_contributions],
            "business_features": [asdict(f) for f in self.business_features],
        }


def estimate_stats(message: str | None) -> CommitStats:
    """Estimate change size from message length when real stats are unavailable."""
    length = len(message or "")
    return CommitStats(
        files_changed=max(1, length // 50),
        insertions=max(5, length // 10),
        deletions=max(0, length // 20),
    )


def _now_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def normalize_commit(
    raw: RawCommit,
    index: int,
    detail_budget: int = DETAIL_BUDGET,
    fetch_stats: StatsFetcher | None = None,
) -> CommitRecord:
    """Convert a raw commit into a CommitRecord.

    Only commits with ``index < detail_budget`` ask the source for exact
    stats. A failed lookup degrades that commit to the estimate.
    """
    message = raw.message or ""
    stats = None
    if fetch_stats is not None and index < detail_budget:
        try:
            stats = fetch_stats(raw.sha)
        except SourceError as e:
            logger.warning(
                "Failed to fetch details for commit %s, using estimation: %s",
                raw.sha[:8], e,
            )

    estimated = stats is None
    if stats is None:
        stats = estimate_stats(message)

    return CommitRecord(
        hash=raw.sha,
        timestamp=raw.authored_at or _now_iso(),
        author=raw.author_name or raw.author_login or UNKNOWN_AUTHOR,
        message=message,
        files_changed=max(0, stats.files_changed),
        insertions=max(0, stats.insertions),
        deletions=max(0, stats.deletions),
        estimated=estimated,
    )


def classify_commit(record: CommitRecord) -> ClassifiedCommit:
    category, impact = classify(record.message)
    return ClassifiedCommit(
        **asdict(record),
        complexity=score_complexity(
            record.files_changed, record.insertions, record.deletions
        ),
        semantic_category=category,
        business_impact=impact,
        business_feature=extract_feature(record.message),
    )


def aggregate(classified: Iterable[ClassifiedCommit]) -> AggregateResult:
    """Fold classified commits (newest first) into an AggregateResult.

    Author and feature tables keep first-appearance order. ``commits`` and
    ``complexity_trend`` come out oldest first.
    """
    commits: list[ClassifiedCommit] = []
    authors: dict[str, AuthorContribution] = {}
    features: dict[str, FeatureTimeline] = {}

    for commit in classified:
        commits.append(commit)

        contribution = authors.get(commit.author)
        if contribution is None:
            contribution = authors[commit.author] = AuthorContribution(commit.author)
        contribution.commit_count += 1
        contribution.total_lines_changed += commit.lines_changed

        timeline = features.get(commit.business_feature)
        if timeline is None:
            timeline = features[commit.business_feature] = FeatureTimeline(
                commit.business_feature
            )
        timeline.commit_hashes.append(commit.hash)
        timeline.timestamps.append(commit.timestamp)

    commits.reverse()
    return AggregateResult(
        commits=commits,
        complexity_trend=[TrendPoint(c.timestamp, c.complexity) for c in commits],
        author_contributions=list(authors.values()),
        business_features=list(features.values()),
    )


def run_pipeline(
    raw_commits: Iterable[RawCommit],
    detail_budget: int = DETAIL_BUDGET,
    fetch_stats: StatsFetcher | None = None,
    max_commits: int | None = None,
) -> AggregateResult:
    """Normalize, classify and score each commit in order, then aggregate.

    Errors raised while reading ``raw_commits`` propagate; no partial
    result is ever returned.
    """
    if max_commits is not None:
        raw_commits = itertools.islice(raw_commits, max_commits)

    classified = [
        classify_commit(normalize_commit(raw, i, detail_budget, fetch_stats))
        for i, raw in enumerate(raw_commits)
    ]
    result = aggregate(classified)
    estimated = sum(1 for c in result.commits if c.estimated)
    logger.info(
        "Analyzed %d commits (%d estimated) from %d authors",
        len(result.commits), estimated, len(result.author_contributions),
    )
    return result


def analyze_source(
    source: CommitSource,
    detail_budget: int = DETAIL_BUDGET,
    max_commits: int = MAX_COMMITS,
) -> AggregateResult:
    """Run the pipeline over a commit source.

    The ceiling only applies to paginated sources; a local history is
    already materialized and is processed in full.
    """
    logger.info("Analyzing %s", source.name)
    return run_pipeline(
        source.iter_commits(),
        detail_budget=detail_budget,
        fetch_stats=source.fetch_stats,
        max_commits=max_commits if source.paginated else None,
    )
