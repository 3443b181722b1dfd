"""Presentation-layer views over an AggregateResult.

The pipeline never truncates or samples. Windowing, sampling, percentages
and insight rules live here and are applied explicitly by each consumer
(dashboard, CLI, prompt builder).
"""

from __future__ import annotations

import datetime
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Sequence

from .analyzer import AggregateResult, ClassifiedCommit, TrendPoint, aggregate

SAMPLE_THRESHOLD = 500
SAMPLE_RECENT = 300
SAMPLE_STRIDE = 5
RECENT_COMMITS = 10


@dataclass
class Insight:
    type: str  # risk | suggestion | trend
    title: str
    description: str
    severity: str  # low | medium | high


def window_trend(trend: Sequence[TrendPoint], last: int | None = None) -> list[TrendPoint]:
    """Return the whole trend, or only its last ``last`` points."""
    if last is None or last <= 0:
        return list(trend)
    return list(trend[-last:])


def sample_history(
    commits: Sequence[ClassifiedCommit],
    recent: int = SAMPLE_RECENT,
    stride: int = SAMPLE_STRIDE,
    threshold: int = SAMPLE_THRESHOLD,
) -> list[ClassifiedCommit]:
    """Thin out a long history (newest first).

    Histories up to ``threshold`` commits are kept whole. Longer ones keep
    the ``recent`` newest commits plus every ``stride``-th older one.
    """
    if len(commits) <= threshold:
        return list(commits)
    return list(commits[:recent]) + list(commits[recent::stride])


@dataclass(frozen=True)
class ChartFilter:
    """Dashboard chart filters. Unset fields let every commit through.

    ``since`` and ``until`` are inclusive calendar days compared against
    the commit's author date in UTC.
    """

    since: datetime.date | None = None
    until: datetime.date | None = None
    authors: tuple[str, ...] = ()
    min_complexity: float = 0.0

    @property
    def active(self) -> bool:
        return bool(self.since or self.until or self.authors or self.min_complexity > 0)

    def matches(self, commit: ClassifiedCommit) -> bool:
        if self.authors and commit.author not in self.authors:
            return False
        if commit.complexity < self.min_complexity:
            return False
        if self.since or self.until:
            day = _parse_time(commit.timestamp).astimezone(datetime.timezone.utc).date()
            if self.since and day < self.since:
                return False
            if self.until and day > self.until:
                return False
        return True


def filter_result(result: AggregateResult, chart_filter: ChartFilter) -> AggregateResult:
    """Re-aggregate only the commits the filter keeps.

    The input result is left untouched; an inactive filter returns it as is.
    """
    if not chart_filter.active:
        return result
    # aggregate() expects fetch order (newest first)
    kept = [c for c in reversed(result.commits) if chart_filter.matches(c)]
    return aggregate(kept)


def _percent(count: int, total: int) -> int:
    return round(count / total * 100) if total else 0


def _breakdown(counter: Counter, key: str, total: int) -> list[dict[str, Any]]:
    return [
        {key: name, "commits": count, "percentage": _percent(count, total)}
        for name, count in sorted(counter.items(), key=lambda x: -x[1])
    ]


def category_breakdown(commits: Sequence[ClassifiedCommit]) -> list[dict[str, Any]]:
    counts = Counter(c.semantic_category for c in commits)
    return _breakdown(counts, "category", len(commits))


def feature_breakdown(commits: Sequence[ClassifiedCommit]) -> list[dict[str, Any]]:
    counts = Counter(c.business_feature for c in commits)
    return _breakdown(counts, "feature", len(commits))


def monthly_activity(commits: Iterable[ClassifiedCommit], months: int = 12) -> list[dict[str, Any]]:
    """Commit counts per ``YYYY-MM``, oldest first, last ``months`` months."""
    counts = Counter(c.timestamp[:7] for c in commits if c.timestamp)
    ordered = sorted(counts.items())[-months:] if months else sorted(counts.items())
    return [{"month": month, "commits": count} for month, count in ordered]


def author_statistics(commits: Sequence[ClassifiedCommit], limit: int = 10) -> list[dict[str, Any]]:
    """Per-author commit counts with first/last commit dates, busiest first."""
    stats: dict[str, dict[str, Any]] = {}
    for c in commits:
        entry = stats.setdefault(
            c.author,
            {"commits": 0, "first_commit": c.timestamp, "last_commit": c.timestamp},
        )
        entry["commits"] += 1
        when = _parse_time(c.timestamp)
        if when < _parse_time(entry["first_commit"]):
            entry["first_commit"] = c.timestamp
        if when > _parse_time(entry["last_commit"]):
            entry["last_commit"] = c.timestamp

    ranked = sorted(stats.items(), key=lambda x: -x[1]["commits"])[:limit]
    return [
        {"author": author, **entry, "percentage": _percent(entry["commits"], len(commits))}
        for author, entry in ranked
    ]


def _parse_time(value: str) -> datetime.datetime:
    try:
        parsed = datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return datetime.datetime.min.replace(tzinfo=datetime.timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def generate_insights(result: AggregateResult) -> list[Insight]:
    """Rule-of-thumb observations for the dashboard."""
    insights: list[Insight] = []

    trend = result.complexity_trend
    if len(trend) > 1:
        recent = trend[-5:]
        delta = recent[-1].complexity - recent[0].complexity
        if delta > 20:
            insights.append(Insight(
                type="risk",
                title="Rising Code Complexity",
                description=f"Code complexity has increased by {delta:.1f} points in recent commits. Consider refactoring.",
                severity="high",
            ))
        elif delta < -10:
            insights.append(Insight(
                type="suggestion",
                title="Code Quality Improvement",
                description=f"Code complexity has decreased by {abs(delta):.1f} points recently.",
                severity="low",
            ))

    total = sum(a.commit_count for a in result.author_contributions)
    if total:
        top = max(result.author_contributions, key=lambda a: a.commit_count)
        share = top.commit_count / total
        if share > 0.8:
            insights.append(Insight(
                type="risk",
                title="High Bus Factor Risk",
                description=f"{top.author} owns {share * 100:.1f}% of commits. Consider distributing knowledge.",
                severity="medium",
            ))

    if result.business_features:
        busiest = max(result.business_features, key=lambda f: len(f.commit_hashes))
        insights.append(Insight(
            type="trend",
            title="Most Active Feature",
            description=f'"{busiest.feature}" has the most development activity with {len(busiest.commit_hashes)} commits.',
            severity="low",
        ))

    return insights


def build_digest(
    result: AggregateResult,
    name: str,
    facts: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Condense a result into the context handed to the language model."""
    commits = result.commits
    newest_first = list(reversed(commits))
    first = commits[0].timestamp if commits else ""
    last = commits[-1].timestamp if commits else ""
    age_days = 0
    if commits:
        age_days = max(0, (_parse_time(last) - _parse_time(first)).days)

    return {
        "name": name,
        "facts": facts or {},
        "summary": {
            "total_commits": len(commits),
            "total_authors": len(result.author_contributions),
            "repository_age_days": age_days,
            "first_commit": first,
            "last_commit": last,
        },
        "author_statistics": author_statistics(commits),
        "business_features": feature_breakdown(commits),
        "semantic_categories": category_breakdown(commits),
        "monthly_activity": monthly_activity(commits),
        "recent_commits": [_commit_line(c) for c in newest_first[:RECENT_COMMITS]],
        "commit_log": [_commit_line(c) for c in sample_history(newest_first)],
    }


def _commit_line(commit: ClassifiedCommit) -> dict[str, str]:
    return {
        "hash": commit.hash[:8],
        "message": commit.message.split("\n", 1)[0][:120],
        "author": commit.author,
        "date": commit.timestamp,
        "category": commit.semantic_category,
    }


def insights_to_dicts(insights: Iterable[Insight]) -> list[dict[str, str]]:
    return [asdict(i) for i in insights]
