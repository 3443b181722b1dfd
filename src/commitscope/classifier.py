"""Keyword classifier and complexity scorer. Pure functions, no I/O.

Commit messages are bucketed by case-insensitive substring matching
against fixed, ordered rule lists. The first matching rule wins, so the
order of the lists below is part of the behavior.
"""

from __future__ import annotations

import math

DEFAULT_CATEGORY = "other"
DEFAULT_IMPACT = "maintenance"
DEFAULT_FEATURE = "Core Development"

# (triggers, semantic category, business impact)
CATEGORY_RULES: tuple[tuple[tuple[str, ...], str, str], ...] = (
    (("feat", "feature", "add"), "feature", "enhancement"),
    (("fix", "bug"), "bugfix", "stability"),
    (("refactor", "clean"), "refactor", "technical debt"),
    (("test", "spec"), "testing", "quality"),
    (("doc", "readme"), "documentation", "usability"),
    (("perf", "optimize"), "performance", "performance"),
    (("security", "auth"), "security", "security"),
)

# (triggers, business feature)
FEATURE_RULES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("auth", "login", "signup"), "Authentication"),
    (("user", "profile"), "User Management"),
    (("api", "endpoint"), "API Development"),
    (("ui", "frontend", "component"), "UI/UX"),
    (("database", "db", "migration"), "Database"),
    (("deploy", "ci", "build"), "DevOps"),
    (("test", "spec"), "Testing"),
    (("doc", "readme"), "Documentation"),
)

CATEGORIES = tuple(rule[1] for rule in CATEGORY_RULES) + (DEFAULT_CATEGORY,)
IMPACTS = tuple(rule[2] for rule in CATEGORY_RULES) + (DEFAULT_IMPACT,)
FEATURES = tuple(rule[1] for rule in FEATURE_RULES) + (DEFAULT_FEATURE,)

MAX_COMPLEXITY = 100.0


def classify(message: str | None) -> tuple[str, str]:
    """Return ``(semantic_category, business_impact)`` for a commit message."""
    msg = (message or "").lower()
    for triggers, category, impact in CATEGORY_RULES:
        if any(t in msg for t in triggers):
            return category, impact
    return DEFAULT_CATEGORY, DEFAULT_IMPACT


def extract_feature(message: str | None) -> str:
    """Return the business feature bucket for a commit message."""
    msg = (message or "").lower()
    for triggers, feature in FEATURE_RULES:
        if any(t in msg for t in triggers):
            return feature
    return DEFAULT_FEATURE


def score_complexity(
    files_changed: int | None,
    insertions: int | None,
    deletions: int | None,
) -> float:
    """Log-damped complexity score, capped at 100.

    File count weighs twice as much per log unit as changed lines.
    """
    files = max(0, files_changed or 0)
    lines = max(0, insertions or 0) + max(0, deletions or 0)
    return min(MAX_COMPLEXITY, math.log(files + 1) * 10 + math.log(lines + 1) * 5)
