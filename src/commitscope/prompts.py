"""Prompt templates for repository questions.

The digest built by digest.build_digest() is rendered into the system
prompt; the user's question goes into the user turn.
"""

from __future__ import annotations

from typing import Any

SYSTEM_PROMPT = """You are an assistant helping users understand and analyze Git repositories.
You are given statistics derived from the repository's commit history: author activity,
heuristic business-feature and commit-category breakdowns, monthly activity and a commit log.
Categories come from keyword matching on commit messages, so treat them as approximate.
Answer with specific numbers, percentages, trends and recommendations taken from the data.
If the data cannot answer the question, say so instead of guessing."""


def _date(value: str) -> str:
    return value[:10] if value else "N/A"


def repository_context_prompt(digest: dict[str, Any]) -> str:
    """Render a repository digest as the model's system prompt."""
    summary = digest.get("summary", {})
    facts = digest.get("facts", {})
    lines = [SYSTEM_PROMPT, "", "REPOSITORY OVERVIEW:"]
    lines.append(f"- Name: {digest.get('name', '')}")
    if facts.get("description"):
        lines.append(f"- Description: {facts['description']}")
    lines.append(f"- Total Commits: {summary.get('total_commits', 0)}")
    lines.append(f"- Total Authors: {summary.get('total_authors', 0)}")
    lines.append(f"- Repository Age: {summary.get('repository_age_days', 0)} days")
    lines.append(f"- First Commit: {_date(summary.get('first_commit', ''))}")
    lines.append(f"- Last Commit: {_date(summary.get('last_commit', ''))}")
    if facts.get("default_branch"):
        lines.append(f"- Branch: {facts['default_branch']}")
    if facts.get("language"):
        lines.append(f"- Language: {facts['language']}")
    if facts.get("total_files"):
        lines.append(f"- Top-level Files: {facts['total_files']}")

    lines += ["", "AUTHOR STATISTICS (Top Contributors):"]
    for a in digest.get("author_statistics", []):
        lines.append(
            f"- {a['author']}: {a['commits']} commits ({a['percentage']}%) - "
            f"active from {_date(a['first_commit'])} to {_date(a['last_commit'])}"
        )

    lines += ["", "BUSINESS FEATURES BREAKDOWN:"]
    for f in digest.get("business_features", []):
        lines.append(f"- {f['feature']}: {f['commits']} commits ({f['percentage']}%)")

    lines += ["", "SEMANTIC COMMIT CATEGORIES:"]
    for c in digest.get("semantic_categories", []):
        lines.append(f"- {c['category']}: {c['commits']} commits ({c['percentage']}%)")

    lines += ["", "RECENT MONTHLY ACTIVITY:"]
    for m in digest.get("monthly_activity", []):
        lines.append(f"- {m['month']}: {m['commits']} commits")

    log = digest.get("commit_log", [])
    total = summary.get("total_commits", 0)
    label = "COMMIT LOG" if len(log) >= total else f"COMMIT LOG (sampled, {len(log)} of {total})"
    lines += ["", f"{label}:"]
    for c in log:
        lines.append(f"{c['hash']} - {c['message']} (by {c['author']} on {_date(c['date'])})")

    if facts.get("files"):
        lines += ["", "REPOSITORY FILES (Sample):", ", ".join(facts["files"])]

    return "\n".join(lines)


def question_prompt(question: str) -> str:
    return (
        f"Please analyze this repository and answer: {question.strip()}\n"
        "Use the analysis data to provide specific insights about trends, "
        "patterns, and recommendations."
    )
