"""Tests for the keyword classifier and complexity scorer."""

import math

import pytest

from commitscope.classifier import (
    CATEGORIES,
    FEATURES,
    classify,
    extract_feature,
    score_complexity,
)


class TestClassify:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("feat: new exporter", ("feature", "enhancement")),
            ("Add retry option", ("feature", "enhancement")),
            ("fix crash on empty input", ("bugfix", "stability")),
            ("Bug in parser", ("bugfix", "stability")),
            ("refactor session handling", ("refactor", "technical debt")),
            ("cleanup imports", ("refactor", "technical debt")),
            ("more tests for the parser", ("testing", "quality")),
            ("update README", ("documentation", "usability")),
            ("perf: cache lookups", ("performance", "performance")),
            ("optimize query", ("performance", "performance")),
            ("harden security headers", ("security", "security")),
            ("rotate auth tokens", ("security", "security")),
            ("bump version", ("other", "maintenance")),
        ],
    )
    def test_rules(self, message, expected):
        assert classify(message) == expected

    def test_first_match_wins(self):
        assert classify("feat: fix typo") == ("feature", "enhancement")
        assert classify("fix flaky test") == ("bugfix", "stability")

    def test_case_insensitive(self):
        assert classify("FIX THE THING") == ("bugfix", "stability")

    @pytest.mark.parametrize("message", ["", None, "bump version", "Merge branch 'main'"])
    def test_no_trigger_defaults(self, message):
        assert classify(message) == ("other", "maintenance")
        assert extract_feature(message) == "Core Development"

    def test_substring_matching(self):
        # "address" contains "add"
        assert classify("address review comments")[0] == "feature"


class TestExtractFeature:
    @pytest.mark.parametrize(
        "message, expected",
        [
            ("fix login redirect", "Authentication"),
            ("signup form", "Authentication"),
            ("profile page", "User Management"),
            ("new endpoint for exports", "API Development"),
            ("frontend polish", "UI/UX"),
            ("add migration for orders", "Database"),
            ("deploy to staging", "DevOps"),
            ("spec for parser", "Testing"),
            ("readme typo", "Documentation"),
            ("bump version", "Core Development"),
        ],
    )
    def test_rules(self, message, expected):
        assert extract_feature(message) == expected

    def test_auth_before_user(self):
        assert extract_feature("user auth flow") == "Authentication"

    def test_results_are_known_labels(self):
        for message in ("feat: add api", "docs", "", "ci build"):
            assert extract_feature(message) in FEATURES
            assert classify(message)[0] in CATEGORIES


class TestScoreComplexity:
    def test_zero(self):
        assert score_complexity(0, 0, 0) == 0

    def test_formula(self):
        assert score_complexity(1, 10, 2) == pytest.approx(math.log(2) * 10 + math.log(13) * 5)
        assert score_complexity(1, 10, 2) == pytest.approx(19.75, abs=0.01)
        assert score_complexity(3, 50, 0) == pytest.approx(33.5, abs=0.1)

    def test_capped_at_100(self):
        assert score_complexity(10**6, 10**9, 10**9) == 100

    def test_missing_signals_count_as_zero(self):
        assert score_complexity(None, None, None) == 0
        assert score_complexity(2, None, 0) == score_complexity(2, 0, 0)

    def test_monotonic(self):
        base = score_complexity(3, 20, 5)
        assert score_complexity(4, 20, 5) >= base
        assert score_complexity(3, 21, 5) >= base
        assert score_complexity(3, 20, 6) >= base
