"""Tests for the GitHub and local git commit sources."""

import os
import shutil
import subprocess
from unittest.mock import MagicMock, patch

import httpx
import pytest

from commitscope.analyzer import analyze_source, run_pipeline
from commitscope.sources import (
    CommitSource,
    CommitStats,
    GitHubCommitSource,
    LocalGitCommitSource,
    RawCommit,
    SourceError,
    parse_github_url,
    source_for_target,
)


def _response(status=200, payload=None, text=""):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    resp.text = text
    return resp


def _api_commit(i, name="Ada", login="ada", date="2024-01-01T00:00:00Z"):
    return {
        "sha": f"{i:040x}",
        "commit": {"message": f"commit {i}", "author": {"name": name, "date": date}},
        "author": {"login": login},
    }


class TestParseGithubUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "https://github.com/pallets/flask",
            "https://github.com/pallets/flask.git",
            "https://github.com/pallets/flask/",
            "http://www.github.com/pallets/flask/tree/main/src",
            "github.com/pallets/flask",
            "pallets/flask",
        ],
    )
    def test_valid(self, url):
        assert parse_github_url(url) == ("pallets", "flask")

    @pytest.mark.parametrize("url", ["", "https://gitlab.com/a", "not a url", "./local/dir"])
    def test_invalid(self, url):
        assert parse_github_url(url) is None


class TestGitHubCommitSource:
    @patch("httpx.Client.get")
    def test_pages_until_short_page(self, mock_get):
        mock_get.side_effect = [
            _response(payload=[_api_commit(i) for i in range(2)]),
            _response(payload=[_api_commit(2)]),
        ]
        source = GitHubCommitSource("o", "r", per_page=2)
        commits = list(source.iter_commits())
        assert [c.message for c in commits] == ["commit 0", "commit 1", "commit 2"]
        assert mock_get.call_count == 2
        assert mock_get.call_args_list[1].kwargs["params"] == {"per_page": 2, "page": 2}

    @patch("httpx.Client.get")
    def test_stops_on_empty_page(self, mock_get):
        mock_get.side_effect = [
            _response(payload=[_api_commit(0), _api_commit(1)]),
            _response(payload=[]),
        ]
        source = GitHubCommitSource("o", "r", per_page=2)
        assert len(list(source.iter_commits())) == 2

    @patch("httpx.Client.get")
    def test_ceiling_stops_requests(self, mock_get):
        mock_get.side_effect = lambda url, params=None: _response(
            payload=[_api_commit(i) for i in range(params["per_page"])]
        )
        source = GitHubCommitSource("o", "r", per_page=100, max_commits=250)
        commits = list(source.iter_commits())
        assert len(commits) == 250
        assert mock_get.call_count == 3

    @patch("httpx.Client.get")
    def test_pipeline_ceiling(self, mock_get):
        mock_get.side_effect = lambda url, params=None: _response(
            payload=[_api_commit(i) for i in range(params["per_page"])]
            if params else {"files": [], "stats": {}}
        )
        source = GitHubCommitSource("o", "r", per_page=100, max_commits=5000)
        result = analyze_source(source, detail_budget=0, max_commits=1000)
        assert len(result.commits) == 1000
        assert mock_get.call_count == 10

    @patch("httpx.Client.get")
    def test_parse_commit_fields(self, mock_get):
        item = _api_commit(7)
        item["commit"]["author"] = {}
        mock_get.return_value = _response(payload=[item])
        commit = next(GitHubCommitSource("o", "r").iter_commits())
        assert commit.author_name is None
        assert commit.author_login == "ada"
        assert commit.authored_at is None

    @patch("httpx.Client.get")
    def test_fetch_stats(self, mock_get):
        mock_get.return_value = _response(payload={
            "files": [{"filename": "a.py"}, {"filename": "b.py"}],
            "stats": {"additions": 12, "deletions": 3, "total": 15},
        })
        stats = GitHubCommitSource("o", "r").fetch_stats("abc")
        assert stats == CommitStats(files_changed=2, insertions=12, deletions=3)
        assert mock_get.call_args.args[0].endswith("/repos/o/r/commits/abc")

    @patch("httpx.Client.get")
    def test_rate_limit_raises_source_error(self, mock_get):
        mock_get.return_value = _response(status=403, text="API rate limit exceeded")
        with pytest.raises(SourceError, match="rate limit"):
            GitHubCommitSource("o", "r").fetch_stats("abc")

    @patch("httpx.Client.get")
    def test_not_found(self, mock_get):
        mock_get.return_value = _response(status=404)
        with pytest.raises(SourceError, match="not found"):
            GitHubCommitSource("o", "r").describe()

    @patch("httpx.Client.get")
    def test_network_error(self, mock_get):
        mock_get.side_effect = httpx.ConnectError("connection refused")
        with pytest.raises(SourceError):
            list(GitHubCommitSource("o", "r").iter_commits())

    @patch("httpx.Client.get")
    def test_describe(self, mock_get):
        mock_get.return_value = _response(payload={
            "full_name": "o/r", "description": "A repo", "default_branch": "main",
            "language": "Python", "stargazers_count": 42,
        })
        facts = GitHubCommitSource("o", "r").describe()
        assert facts["default_branch"] == "main"
        assert facts["stars"] == 42

    def test_token_header(self):
        source = GitHubCommitSource("o", "r", token="secret")
        assert source._client.headers["Authorization"] == "Bearer secret"
        assert "Authorization" not in GitHubCommitSource("o", "r")._client.headers


needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _commit(repo, filename, content, message, author="Ada Lovelace", date="2024-01-15T10:00:00+00:00"):
    (repo / filename).write_text(content)
    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": author,
        "GIT_AUTHOR_EMAIL": f"{author.split()[0].lower()}@example.com",
        "GIT_AUTHOR_DATE": date,
        "GIT_COMMITTER_NAME": author,
        "GIT_COMMITTER_EMAIL": "ci@example.com",
        "GIT_COMMITTER_DATE": date,
    }
    subprocess.run(["git", "add", "-A"], cwd=repo, check=True, env=env)
    subprocess.run(["git", "commit", "-q", "-m", message], cwd=repo, check=True, env=env)


@pytest.fixture
def git_repo(tmp_path):
    repo = tmp_path / "sample"
    repo.mkdir()
    subprocess.run(["git", "init", "-q"], cwd=repo, check=True)
    _commit(repo, "README.md", "# Sample\n", "docs: add readme", date="2024-01-01T09:00:00+00:00")
    _commit(repo, "app.py", "a = 1\nb = 2\nc = 3\n", "feat: add login endpoint\n\nLonger body text.",
            author="Bob Builder", date="2024-02-01T09:00:00+00:00")
    _commit(repo, "app.py", "a = 1\nb = 20\n", "fix: handle empty user", date="2024-03-01T09:00:00+00:00")
    return repo


@needs_git
class TestLocalGitCommitSource:
    def test_iter_commits_newest_first(self, git_repo):
        commits = list(LocalGitCommitSource(git_repo).iter_commits())
        assert [c.message.splitlines()[0] for c in commits] == [
            "fix: handle empty user",
            "feat: add login endpoint",
            "docs: add readme",
        ]
        assert commits[1].author_name == "Bob Builder"
        assert commits[1].message.endswith("Longer body text.")
        assert commits[0].authored_at.startswith("2024-03-01T09:00:00")
        assert len(commits[0].sha) == 40

    def test_fetch_stats(self, git_repo):
        source = LocalGitCommitSource(git_repo)
        newest = next(source.iter_commits())
        assert source.fetch_stats(newest.sha) == CommitStats(1, 1, 2)

    def test_describe(self, git_repo):
        facts = LocalGitCommitSource(git_repo).describe()
        assert facts["full_name"] == "sample"
        assert facts["files"] == ["README.md", "app.py"]

    def test_max_count(self, git_repo):
        assert len(list(LocalGitCommitSource(git_repo, max_count=2).iter_commits())) == 2

    def test_full_pipeline(self, git_repo):
        result = analyze_source(LocalGitCommitSource(git_repo))
        assert [c.semantic_category for c in result.commits] == ["feature", "feature", "bugfix"]
        assert not any(c.estimated for c in result.commits)
        assert {a.author for a in result.author_contributions} == {"Ada Lovelace", "Bob Builder"}

    def test_unknown_sha(self, git_repo):
        with pytest.raises(SourceError):
            LocalGitCommitSource(git_repo).fetch_stats("0" * 40)

    def test_not_a_repository(self, tmp_path):
        with pytest.raises(SourceError, match="Not a git repository"):
            LocalGitCommitSource(tmp_path)

    def test_source_for_target(self, git_repo):
        assert isinstance(source_for_target(str(git_repo)), LocalGitCommitSource)
        assert isinstance(source_for_target("pallets/flask"), GitHubCommitSource)
        with pytest.raises(SourceError):
            source_for_target("not a target")


def test_missing_directory():
    with pytest.raises(SourceError, match="Not a directory"):
        LocalGitCommitSource("/nonexistent/path")


class TestGitHubPayloadErrors:
    @patch("httpx.Client.get")
    def test_non_json_body_is_source_error(self, mock_get):
        mock_get.return_value = httpx.Response(200, text="<html>gateway</html>")
        with pytest.raises(SourceError, match="non-JSON"):
            GitHubCommitSource("o", "r").fetch_stats("abc")

    @patch("httpx.Client.get")
    def test_non_object_detail_is_source_error(self, mock_get):
        mock_get.return_value = _response(payload=["not", "a", "commit"])
        with pytest.raises(SourceError, match="Unexpected"):
            GitHubCommitSource("o", "r").fetch_stats("abc")

    @patch("httpx.Client.get")
    def test_bad_detail_body_falls_back_to_estimate(self, mock_get):
        mock_get.return_value = httpx.Response(200, text="<html>gateway</html>")
        raw = RawCommit(sha="a" * 40, message="fix: login", author_name="Ada",
                        authored_at="2024-01-01T00:00:00Z")
        result = run_pipeline([raw], fetch_stats=GitHubCommitSource("o", "r").fetch_stats)
        assert len(result.commits) == 1
        assert result.commits[0].estimated is True

    @patch("httpx.Client.get")
    def test_non_list_page_is_source_error(self, mock_get):
        mock_get.return_value = _response(payload={"message": "odd"})
        with pytest.raises(SourceError):
            list(GitHubCommitSource("o", "r").iter_commits())


class TestSourceLifecycle:
    def test_context_manager_closes_client(self):
        with GitHubCommitSource("o", "r") as source:
            assert not source._client.is_closed
        assert source._client.is_closed

    def test_base_source_is_a_context_manager(self):
        with CommitSource() as source:
            assert source.describe() == {}
