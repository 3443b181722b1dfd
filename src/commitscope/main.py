"""commitscope CLI - commit history analytics for git repositories.

Usage:
    commitscope analyze <repo-path-or-url> [options]
    commitscope ask <repo-path-or-url> "<question>"
    commitscope serve [--port 8420] [--open]
"""

from __future__ import annotations

import json
import logging
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .analyzer import DETAIL_BUDGET, MAX_COMMITS, analyze_source
from .assistant import RepositoryAssistant
from .digest import (
    ChartFilter,
    category_breakdown,
    filter_result,
    generate_insights,
    insights_to_dicts,
    window_trend,
)
from .model import DEFAULT_MODEL, OLLAMA_BASE_URL, ModelError, OllamaClient
from .sources import LocalGitCommitSource, SourceError, parse_github_url, source_for_target

console = Console()

SEVERITY_STYLE = {"high": "red", "medium": "yellow", "low": "green"}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _clone_repo(url: str, dest: Path) -> Path:
    """Clone a git repository to dest. Returns clone path."""
    parsed = parse_github_url(url)
    clone_dir = dest / (parsed[1] if parsed else "repo")
    if parsed:
        url = f"https://github.com/{parsed[0]}/{parsed[1]}.git"

    console.print(f"  Cloning {url}...", style="dim")
    try:
        result = subprocess.run(
            ["git", "clone", "--single-branch", url, str(clone_dir)],
            capture_output=True, text=True, timeout=600,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        raise click.ClickException(f"Git clone failed: {e}")
    if result.returncode != 0:
        raise click.ClickException(f"Git clone failed: {result.stderr[:200]}")
    return clone_dir


@contextmanager
def _open_source(target: str, token: str | None, clone: bool):
    """Yield a commit source for target, cleaning up temporary clones."""
    tmpdir = None
    try:
        if clone and not Path(target).expanduser().is_dir():
            tmpdir = Path(tempfile.mkdtemp(prefix="commitscope-"))
            source = LocalGitCommitSource(_clone_repo(target, tmpdir))
        else:
            source = source_for_target(target, token=token)
        with source:
            yield source
    except SourceError as e:
        raise click.ClickException(str(e))
    finally:
        if tmpdir is not None:
            shutil.rmtree(tmpdir, ignore_errors=True)


@click.group()
@click.version_option(version=__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """commitscope - classify, chart and question a repository's commit history.

    Works on local clones and on GitHub repositories through the REST API.
    """
    _setup_logging(verbose)


@cli.command()
@click.argument("target", default=".")
@click.option("--detail-budget", "-d", default=DETAIL_BUDGET, show_default=True,
              help="Newest commits that get exact change stats")
@click.option("--max-commits", default=MAX_COMMITS, show_default=True,
              help="Ceiling for commits fetched from GitHub")
@click.option("--trend-window", default=None, type=int,
              help="Only show the last N complexity trend points")
@click.option("--since", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Only count commits on or after this day")
@click.option("--until", type=click.DateTime(formats=["%Y-%m-%d"]), default=None,
              help="Only count commits on or before this day")
@click.option("--author", "authors", multiple=True, help="Only count commits by this author (repeatable)")
@click.option("--min-complexity", default=0.0, type=click.FloatRange(0, 100),
              help="Only count commits at or above this complexity score")
@click.option("--json-only", is_flag=True, help="Output raw JSON to stdout (for piping)")
@click.option("--clone", is_flag=True, help="Clone GitHub repositories instead of using the API")
@click.option("--token", envvar="GITHUB_TOKEN", default=None, help="GitHub token (or GITHUB_TOKEN)")
def analyze(target: str, detail_budget: int, max_commits: int, trend_window: int | None,
            since, until, authors: tuple[str, ...], min_complexity: float,
            json_only: bool, clone: bool, token: str | None):
    """Analyze a repository's commit history.

    TARGET can be a local path, GitHub URL, or owner/repo shorthand.

    Examples:

        commitscope analyze .

        commitscope analyze https://github.com/pallets/flask

        commitscope analyze pallets/click --clone

        commitscope analyze . --since 2024-01-01 --author Ada --min-complexity 40
    """
    with _open_source(target, token, clone) as source:
        if json_only:
            result = analyze_source(source, detail_budget, max_commits)
        else:
            console.print()
            console.print(Panel.fit(
                f"[bold cyan]commitscope v{__version__}[/] - {source.name}",
                border_style="cyan",
            ))
            with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console) as progress:
                progress.add_task("Reading commit history...", total=None)
                result = analyze_source(source, detail_budget, max_commits)

    result = filter_result(result, ChartFilter(
        since=since.date() if since else None,
        until=until.date() if until else None,
        authors=authors,
        min_complexity=min_complexity,
    ))

    if json_only:
        data = result.to_dict()
        data["complexity_trend"] = [
            {"timestamp": p.timestamp, "complexity": p.complexity}
            for p in window_trend(result.complexity_trend, trend_window)
        ]
        data["insights"] = insights_to_dicts(generate_insights(result))
        click.echo(json.dumps(data, indent=2))
        return

    _print_result(result, trend_window)


@cli.command()
@click.argument("target")
@click.argument("question")
@click.option("--model", "-m", envvar="COMMITSCOPE_MODEL", default=DEFAULT_MODEL, help="Ollama model name")
@click.option("--ollama-url", envvar="OLLAMA_HOST", default=OLLAMA_BASE_URL, help="Ollama server URL")
@click.option("--pull", is_flag=True, help="Download the model if it is missing")
@click.option("--detail-budget", "-d", default=DETAIL_BUDGET, show_default=True)
@click.option("--clone", is_flag=True, help="Clone GitHub repositories instead of using the API")
@click.option("--token", envvar="GITHUB_TOKEN", default=None, help="GitHub token (or GITHUB_TOKEN)")
def ask(target: str, question: str, model: str, ollama_url: str, pull: bool,
        detail_budget: int, clone: bool, token: str | None):
    """Ask a free-text question about a repository's history.

    Example:

        commitscope ask . "Which areas changed most in the last year?"
    """
    client = OllamaClient(model=model, base_url=ollama_url)

    with Progress(SpinnerColumn(), TextColumn("{task.description}"), console=console) as progress:
        task = progress.add_task("Checking model...", total=None)

        def on_pull_progress(status, completed, total):
            progress.update(task, description=status)

        try:
            client.ensure_ready(pull=pull, progress_callback=on_pull_progress)
        except ModelError as e:
            raise click.ClickException(str(e))

        with _open_source(target, token, clone) as source:
            progress.update(task, description="Reading commit history...")
            result = analyze_source(source, detail_budget)
            try:
                facts = source.describe()
            except SourceError as e:
                raise click.ClickException(str(e))

        progress.update(task, description=f"Asking {model}...")
        try:
            answer = RepositoryAssistant(client).ask(result, question, source.name, facts)
        except (ModelError, ValueError) as e:
            raise click.ClickException(str(e))

    console.print()
    console.print(Panel(Markdown(answer.response), title=question, border_style="green"))
    console.print(f"[dim]Model: {answer.model_used} | Time: {answer.elapsed_seconds:.1f}s[/]")


@cli.command()
@click.option("--port", "-p", default=8420, show_default=True, help="Port to serve on")
@click.option("--open", "open_browser", is_flag=True, help="Open the dashboard in a browser")
@click.option("--model", "-m", envvar="COMMITSCOPE_MODEL", default=DEFAULT_MODEL, help="Ollama model name")
@click.option("--ollama-url", envvar="OLLAMA_HOST", default=OLLAMA_BASE_URL, help="Ollama server URL")
@click.option("--token", envvar="GITHUB_TOKEN", default=None, help="GitHub token (or GITHUB_TOKEN)")
def serve(port: int, open_browser: bool, model: str, ollama_url: str, token: str | None):
    """Start the local dashboard."""
    from .serve import start_server

    console.print(f"[bold cyan]commitscope dashboard[/] at http://localhost:{port}  (Ctrl+C to stop)")
    start_server(
        port=port,
        open_browser=open_browser,
        client=OllamaClient(model=model, base_url=ollama_url),
        github_token=token,
    )


@cli.command()
def version():
    """Show version information."""
    console.print(f"commitscope v{__version__}")


def _print_result(result, trend_window: int | None) -> None:
    """Print tables for authors, features, categories and insights."""
    commits = result.commits
    if not commits:
        console.print("[yellow]No commits found.[/]")
        return

    estimated = sum(1 for c in commits if c.estimated)
    console.print(
        f"\n[bold]{len(commits):,}[/] commits from {commits[0].timestamp[:10]} to "
        f"{commits[-1].timestamp[:10]} ({estimated:,} with estimated stats)"
    )

    authors = Table(title="Authors", border_style="dim")
    authors.add_column("Author", style="bold")
    authors.add_column("Commits", justify="right")
    authors.add_column("Lines changed", justify="right")
    for a in sorted(result.author_contributions, key=lambda a: -a.commit_count)[:15]:
        authors.add_row(a.author, f"{a.commit_count:,}", f"{a.total_lines_changed:,}")
    console.print(authors)

    features = Table(title="Business features", border_style="dim")
    features.add_column("Feature", style="bold")
    features.add_column("Commits", justify="right")
    features.add_column("Latest", justify="right")
    for f in sorted(result.business_features, key=lambda f: -len(f.commit_hashes)):
        features.add_row(f.feature, str(len(f.commit_hashes)), f.timestamps[0][:10])
    console.print(features)

    categories = Table(title="Commit categories", border_style="dim")
    categories.add_column("Category", style="bold")
    categories.add_column("Commits", justify="right")
    categories.add_column("%", justify="right")
    for c in category_breakdown(commits):
        categories.add_row(c["category"], str(c["commits"]), str(c["percentage"]))
    console.print(categories)

    trend = window_trend(result.complexity_trend, trend_window)
    average = sum(p.complexity for p in trend) / len(trend)
    console.print(f"Average complexity over {len(trend)} commits: [bold]{average:.1f}[/]")

    insights = generate_insights(result)
    if insights:
        console.print()
        console.print("[bold]Insights:[/]")
        for i in insights:
            style = SEVERITY_STYLE.get(i.severity, "white")
            console.print(f"  [{style}]{i.title}[/]: {i.description}")


if __name__ == "__main__":
    cli()
