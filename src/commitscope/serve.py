"""Local HTTP server for the commitscope dashboard.

Serves the dashboard HTML and a small JSON API for managing repositories,
running analyses and asking questions about them.
"""

from __future__ import annotations

import datetime
import json
import logging
import threading
import webbrowser
from functools import partial
from http.server import HTTPServer, SimpleHTTPRequestHandler
from pathlib import Path
from typing import Any
from urllib.parse import parse_qs, unquote, urlparse

from .analyzer import DETAIL_BUDGET, analyze_source
from .assistant import RepositoryAssistant
from .digest import (
    ChartFilter,
    filter_result,
    generate_insights,
    insights_to_dicts,
    window_trend,
)
from .model import ModelError, OllamaClient
from .sources import SourceError
from .store import RepositoryEntry, RepositoryStore, repository_store

logger = logging.getLogger(__name__)

DASHBOARD_TEMPLATE = Path(__file__).parent / "templates" / "dashboard.html"
MAX_BODY = 64 * 1024


class DashboardHandler(SimpleHTTPRequestHandler):
    """HTTP handler for the dashboard page and its JSON API."""

    def __init__(
        self,
        *args,
        store: RepositoryStore,
        dashboard_html: str,
        client: OllamaClient,
        github_token: str | None = None,
        detail_budget: int = DETAIL_BUDGET,
        **kwargs,
    ):
        self._store = store
        self._dashboard_html = dashboard_html
        self._client = client
        self._token = github_token
        self._detail_budget = detail_budget
        super().__init__(*args, **kwargs)

    # --- routing ---

    def do_GET(self):
        url = urlparse(self.path)
        if url.path in ("/", "/index.html"):
            self._send_html(self._dashboard_html)
        elif url.path == "/api/repositories":
            self._send_json({"repositories": [e.to_dict() for e in self._store.all()]})
        elif url.path.startswith("/api/analyze/"):
            self._guarded(self._analyze, _tail(url.path, "/api/analyze/"), parse_qs(url.query))
        else:
            self._send_error_json(404, "Not found")

    def do_POST(self):
        url = urlparse(self.path)
        if url.path == "/api/repositories":
            self._guarded(self._add_repository)
        elif url.path.startswith("/api/query/"):
            self._guarded(self._query, _tail(url.path, "/api/query/"))
        else:
            self._send_error_json(404, "Not found")

    def do_DELETE(self):
        url = urlparse(self.path)
        if url.path.startswith("/api/repositories/"):
            self._delete_repository(_tail(url.path, "/api/repositories/"))
        else:
            self._send_error_json(404, "Not found")

    def _guarded(self, handler, *args):
        try:
            handler(*args)
        except Exception:
            logger.exception("Request failed: %s %s", self.command, self.path)
            self._send_error_json(500, "Internal server error")

    # --- endpoints ---

    def _add_repository(self):
        body = self._read_json()
        if body is None:
            return
        repo_url = body.get("repo_url")
        path = body.get("path")

        if isinstance(repo_url, str) and repo_url.strip():
            entry = RepositoryEntry.from_github_url(repo_url.strip())
            if entry is None:
                self._send_error_json(400, "Invalid GitHub repository URL")
                return
        elif isinstance(path, str) and path.strip():
            if not Path(path).expanduser().is_dir():
                self._send_error_json(400, f"Not a directory: {path}")
                return
            entry = RepositoryEntry.from_path(path)
        else:
            self._send_error_json(400, "Repository URL or path is required")
            return

        existing = self._store.find(entry.key)
        if existing is not None:
            self._send_json({
                "success": True,
                "already_exists": True,
                "repository": existing.to_dict(),
                "message": f'Repository "{existing.full_name}" already added',
            })
            return

        try:
            with entry.open_source(self._token) as source:
                facts = source.describe()
        except SourceError as e:
            logger.warning("Rejected repository %s: %s", entry.full_name, e)
            self._send_error_json(404, f"Repository not found or not accessible: {e}")
            return

        self._store.add(entry)
        logger.info("Added repository %s", entry.full_name)
        self._send_json({
            "success": True,
            "already_exists": False,
            "repository": entry.to_dict(),
            "facts": facts,
            "message": f'Repository "{entry.full_name}" added successfully',
        }, status=201)

    def _delete_repository(self, repo_id: str):
        entry = self._store.find_by_id(repo_id)
        if entry is None or not self._store.remove(entry.key):
            self._send_error_json(404, "Repository not found")
            return
        self._send_json({
            "success": True,
            "message": f'Repository "{entry.full_name}" removed',
        })

    def _analyze(self, repo_id: str, query: dict[str, list[str]]):
        entry = self._store.find_by_id(repo_id)
        if entry is None:
            self._send_error_json(404, "Repository not found")
            return

        window = None
        if query.get("trend_window"):
            try:
                window = int(query["trend_window"][0])
            except ValueError:
                self._send_error_json(400, "trend_window must be an integer")
                return
        try:
            chart_filter = chart_filter_from_query(query)
        except ValueError as e:
            self._send_error_json(400, str(e))
            return

        try:
            with entry.open_source(self._token) as source:
                result = analyze_source(source, self._detail_budget)
        except SourceError as e:
            logger.error("Analysis of %s failed: %s", entry.full_name, e)
            self._send_error_json(502, f"Failed to analyze repository: {e}")
            return

        total = len(result.commits)
        result = filter_result(result, chart_filter)
        data = result.to_dict()
        data["unfiltered_commits"] = total
        data["complexity_trend"] = [
            {"timestamp": p.timestamp, "complexity": p.complexity}
            for p in window_trend(result.complexity_trend, window)
        ]
        data["insights"] = insights_to_dicts(generate_insights(result))
        self._send_json(data)

    def _query(self, repo_id: str):
        body = self._read_json()
        if body is None:
            return
        question = body.get("query")
        if not isinstance(question, str) or not question.strip():
            self._send_error_json(400, "Query is required")
            return

        entry = self._store.find_by_id(repo_id)
        if entry is None:
            self._send_error_json(404, "Repository not found")
            return

        try:
            with entry.open_source(self._token) as source:
                result = analyze_source(source, self._detail_budget)
                facts = source.describe()
        except SourceError as e:
            logger.error("Query analysis of %s failed: %s", entry.full_name, e)
            self._send_error_json(502, f"Failed to analyze repository: {e}")
            return

        try:
            answer = RepositoryAssistant(self._client).ask(
                result, question, entry.full_name, facts
            )
        except ModelError as e:
            logger.error("Model query failed: %s", e)
            self._send_error_json(503, str(e))
            return

        self._send_json({"success": True, **answer.to_dict()})

    # --- helpers ---

    def _read_json(self) -> dict[str, Any] | None:
        try:
            length = int(self.headers.get("Content-Length") or 0)
        except ValueError:
            length = -1
        if length < 0:
            self._send_error_json(400, "Invalid Content-Length header")
            return None
        if length > MAX_BODY:
            self._send_error_json(413, "Request body too large")
            return None
        raw = self.rfile.read(length) if length else b""
        try:
            body = json.loads(raw or b"{}")
        except json.JSONDecodeError:
            self._send_error_json(400, "Request body must be JSON")
            return None
        if not isinstance(body, dict):
            self._send_error_json(400, "Request body must be a JSON object")
            return None
        return body

    def _send_html(self, html: str):
        content = html.encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def _send_json(self, data: Any, status: int = 200):
        content = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(content)))
        self.end_headers()
        self.wfile.write(content)

    def _send_error_json(self, status: int, message: str):
        self._send_json({"error": message}, status=status)

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


def _tail(path: str, prefix: str) -> str:
    return unquote(path[len(prefix):].strip("/"))


def _query_date(query: dict[str, list[str]], name: str) -> datetime.date | None:
    value = (query.get(name) or [""])[0]
    if not value:
        return None
    try:
        return datetime.date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"{name} must be a YYYY-MM-DD date")


def chart_filter_from_query(query: dict[str, list[str]]) -> ChartFilter:
    """Build a ChartFilter from since, until, author (repeatable) and min_complexity."""
    min_complexity = 0.0
    if query.get("min_complexity"):
        try:
            min_complexity = float(query["min_complexity"][0])
        except ValueError:
            raise ValueError("min_complexity must be a number")
    return ChartFilter(
        since=_query_date(query, "since"),
        until=_query_date(query, "until"),
        authors=tuple(a for a in query.get("author", []) if a),
        min_complexity=min_complexity,
    )


def create_server(
    port: int = 8420,
    store: RepositoryStore | None = None,
    client: OllamaClient | None = None,
    github_token: str | None = None,
    detail_budget: int = DETAIL_BUDGET,
    host: str = "127.0.0.1",
) -> HTTPServer:
    """Build the dashboard server without starting it."""
    handler = partial(
        DashboardHandler,
        store=store if store is not None else repository_store,
        dashboard_html=DASHBOARD_TEMPLATE.read_text(),
        client=client or OllamaClient(),
        github_token=github_token,
        detail_budget=detail_budget,
    )
    HTTPServer.allow_reuse_address = True
    return HTTPServer((host, port), handler)


def start_server(
    port: int = 8420,
    open_browser: bool = False,
    **kwargs,
) -> None:
    """Start the dashboard server and block until interrupted.

    Args:
        port: Port to serve on
        open_browser: Whether to auto-open in browser
        **kwargs: Passed through to create_server()
    """
    server = create_server(port=port, **kwargs)
    url = f"http://localhost:{server.server_address[1]}"
    logger.info("Dashboard running at %s", url)

    if open_browser:
        threading.Timer(0.5, lambda: webbrowser.open(url)).start()

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.server_close()
