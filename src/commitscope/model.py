"""Ollama model client for repository questions.

Checks that the server and model are available, pulls the model on
request, and sends chat requests with a system prompt.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "qwen2.5-coder:7b"
OLLAMA_BASE_URL = "http://localhost:11434"
PULL_TIMEOUT = 600  # model downloads are slow
CHAT_TIMEOUT = 300


class ModelError(Exception):
    """Error communicating with the model."""


class OllamaClient:
    """Client for the Ollama REST API."""

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str = OLLAMA_BASE_URL,
    ):
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=CHAT_TIMEOUT)

    def is_ollama_running(self) -> bool:
        try:
            resp = self._client.get(f"{self.base_url}/api/tags", timeout=5)
            return resp.status_code == 200
        except (httpx.ConnectError, httpx.TimeoutException):
            return False

    def is_model_available(self) -> bool:
        """Check if the configured model is downloaded."""
        try:
            resp = self._client.get(f"{self.base_url}/api/tags", timeout=10)
        except httpx.HTTPError:
            return False
        if resp.status_code != 200:
            return False
        names = [m.get("name", "") for m in resp.json().get("models", [])]
        return any(
            self.model in (name, name.split(":")[0]) or f"{self.model}:latest" == name
            for name in names
        )

    def pull_model(self, progress_callback=None) -> bool:
        """Download the model. Returns True once it is available."""
        try:
            with self._client.stream(
                "POST",
                f"{self.base_url}/api/pull",
                json={"name": self.model},
                timeout=PULL_TIMEOUT,
            ) as resp:
                for line in resp.iter_lines():
                    if not line:
                        continue
                    try:
                        data = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    if progress_callback:
                        progress_callback(
                            data.get("status", ""),
                            data.get("completed", 0),
                            data.get("total", 0),
                        )
        except httpx.HTTPError as e:
            raise ModelError(f"Failed to pull model {self.model}: {e}")
        return self.is_model_available()

    def ensure_ready(self, pull: bool = False, progress_callback=None) -> None:
        """Raise ModelError unless the server is up and the model is present."""
        if not self.is_ollama_running():
            raise ModelError(
                f"Cannot connect to Ollama at {self.base_url}. Is it running? Try: ollama serve"
            )
        if self.is_model_available():
            return
        if not pull:
            raise ModelError(
                f"Model {self.model} is not installed. Run: ollama pull {self.model}"
            )
        logger.info("Pulling model %s", self.model)
        if not self.pull_model(progress_callback):
            raise ModelError(f"Model {self.model} is still unavailable after pulling")

    def chat(
        self,
        question: str,
        system: str = "",
        temperature: float = 0.3,
        max_tokens: int = 1000,
    ) -> str:
        """Send one question with a system prompt. Returns the reply text."""
        messages: list[dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": question})
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
                "num_predict": max_tokens,
            },
        }

        try:
            resp = self._client.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=CHAT_TIMEOUT,
            )
        except httpx.TimeoutException:
            raise ModelError(f"Model response timed out after {CHAT_TIMEOUT}s")
        except httpx.ConnectError:
            raise ModelError(
                "Cannot connect to Ollama. Is it running? Try: ollama serve"
            )

        if resp.status_code != 200:
            raise ModelError(f"Ollama returned {resp.status_code}: {resp.text[:200]}")
        message = resp.json().get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise ModelError("Unexpected response from model: no text content")
        return content
