"""Repository question answering.

Builds a digest from an AggregateResult, renders it into prompts and
asks the model. The result carries the digest so callers can show what
the model saw.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

from .analyzer import AggregateResult
from .digest import build_digest
from .model import OllamaClient
from .prompts import question_prompt, repository_context_prompt


@dataclass
class Answer:
    question: str
    response: str
    model_used: str = ""
    elapsed_seconds: float = 0.0
    context: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "response": self.response,
            "model_used": self.model_used,
            "elapsed_seconds": round(self.elapsed_seconds, 1),
            "context": self.context,
        }


class RepositoryAssistant:
    """Answers free-text questions about an analyzed repository."""

    def __init__(self, client: OllamaClient):
        self.client = client

    def ask(
        self,
        result: AggregateResult,
        question: str,
        name: str,
        facts: dict[str, Any] | None = None,
    ) -> Answer:
        if not question or not question.strip():
            raise ValueError("Query is required")

        start = time.time()
        digest = build_digest(result, name, facts)
        response = self.client.chat(
            question_prompt(question),
            system=repository_context_prompt(digest),
        )
        return Answer(
            question=question.strip(),
            response=response.strip(),
            model_used=self.client.model,
            elapsed_seconds=time.time() - start,
            context=digest,
        )
