"""Shared test fixtures."""

from __future__ import annotations

import os
from datetime import UTC, datetime

import pytest

from lumosgen.orchestrator.backend.base import GenerationRequest, GenerationResult
from lumosgen.orchestrator.errors import BackendCallError


class StaticBackend:
    """Synchronous backend returning a fixed reply and remembering prompts."""

    def __init__(self, name: str, content: str = "ok", *, cost: float | None = None) -> None:
        self.name = name
        self.content = content
        self.cost = cost
        self.prompts: list[str] = []

    def generate(self, request: GenerationRequest) -> GenerationResult:
        self.prompts.append(request.prompt)
        return GenerationResult(
            content=self.content,
            provider=self.name,
            model=f"{self.name}-model",
            prompt_tokens=10,
            completion_tokens=5,
            timestamp=datetime(2026, 3, 1, 12, 0, tzinfo=UTC),
            cost=self.cost,
        )


class FailingBackend:
    """Async backend that always raises."""

    def __init__(self, name: str, message: str = "boom", *, status_code: int | None = None):
        self.name = name
        self.message = message
        self.status_code = status_code
        self.calls = 0

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        self.calls += 1
        raise BackendCallError(self.message, provider=self.name, status_code=self.status_code)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    """Drop LUMOSGEN_* variables from the developer environment."""
    for name in list(os.environ):
        if name.startswith("LUMOSGEN_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def static_backend():
    return StaticBackend


@pytest.fixture()
def failing_backend():
    return FailingBackend
