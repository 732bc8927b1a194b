"""Backend interface for text generation calls."""

from __future__ import annotations

from collections.abc import Awaitable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


@dataclass(slots=True, frozen=True)
class GenerationRequest:
    """Inputs required for one generation call."""

    prompt: str
    system_prompt: str | None = None
    model: str | None = None
    temperature: float = 0.7
    max_tokens: int = 2000
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_options(cls, prompt: str, options: dict[str, Any] | None = None) -> GenerationRequest:
        """Build a request from a free-form options mapping."""

        opts = dict(options or {})
        return cls(
            prompt=prompt,
            system_prompt=opts.pop("system_prompt", None),
            model=opts.pop("model", None),
            temperature=float(opts.pop("temperature", 0.7)),
            max_tokens=int(opts.pop("max_tokens", 2000)),
            options=opts,
        )


@dataclass(slots=True, frozen=True)
class GenerationResult:
    """Normalized response from any generation backend."""

    content: str
    provider: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    timestamp: datetime
    cost: float | None = None

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class GenerationBackend(Protocol):
    """Protocol implemented by generation backends.

    `generate` may be a coroutine function or a plain function; the provider
    chain normalizes both shapes into one awaited call.
    """

    name: str

    def generate(
        self,
        request: GenerationRequest,
    ) -> GenerationResult | Awaitable[GenerationResult]:
        """Run one generation call and return the normalized result."""
