"""Deterministic terminal backend used as the last link of every chain.

The mock backend never raises: it picks a canned response from prompt
keywords and reports a token estimate, so a chain ending with it always
terminates with a result.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from lumosgen.orchestrator.backend.base import GenerationRequest, GenerationResult
from lumosgen.orchestrator.context import estimate_tokens

MOCK_MODEL = "mock-model"

_RESPONSES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("analyze", "analysis"),
        "## Project Analysis\n\n"
        "- Primary language and framework identified from project metadata.\n"
        "- Key features extracted from the README and documentation.\n"
        "- Recommendation: lead marketing copy with developer productivity.",
    ),
    (
        ("homepage", "landing page"),
        "# Ship Faster With Less Busywork\n\n"
        "Automate the repetitive parts of your workflow and focus on code.\n\n"
        "## Key Features\n\n- Smart project analysis\n- AI content generation\n"
        "- One-click publishing\n\n**Get started in minutes.**",
    ),
    (
        ("build", "website"),
        "Website structure prepared: home, about, features and FAQ pages "
        "with responsive layout and SEO metadata.",
    ),
    (
        ("monitor", "performance"),
        "Monitoring summary: all providers reachable, error rate within limits.",
    ),
    (
        ("faq", "questions"),
        "## Frequently Asked Questions\n\n"
        "**How do I install it?** Install from the marketplace and open your project.\n\n"
        "**Is it free?** The core features are open source.",
    ),
)

_GENERIC_RESPONSE = (
    "## Generated Content\n\n"
    "This response was produced by the offline fallback provider. Configure an "
    "API key for a network provider to enable full generation."
)


class MockBackend:
    """Offline backend with canned, keyword-selected responses."""

    def __init__(self, *, name: str = "mock", delay_seconds: float = 0.0) -> None:
        self.name = name
        self.delay_seconds = delay_seconds

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        content = _pick_response(request.prompt)
        prompt_text = " ".join(part for part in (request.system_prompt, request.prompt) if part)
        return GenerationResult(
            content=content,
            provider=self.name,
            model=request.model or MOCK_MODEL,
            prompt_tokens=estimate_tokens(prompt_text),
            completion_tokens=estimate_tokens(content),
            timestamp=datetime.now(tz=UTC),
            cost=0.0,
        )


def _pick_response(prompt: str) -> str:
    haystack = prompt.lower()
    for keywords, response in _RESPONSES:
        if any(keyword in haystack for keyword in keywords):
            return response
    return _GENERIC_RESPONSE
