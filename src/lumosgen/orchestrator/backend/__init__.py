"""Generation backend implementations."""

from lumosgen.orchestrator.backend.base import (
    GenerationBackend,
    GenerationRequest,
    GenerationResult,
)
from lumosgen.orchestrator.backend.http_backend import HttpChatBackend
from lumosgen.orchestrator.backend.mock_backend import MockBackend

__all__ = [
    "GenerationBackend",
    "GenerationRequest",
    "GenerationResult",
    "HttpChatBackend",
    "MockBackend",
]
