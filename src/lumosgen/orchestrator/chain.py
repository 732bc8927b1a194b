"""Ordered provider fallback chain.

Each request sweeps the providers once, in order: the first success wins,
every failure is counted against its provider and the sweep moves on with no
delay and no retry of the same provider. Resilience comes from ending the
chain with a terminal provider that does not fail.
"""

from __future__ import annotations

import inspect
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from lumosgen.orchestrator.backend.base import (
    GenerationBackend,
    GenerationRequest,
    GenerationResult,
)
from lumosgen.orchestrator.errors import AllProvidersFailed, ProviderFailure
from lumosgen.orchestrator.failure_classifier import classify_provider_failure
from lumosgen.orchestrator.models import FailureClass
from lumosgen.orchestrator.usage import UsageMonitor

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    """Role of a provider inside the chain."""

    PRIMARY = "primary"
    FALLBACK = "fallback"
    TERMINAL = "terminal"


@dataclass(slots=True)
class Provider:
    """One chain link: a backend plus its failure bookkeeping."""

    backend: GenerationBackend
    kind: ProviderKind = ProviderKind.FALLBACK
    failure_count: int = 0
    success_count: int = 0
    last_error: str | None = None
    last_failure_class: FailureClass | None = None

    @property
    def name(self) -> str:
        return self.backend.name


@dataclass(slots=True, frozen=True)
class ProviderState:
    """Read-only view of a provider's counters."""

    name: str
    kind: ProviderKind
    failure_count: int
    success_count: int
    last_error: str | None
    last_failure_class: FailureClass | None


@dataclass(slots=True, frozen=True)
class ProviderAttempt:
    """Result-or-error variant for one backend call."""

    provider: str
    attempt_number: int
    elapsed_seconds: float
    result: GenerationResult | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.result is not None


@dataclass(slots=True, frozen=True)
class ChainResult:
    """Successful chain outcome with the provider that produced it."""

    result: GenerationResult
    used_provider: str
    attempt_number: int
    attempts: tuple[ProviderAttempt, ...]

    @property
    def content(self) -> str:
        return self.result.content


class ProviderChain:
    """Try generation backends in order until one succeeds."""

    def __init__(
        self,
        providers: Sequence[Provider],
        *,
        monitor: UsageMonitor | None = None,
    ) -> None:
        if not providers:
            raise ValueError("Provider chain requires at least one provider.")
        names = [provider.name for provider in providers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate provider names in chain: {', '.join(duplicates)}")
        for provider in providers[:-1]:
            if provider.kind is ProviderKind.TERMINAL:
                raise ValueError(
                    f"Terminal provider {provider.name!r} must be the last link of the chain.",
                )
        self._providers = list(providers)
        self.monitor = monitor

    @property
    def provider_names(self) -> tuple[str, ...]:
        return tuple(provider.name for provider in self._providers)

    def get(self, name: str) -> Provider:
        for provider in self._providers:
            if provider.name == name:
                return provider
        raise KeyError(f"Unknown provider: {name}")

    def states(self) -> list[ProviderState]:
        return [
            ProviderState(
                name=provider.name,
                kind=provider.kind,
                failure_count=provider.failure_count,
                success_count=provider.success_count,
                last_error=provider.last_error,
                last_failure_class=provider.last_failure_class,
            )
            for provider in self._providers
        ]

    def reset_failures(self, name: str | None = None) -> None:
        """Reset failure counters for one provider or the whole chain."""

        targets = [self.get(name)] if name is not None else self._providers
        for provider in targets:
            provider.failure_count = 0
            provider.last_error = None
            provider.last_failure_class = None

    async def aclose(self) -> None:
        """Close backends that hold pooled connections."""

        for provider in self._providers:
            close = getattr(provider.backend, "aclose", None)
            if close is not None:
                await close()

    async def generate(self, prompt: str, options: dict[str, Any] | None = None) -> ChainResult:
        """Run one sequential sweep over the chain.

        Raises:
            AllProvidersFailed: every provider raised; the message carries the
                last provider's error text.
        """

        request = GenerationRequest.from_options(prompt, options)
        attempts: list[ProviderAttempt] = []
        failures: list[ProviderFailure] = []
        for attempt_number, provider in enumerate(self._providers, start=1):
            attempt = await self._attempt(provider, request, attempt_number)
            attempts.append(attempt)
            if attempt.result is not None:
                if attempt_number > 1:
                    logger.info(
                        "Generated content with fallback provider %s (attempt %d)",
                        provider.name,
                        attempt_number,
                    )
                return ChainResult(
                    result=attempt.result,
                    used_provider=provider.name,
                    attempt_number=attempt_number,
                    attempts=tuple(attempts),
                )
            if attempt.error is None:
                continue
            failures.append(ProviderFailure(provider.name, attempt_number, attempt.error))

        logger.error(
            "All %d providers failed; last error from %s: %s",
            len(failures),
            failures[-1].provider,
            failures[-1].error,
        )
        raise AllProvidersFailed(failures)

    async def _attempt(
        self,
        provider: Provider,
        request: GenerationRequest,
        attempt_number: int,
    ) -> ProviderAttempt:
        started = time.perf_counter()
        try:
            outcome = provider.backend.generate(request)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            if not isinstance(outcome, GenerationResult):
                raise TypeError(
                    f"Backend {provider.name} returned {type(outcome).__name__}, "
                    "expected GenerationResult",
                )
        except Exception as error:  # noqa: BLE001
            elapsed = time.perf_counter() - started
            classification = classify_provider_failure(provider=provider.name, error=error)
            provider.failure_count += 1
            provider.last_error = str(error) or type(error).__name__
            provider.last_failure_class = classification.failure_class
            if self.monitor is not None:
                self.monitor.record_failure(provider.name, error, elapsed)
            logger.warning(
                "Provider %s failed (attempt %d, %s): %s",
                provider.name,
                attempt_number,
                classification.reason_code,
                error,
            )
            return ProviderAttempt(
                provider=provider.name,
                attempt_number=attempt_number,
                elapsed_seconds=elapsed,
                error=error,
            )

        elapsed = time.perf_counter() - started
        provider.success_count += 1
        if self.monitor is not None:
            self.monitor.record_success(provider.name, outcome, elapsed)
        return ProviderAttempt(
            provider=provider.name,
            attempt_number=attempt_number,
            elapsed_seconds=elapsed,
            result=outcome,
        )
