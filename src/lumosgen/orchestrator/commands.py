"""Host command boundary and the session handle that owns orchestrator state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import assert_never

import httpx

from lumosgen.config import Settings
from lumosgen.orchestrator.backend.http_backend import HttpChatBackend
from lumosgen.orchestrator.backend.mock_backend import MockBackend
from lumosgen.orchestrator.chain import Provider, ProviderChain, ProviderKind, ProviderState
from lumosgen.orchestrator.context import AnalysisSnapshot, ContextSelector
from lumosgen.orchestrator.engine import WorkflowEngine
from lumosgen.orchestrator.events import OrchestratorObserver
from lumosgen.orchestrator.models import Task, Worker, Workflow, WorkflowResult
from lumosgen.orchestrator.registry import SystemMetrics, WorkerRegistry
from lumosgen.orchestrator.routing import TaskRouter
from lumosgen.orchestrator.usage import HealthReport, UsageMonitor

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class GenerateContent:
    """Run a workflow built from the given tasks."""

    workflow_id: str
    tasks: tuple[Task, ...]
    analysis: AnalysisSnapshot | None = None
    parallel: bool = False


@dataclass(slots=True, frozen=True)
class StopWorkflow:
    workflow_id: str


@dataclass(slots=True, frozen=True)
class GetStatus:
    pass


HostCommand = GenerateContent | StopWorkflow | GetStatus


@dataclass(slots=True, frozen=True)
class StatusReport:
    """Point-in-time view of workers, providers and usage."""

    workers: tuple[Worker, ...]
    system: SystemMetrics
    providers: tuple[ProviderState, ...]
    health: HealthReport
    total_cost: float
    running_workflows: tuple[str, ...] = field(default_factory=tuple)


@dataclass(slots=True)
class OrchestratorSession:
    """Explicit handle over every piece of orchestrator state."""

    settings: Settings
    registry: WorkerRegistry
    router: TaskRouter
    selector: ContextSelector
    chain: ProviderChain
    monitor: UsageMonitor
    engine: WorkflowEngine

    async def dispatch(self, command: HostCommand) -> WorkflowResult | bool | StatusReport:
        return await CommandDispatcher(self).dispatch(command)

    async def aclose(self) -> None:
        await self.chain.aclose()


class CommandDispatcher:
    """Exhaustive dispatch of host commands onto a session."""

    def __init__(self, session: OrchestratorSession) -> None:
        self.session = session

    async def dispatch(self, command: HostCommand) -> WorkflowResult | bool | StatusReport:
        if isinstance(command, GenerateContent):
            return await self.generate_content(command)
        if isinstance(command, StopWorkflow):
            return self.session.engine.stop_workflow(command.workflow_id)
        if isinstance(command, GetStatus):
            return self.status()
        assert_never(command)

    async def generate_content(self, command: GenerateContent) -> WorkflowResult:
        workflow = Workflow(
            id=command.workflow_id,
            tasks=list(command.tasks),
            analysis=command.analysis,
        )
        return await self.session.engine.execute_workflow(workflow, parallel=command.parallel)

    def status(self) -> StatusReport:
        session = self.session
        return StatusReport(
            workers=tuple(session.registry.list()),
            system=session.registry.system_metrics(),
            providers=tuple(session.chain.states()),
            health=session.monitor.health_check(),
            total_cost=session.monitor.get_total_cost(),
            running_workflows=tuple(
                workflow.id for workflow in session.engine.running_workflows()
            ),
        )


def build_chain(
    settings: Settings,
    *,
    monitor: UsageMonitor | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderChain:
    """Build the provider chain from configured providers, mock last."""

    providers: list[Provider] = []
    for name in settings.active_providers():
        if name == "mock":
            backend = MockBackend(delay_seconds=settings.chain.mock_delay_seconds)
            providers.append(Provider(backend=backend, kind=ProviderKind.TERMINAL))
            continue
        provider_settings = settings.chain.provider(name)
        if provider_settings is None:
            raise ValueError(f"Unknown provider {name!r}")
        providers.append(
            Provider(
                backend=HttpChatBackend(
                    name=name,
                    endpoint=provider_settings.endpoint,
                    api_key=provider_settings.api_key,
                    model=provider_settings.model,
                    timeout_seconds=settings.chain.request_timeout_seconds,
                    transport=transport,
                ),
                kind=ProviderKind.PRIMARY if not providers else ProviderKind.FALLBACK,
            ),
        )
    logger.info("Provider chain: %s", " -> ".join(provider.name for provider in providers))
    return ProviderChain(providers, monitor=monitor)


def build_session(
    settings: Settings | None = None,
    observer: OrchestratorObserver | None = None,
    *,
    registry: WorkerRegistry | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> OrchestratorSession:
    """Wire a session from configuration; the default roster when no registry is given."""

    settings = settings or Settings.from_env()
    settings.validate()
    registry = registry or WorkerRegistry.with_default_workers()
    monitor = UsageMonitor(
        health_window=settings.monitor.health_window,
        degraded_error_rate=settings.monitor.degraded_error_rate,
        unhealthy_error_rate=settings.monitor.unhealthy_error_rate,
        daily_cost_alert_usd=settings.monitor.daily_cost_alert_usd,
        total_cost_alert_usd=settings.monitor.total_cost_alert_usd,
    )
    chain = build_chain(settings, monitor=monitor, transport=transport)
    router = TaskRouter(registry)
    selector = ContextSelector(default_max_tokens=settings.context.max_tokens)
    engine = WorkflowEngine(
        registry=registry,
        chain=chain,
        selector=selector,
        router=router,
        monitor=monitor,
        observer=observer,
    )
    return OrchestratorSession(
        settings=settings,
        registry=registry,
        router=router,
        selector=selector,
        chain=chain,
        monitor=monitor,
        engine=engine,
    )
