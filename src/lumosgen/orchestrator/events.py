"""Typed observer interface for orchestration events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from lumosgen.orchestrator.models import TaskOutcome
from lumosgen.orchestrator.usage import HealthReport, ProviderUsageStats


@dataclass(slots=True, frozen=True)
class TaskCompleted:
    name = "task:complete"

    worker_id: str
    task_id: str
    result: TaskOutcome
    execution_time: float


@dataclass(slots=True, frozen=True)
class TaskFailed:
    name = "task:error"

    worker_id: str
    task_id: str
    error: BaseException


@dataclass(slots=True, frozen=True)
class WorkflowCompleted:
    name = "workflow:complete"

    workflow_id: str
    results: tuple[TaskOutcome, ...]
    total_time: float


@dataclass(slots=True, frozen=True)
class WorkflowFailed:
    name = "workflow:error"

    workflow_id: str
    error: BaseException


@dataclass(slots=True, frozen=True)
class UsageUpdated:
    name = "usage:update"

    stats: dict[str, ProviderUsageStats]
    health: HealthReport
    total_cost: float


OrchestratorEvent = TaskCompleted | TaskFailed | WorkflowCompleted | WorkflowFailed | UsageUpdated


class OrchestratorObserver(Protocol):
    """Receives engine events; implementations must not raise."""

    def on_task_complete(self, event: TaskCompleted) -> None: ...

    def on_task_error(self, event: TaskFailed) -> None: ...

    def on_workflow_complete(self, event: WorkflowCompleted) -> None: ...

    def on_workflow_error(self, event: WorkflowFailed) -> None: ...

    def on_usage_update(self, event: UsageUpdated) -> None: ...


class NullObserver:
    """Observer that ignores every event. Subclass to handle a subset."""

    def on_task_complete(self, event: TaskCompleted) -> None:
        return None

    def on_task_error(self, event: TaskFailed) -> None:
        return None

    def on_workflow_complete(self, event: WorkflowCompleted) -> None:
        return None

    def on_workflow_error(self, event: WorkflowFailed) -> None:
        return None

    def on_usage_update(self, event: UsageUpdated) -> None:
        return None


@dataclass(slots=True)
class RecordingObserver:
    """Keep every event in arrival order."""

    events: list[OrchestratorEvent] = field(default_factory=list)

    def on_task_complete(self, event: TaskCompleted) -> None:
        self.events.append(event)

    def on_task_error(self, event: TaskFailed) -> None:
        self.events.append(event)

    def on_workflow_complete(self, event: WorkflowCompleted) -> None:
        self.events.append(event)

    def on_workflow_error(self, event: WorkflowFailed) -> None:
        self.events.append(event)

    def on_usage_update(self, event: UsageUpdated) -> None:
        self.events.append(event)

    def names(self) -> list[str]:
        return [event.name for event in self.events]

    def of_type(self, event_type: type[Any]) -> list[Any]:
        return [event for event in self.events if isinstance(event, event_type)]
