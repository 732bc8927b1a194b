"""Domain models for workers, tasks and workflows."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from lumosgen.orchestrator.backend.base import GenerationResult
from lumosgen.orchestrator.context import AnalysisSnapshot, ContextSelection


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class WorkerStatus(str, Enum):
    """Worker runtime states."""

    IDLE = "idle"
    BUSY = "busy"


class WorkflowStatus(str, Enum):
    """Workflow lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    STOPPED = "stopped"


class FailureClass(str, Enum):
    """Normalized classes for provider errors, used for diagnostics."""

    TIMEOUT = "timeout"
    BACKEND_TRANSIENT = "backend_transient"
    BACKEND_NON_RETRYABLE = "backend_non_retryable"
    BILLING_OR_QUOTA = "billing_or_quota"
    ACCESS_OR_AUTH = "access_or_auth"
    MODEL_NOT_AVAILABLE = "model_not_available"


@dataclass(slots=True)
class WorkerMetrics:
    """Per-worker execution counters."""

    tasks_completed: int = 0
    tasks_failed: int = 0
    average_execution_time: float = 0.0
    success_rate: float = 1.0

    def record(self, *, success: bool, execution_time: float) -> None:
        """Fold one finished task into the counters."""

        if success:
            self.tasks_completed += 1
        else:
            self.tasks_failed += 1
        finished = self.tasks_completed + self.tasks_failed
        self.average_execution_time += (execution_time - self.average_execution_time) / finished
        self.success_rate = self.tasks_completed / finished


@dataclass(slots=True, frozen=True)
class TaskHistoryEntry:
    """Outcome of one task executed by a worker."""

    task_id: str
    task_type: str
    success: bool
    execution_time: float
    timestamp: datetime
    provider: str | None = None
    error: str | None = None


@dataclass(slots=True)
class Worker:
    """Named unit of execution limited to one active task at a time."""

    id: str
    capabilities: frozenset[str]
    priority: int
    name: str = ""
    status: WorkerStatus = WorkerStatus.IDLE
    metrics: WorkerMetrics = field(default_factory=WorkerMetrics)
    task_history: list[TaskHistoryEntry] = field(default_factory=list)

    @property
    def is_idle(self) -> bool:
        return self.status is WorkerStatus.IDLE


@dataclass(slots=True, frozen=True)
class Task:
    """Generation task submitted by the caller."""

    id: str
    type: str
    prompt: str
    required_capabilities: tuple[str, ...] = ()
    priority: int = 100
    context_type: str | None = None
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        """Build a task from a host-side JSON object."""

        task_id = raw.get("id")
        task_type = raw.get("type")
        if not isinstance(task_id, str) or not task_id.strip():
            raise ValueError("Task requires a non-empty string 'id'.")
        if not isinstance(task_type, str) or not task_type.strip():
            raise ValueError(f"Task {task_id!r} requires a non-empty string 'type'.")
        prompt = raw.get("prompt", raw.get("payload", ""))
        if not isinstance(prompt, str):
            raise ValueError(f"Task {task_id!r} prompt must be a string.")
        capabilities = raw.get("capabilities", raw.get("requiredCapabilities", ()))
        if isinstance(capabilities, str):
            capabilities = (capabilities,)
        if not isinstance(capabilities, list | tuple) or not all(
            isinstance(cap, str) for cap in capabilities
        ):
            raise ValueError(f"Task {task_id!r} requiredCapabilities must be a list of strings.")
        options = raw.get("options") or {}
        return cls(
            id=task_id.strip(),
            type=task_type.strip().lower(),
            prompt=prompt,
            required_capabilities=tuple(cap.strip() for cap in capabilities if cap.strip()),
            priority=int(raw.get("priority", 100)),
            context_type=raw.get("contextType"),
            options=dict(options),
        )


@dataclass(slots=True, frozen=True)
class TaskOutcome:
    """Successful result of one task."""

    task_id: str
    worker_id: str
    result: GenerationResult
    used_provider: str
    attempt_number: int
    execution_time: float
    context: ContextSelection | None = None


@dataclass(slots=True)
class Workflow:
    """Ordered set of tasks executed to produce a composite result."""

    id: str
    tasks: list[Task]
    analysis: AnalysisSnapshot | None = None
    status: WorkflowStatus = WorkflowStatus.PENDING
    results: list[TaskOutcome] = field(default_factory=list)
    stop_requested: bool = False


@dataclass(slots=True, frozen=True)
class WorkflowResult:
    """Aggregated result of a completed workflow."""

    workflow_id: str
    results: tuple[TaskOutcome, ...]
    total_time: float

    @property
    def tasks_completed(self) -> int:
        return len(self.results)
