"""Capability-based worker selection."""

from __future__ import annotations

from collections.abc import Iterable

from lumosgen.orchestrator.errors import NoEligibleWorker
from lumosgen.orchestrator.models import Task, Worker
from lumosgen.orchestrator.registry import WorkerRegistry

TASK_CAPABILITY_MAP: dict[str, frozenset[str]] = {
    "analyze": frozenset({"project-analysis", "code-review"}),
    "generate": frozenset({"content-generation", "template-processing"}),
    "build": frozenset({"website-building", "deployment"}),
    "monitor": frozenset({"performance-monitoring", "error-tracking"}),
}


def can_handle(worker: Worker, task_type: str, required_capabilities: Iterable[str] = ()) -> bool:
    """Return whether `worker` may take a task, ignoring its busy state.

    Explicit capabilities must all be present. Without them, the worker needs
    at least one capability from the task type's table entry; unknown task
    types match nothing.
    """

    required = frozenset(required_capabilities)
    if required:
        return required <= worker.capabilities
    mapped = TASK_CAPABILITY_MAP.get(task_type.strip().lower())
    if not mapped:
        return False
    return not mapped.isdisjoint(worker.capabilities)


class TaskRouter:
    """Pick the best idle worker for a task."""

    def __init__(self, registry: WorkerRegistry) -> None:
        self.registry = registry

    def eligible_workers(
        self,
        task_type: str,
        required_capabilities: Iterable[str] = (),
    ) -> list[Worker]:
        required = tuple(required_capabilities)
        candidates = [
            (position, worker)
            for position, worker in enumerate(self.registry.list())
            if worker.is_idle and can_handle(worker, task_type, required)
        ]
        candidates.sort(
            key=lambda pair: (pair[1].priority, -pair[1].metrics.success_rate, pair[0]),
        )
        return [worker for _, worker in candidates]

    def find_best_worker(
        self,
        task_type: str,
        required_capabilities: Iterable[str] = (),
    ) -> Worker | None:
        eligible = self.eligible_workers(task_type, required_capabilities)
        return eligible[0] if eligible else None

    def route(self, task: Task) -> Worker:
        worker = self.find_best_worker(task.type, task.required_capabilities)
        if worker is None:
            raise NoEligibleWorker(task.id, task.type, task.required_capabilities)
        return worker
