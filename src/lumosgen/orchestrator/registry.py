"""In-memory worker registry with the default content-generation roster."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from lumosgen.orchestrator.errors import WorkerBusy, WorkerNotFound
from lumosgen.orchestrator.models import Worker, WorkerMetrics, WorkerStatus

logger = logging.getLogger(__name__)

DEFAULT_WORKERS: tuple[tuple[str, str, int, tuple[str, ...]], ...] = (
    (
        "content-analyzer",
        "Content Analyzer",
        1,
        ("project-analysis", "code-review", "dependency-analysis"),
    ),
    (
        "content-generator",
        "Content Generator",
        2,
        ("content-generation", "template-processing", "markdown-generation"),
    ),
    (
        "website-builder",
        "Website Builder",
        3,
        ("website-building", "deployment", "theme-application"),
    ),
    (
        "performance-monitor",
        "Performance Monitor",
        4,
        ("performance-monitoring", "error-tracking", "analytics"),
    ),
)


@dataclass(slots=True, frozen=True)
class SystemMetrics:
    total_workers: int
    active_workers: int
    total_tasks_completed: int
    average_success_rate: float


class WorkerRegistry:
    """Owns worker records; iteration follows registration order."""

    def __init__(self, workers: Iterable[Worker] = ()) -> None:
        self._workers: dict[str, Worker] = {}
        for worker in workers:
            self.register(worker)

    @classmethod
    def with_default_workers(cls) -> WorkerRegistry:
        """Build the four-worker roster: analyzer, generator, builder, monitor."""

        return cls(
            Worker(
                id=worker_id,
                name=name,
                priority=priority,
                capabilities=frozenset(capabilities),
            )
            for worker_id, name, priority, capabilities in DEFAULT_WORKERS
        )

    def register(self, worker: Worker) -> None:
        if worker.id in self._workers:
            raise ValueError(f"Worker already registered: {worker.id}")
        self._workers[worker.id] = worker
        logger.debug("Registered worker %s (priority %d)", worker.id, worker.priority)

    def unregister(self, worker_id: str) -> None:
        if self._workers.pop(worker_id, None) is not None:
            logger.debug("Unregistered worker %s", worker_id)

    def get(self, worker_id: str) -> Worker:
        worker = self._workers.get(worker_id)
        if worker is None:
            raise WorkerNotFound(worker_id)
        return worker

    def list(self) -> list[Worker]:
        return list(self._workers.values())

    def __len__(self) -> int:
        return len(self._workers)

    def __contains__(self, worker_id: object) -> bool:
        return worker_id in self._workers

    def claim(self, worker_id: str) -> Worker:
        """Move an idle worker to busy.

        The check and the transition happen in one synchronous step, so two
        coroutines can never both claim the same worker.

        Raises:
            WorkerNotFound: unknown id.
            WorkerBusy: the worker is already executing a task.
        """

        worker = self.get(worker_id)
        if worker.status is WorkerStatus.BUSY:
            raise WorkerBusy(worker_id)
        worker.status = WorkerStatus.BUSY
        return worker

    def release(self, worker_id: str) -> None:
        worker = self._workers.get(worker_id)
        if worker is not None:
            worker.status = WorkerStatus.IDLE

    def reset(self) -> None:
        """Return every worker to idle with zeroed metrics and empty history."""

        for worker in self._workers.values():
            worker.status = WorkerStatus.IDLE
            worker.metrics = WorkerMetrics()
            worker.task_history.clear()

    def system_metrics(self) -> SystemMetrics:
        workers = self.list()
        if not workers:
            return SystemMetrics(0, 0, 0, 0.0)
        return SystemMetrics(
            total_workers=len(workers),
            active_workers=sum(1 for worker in workers if not worker.is_idle),
            total_tasks_completed=sum(worker.metrics.tasks_completed for worker in workers),
            average_success_rate=(
                sum(worker.metrics.success_rate for worker in workers) / len(workers)
            ),
        )
