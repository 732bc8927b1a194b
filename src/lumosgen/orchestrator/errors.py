"""Error taxonomy for routing, generation and workflow execution."""

from __future__ import annotations


class OrchestratorError(RuntimeError):
    """Base class for all orchestrator failures surfaced to callers."""


class WorkerNotFound(OrchestratorError):
    """Raised when a worker id is not registered."""

    def __init__(self, worker_id: str) -> None:
        super().__init__(f"Worker not found: {worker_id}")
        self.worker_id = worker_id


class WorkerBusy(OrchestratorError):
    """Raised when a task is assigned to a worker that already runs one."""

    def __init__(self, worker_id: str) -> None:
        super().__init__(f"Worker {worker_id} is currently busy")
        self.worker_id = worker_id


class NoEligibleWorker(OrchestratorError):
    """Raised when no idle worker satisfies the task's capability requirement."""

    def __init__(self, task_id: str, task_type: str, required: tuple[str, ...] = ()) -> None:
        detail = f" (required capabilities: {', '.join(required)})" if required else ""
        super().__init__(
            f"No suitable worker found for task {task_id} of type {task_type!r}{detail}",
        )
        self.task_id = task_id
        self.task_type = task_type
        self.required = required


class BackendCallError(OrchestratorError):
    """Provider-specific failure raised by a generation backend."""

    def __init__(self, message: str, *, provider: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderFailure(OrchestratorError):
    """One failed provider attempt, recovered inside the provider chain."""

    def __init__(self, provider: str, attempt_number: int, error: BaseException) -> None:
        super().__init__(f"Provider {provider} failed on attempt {attempt_number}: {error}")
        self.provider = provider
        self.attempt_number = attempt_number
        self.error = error


class AllProvidersFailed(OrchestratorError):
    """Raised when every provider of the chain failed for one request."""

    def __init__(self, failures: list[ProviderFailure]) -> None:
        last = failures[-1] if failures else None
        detail = f" Last error ({last.provider}): {last.error}" if last is not None else ""
        super().__init__(f"All providers failed to generate content.{detail}")
        self.failures = failures
        self.last_error: BaseException | None = last.error if last is not None else None


class WorkflowAborted(OrchestratorError):
    """Fail-fast propagation of a task failure out of a workflow."""

    def __init__(
        self,
        message: str,
        *,
        workflow_id: str,
        task_id: str | None = None,
        worker_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.workflow_id = workflow_id
        self.task_id = task_id
        self.worker_id = worker_id
        self.cause = cause


class WorkflowStopped(WorkflowAborted):
    """Raised when a workflow was stopped before all tasks were dispatched."""
