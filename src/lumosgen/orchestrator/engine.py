"""Workflow execution over the worker registry and the provider chain.

A task claims its worker, selects project context, composes the prompt, runs
one provider-chain sweep and releases the worker. Workflows run their tasks
in submission order and abort on the first failure; an opt-in parallel mode
dispatches every routable task at once and reports results in submission
order.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Callable, Mapping
from typing import Any

from lumosgen.orchestrator.chain import ProviderChain
from lumosgen.orchestrator.context import AnalysisSnapshot, ContextSelection, ContextSelector
from lumosgen.orchestrator.errors import NoEligibleWorker, WorkflowAborted, WorkflowStopped
from lumosgen.orchestrator.events import (
    NullObserver,
    OrchestratorObserver,
    TaskCompleted,
    TaskFailed,
    UsageUpdated,
    WorkflowCompleted,
    WorkflowFailed,
)
from lumosgen.orchestrator.models import (
    Task,
    TaskHistoryEntry,
    TaskOutcome,
    Worker,
    Workflow,
    WorkflowResult,
    WorkflowStatus,
    utc_now,
)
from lumosgen.orchestrator.registry import WorkerRegistry
from lumosgen.orchestrator.routing import TaskRouter
from lumosgen.orchestrator.usage import UsageMonitor

logger = logging.getLogger(__name__)

TASK_CONTEXT_TYPES: dict[str, str] = {
    "analyze": "project-analysis",
    "generate": "marketing-content",
    "build": "general",
    "monitor": "general",
}
DEFAULT_CONTEXT_TYPE = "general"
TASK_RESULT_REFERENCE = re.compile(r"\{taskResult:([\w.-]+)\}")


def resolve_task_references(prompt: str, completed: Mapping[str, TaskOutcome]) -> str:
    """Replace `{taskResult:<id>}` with the content of a completed task.

    References to tasks that have not completed are left as written.
    """

    def _substitute(match: re.Match[str]) -> str:
        outcome = completed.get(match.group(1))
        return match.group(0) if outcome is None else outcome.result.content

    return TASK_RESULT_REFERENCE.sub(_substitute, prompt)


def compose_prompt(prompt: str, selection: ContextSelection | None) -> str:
    """Append the selected project context to a task prompt."""

    if selection is None or not selection.selected_items:
        return prompt
    lines = [prompt.rstrip(), "", "## Project context"]
    for item in selection.selected_items:
        lines.extend(["", f"### {item.source}", item.content.strip()])
    return "\n".join(lines)


class WorkflowEngine:
    """Executes tasks and workflows; the only writer of worker state."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        registry: WorkerRegistry,
        chain: ProviderChain,
        selector: ContextSelector | None = None,
        router: TaskRouter | None = None,
        monitor: UsageMonitor | None = None,
        observer: OrchestratorObserver | None = None,
    ) -> None:
        self.registry = registry
        self.chain = chain
        self.selector = selector or ContextSelector()
        self.router = router or TaskRouter(registry)
        self.monitor = monitor if monitor is not None else chain.monitor
        self.observer: OrchestratorObserver = observer or NullObserver()
        self._running: dict[str, Workflow] = {}

    def context_type_for(self, task: Task) -> str:
        if task.context_type:
            return task.context_type
        return TASK_CONTEXT_TYPES.get(task.type, DEFAULT_CONTEXT_TYPE)

    def running_workflows(self) -> list[Workflow]:
        return list(self._running.values())

    async def execute_task(
        self,
        worker_id: str,
        task: Task,
        analysis: AnalysisSnapshot | None = None,
    ) -> TaskOutcome:
        """Run one task on a specific worker.

        Raises:
            WorkerNotFound: unknown worker id.
            WorkerBusy: the worker already runs a task.
            AllProvidersFailed: every provider failed for the composed prompt.
        """

        worker = self.registry.claim(worker_id)
        return await self._execute_claimed(worker, task, analysis)

    async def execute_workflow(
        self,
        workflow: Workflow,
        *,
        parallel: bool = False,
    ) -> WorkflowResult:
        """Run every task of `workflow` and aggregate the results.

        Raises:
            WorkflowAborted: a task could not be routed or failed; the
                remaining tasks were not attempted.
            WorkflowStopped: `stop_workflow` was called before every task was
                dispatched.
        """

        if workflow.id in self._running:
            raise ValueError(f"Workflow {workflow.id} is already running")
        self._running[workflow.id] = workflow
        workflow.status = WorkflowStatus.RUNNING
        workflow.stop_requested = False
        workflow.results.clear()
        logger.info(
            "Starting workflow %s with %d tasks (%s)",
            workflow.id,
            len(workflow.tasks),
            "parallel" if parallel else "sequential",
        )
        started = time.perf_counter()
        try:
            if parallel:
                outcomes = await self._run_parallel(workflow)
            else:
                outcomes = await self._run_sequential(workflow)
        except WorkflowAborted as aborted:
            workflow.status = (
                WorkflowStatus.STOPPED
                if isinstance(aborted, WorkflowStopped)
                else WorkflowStatus.FAILED
            )
            workflow.results.clear()
            logger.error("Workflow %s %s: %s", workflow.id, workflow.status.value, aborted)
            self._notify(self.observer.on_workflow_error, WorkflowFailed(workflow.id, aborted))
            raise
        finally:
            self._running.pop(workflow.id, None)

        total_time = time.perf_counter() - started
        workflow.results.extend(outcomes)
        workflow.status = WorkflowStatus.COMPLETED
        result = WorkflowResult(
            workflow_id=workflow.id,
            results=tuple(outcomes),
            total_time=total_time,
        )
        logger.info(
            "Workflow %s completed: %d tasks in %.3fs",
            workflow.id,
            result.tasks_completed,
            total_time,
        )
        self._notify(
            self.observer.on_workflow_complete,
            WorkflowCompleted(workflow.id, result.results, total_time),
        )
        return result

    def stop_workflow(self, workflow_id: str) -> bool:
        """Request cooperative cancellation; in-flight tasks still finish."""

        workflow = self._running.get(workflow_id)
        if workflow is None or workflow.status is not WorkflowStatus.RUNNING:
            return False
        workflow.stop_requested = True
        logger.info("Stop requested for workflow %s", workflow_id)
        return True

    async def _run_sequential(self, workflow: Workflow) -> list[TaskOutcome]:
        outcomes: list[TaskOutcome] = []
        completed: dict[str, TaskOutcome] = {}
        for task in workflow.tasks:
            if workflow.stop_requested:
                raise _stopped(workflow, task)
            worker = self._route(workflow, task)
            self.registry.claim(worker.id)
            try:
                outcome = await self._execute_claimed(
                    worker,
                    task,
                    workflow.analysis,
                    completed,
                )
            except Exception as error:
                raise _task_failed(workflow, task, worker, error) from error
            outcomes.append(outcome)
            completed[task.id] = outcome
        return outcomes

    async def _run_parallel(self, workflow: Workflow) -> list[TaskOutcome]:
        dispatched: list[tuple[Task, Worker, asyncio.Task[TaskOutcome]]] = []
        dispatch_error: WorkflowAborted | None = None
        for task in workflow.tasks:
            if workflow.stop_requested:
                dispatch_error = _stopped(workflow, task)
                break
            try:
                worker = self._route(workflow, task)
            except WorkflowAborted as error:
                dispatch_error = error
                break
            self.registry.claim(worker.id)
            # Nothing has completed at dispatch time; taskResult references stay literal.
            dispatched.append(
                (
                    task,
                    worker,
                    asyncio.ensure_future(
                        self._execute_claimed(worker, task, workflow.analysis),
                    ),
                ),
            )

        settled = await asyncio.gather(
            *(future for _, _, future in dispatched),
            return_exceptions=True,
        )
        outcomes: list[TaskOutcome] = []
        for (task, worker, _), outcome in zip(dispatched, settled, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                raise _task_failed(workflow, task, worker, outcome) from outcome
            outcomes.append(outcome)
        if dispatch_error is not None:
            raise dispatch_error
        return outcomes

    def _route(self, workflow: Workflow, task: Task) -> Worker:
        try:
            return self.router.route(task)
        except NoEligibleWorker as error:
            raise WorkflowAborted(
                f"Workflow {workflow.id} aborted: {error}",
                workflow_id=workflow.id,
                task_id=task.id,
                cause=error,
            ) from error

    async def _execute_claimed(
        self,
        worker: Worker,
        task: Task,
        analysis: AnalysisSnapshot | None,
        completed: Mapping[str, TaskOutcome] | None = None,
    ) -> TaskOutcome:
        started = time.perf_counter()
        logger.info("Worker %s executing task %s (%s)", worker.id, task.id, task.type)
        try:
            selection = None
            if analysis is not None:
                selection = self.selector.select_context(self.context_type_for(task), analysis)
            prompt = resolve_task_references(task.prompt, completed or {})
            chain_result = await self.chain.generate(
                compose_prompt(prompt, selection),
                task.options,
            )
        except Exception as error:
            execution_time = time.perf_counter() - started
            self._record(worker, task, success=False, execution_time=execution_time, error=error)
            logger.warning("Task %s failed on worker %s: %s", task.id, worker.id, error)
            self._emit_usage()
            self._notify(self.observer.on_task_error, TaskFailed(worker.id, task.id, error))
            raise
        finally:
            self.registry.release(worker.id)

        execution_time = time.perf_counter() - started
        self._record(
            worker,
            task,
            success=True,
            execution_time=execution_time,
            provider=chain_result.used_provider,
        )
        outcome = TaskOutcome(
            task_id=task.id,
            worker_id=worker.id,
            result=chain_result.result,
            used_provider=chain_result.used_provider,
            attempt_number=chain_result.attempt_number,
            execution_time=execution_time,
            context=selection,
        )
        self._emit_usage()
        self._notify(
            self.observer.on_task_complete,
            TaskCompleted(worker.id, task.id, outcome, execution_time),
        )
        return outcome

    @staticmethod
    def _record(  # noqa: PLR0913
        worker: Worker,
        task: Task,
        *,
        success: bool,
        execution_time: float,
        provider: str | None = None,
        error: BaseException | None = None,
    ) -> None:
        worker.metrics.record(success=success, execution_time=execution_time)
        worker.task_history.append(
            TaskHistoryEntry(
                task_id=task.id,
                task_type=task.type,
                success=success,
                execution_time=execution_time,
                timestamp=utc_now(),
                provider=provider,
                error=str(error) if error is not None else None,
            ),
        )

    def _emit_usage(self) -> None:
        if self.monitor is None:
            return
        self._notify(
            self.observer.on_usage_update,
            UsageUpdated(
                stats=self.monitor.get_usage_stats(),
                health=self.monitor.health_check(),
                total_cost=self.monitor.get_total_cost(),
            ),
        )

    @staticmethod
    def _notify(handler: Callable[[Any], None], event: Any) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception("Observer failed to handle %s event", event.name)


def _stopped(workflow: Workflow, task: Task) -> WorkflowStopped:
    return WorkflowStopped(
        f"Workflow {workflow.id} stopped before task {task.id}",
        workflow_id=workflow.id,
        task_id=task.id,
    )


def _task_failed(
    workflow: Workflow,
    task: Task,
    worker: Worker,
    error: BaseException,
) -> WorkflowAborted:
    return WorkflowAborted(
        f"Workflow {workflow.id} aborted: task {task.id} failed on worker {worker.id}: {error}",
        workflow_id=workflow.id,
        task_id=task.id,
        worker_id=worker.id,
        cause=error,
    )
