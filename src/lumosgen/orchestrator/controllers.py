"""Controllers for orchestrator CLI commands."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from uuid import uuid4

from lumosgen.config import Settings
from lumosgen.orchestrator.commands import (
    GenerateContent,
    HostCommand,
    OrchestratorSession,
    StatusReport,
    build_session,
)
from lumosgen.orchestrator.context import AnalysisSnapshot, ContextSelector
from lumosgen.orchestrator.errors import OrchestratorError
from lumosgen.orchestrator.events import RecordingObserver, TaskCompleted, TaskFailed
from lumosgen.orchestrator.models import Task, WorkflowResult
from lumosgen.orchestrator.registry import WorkerRegistry

DEFAULT_DEMO_TASKS: tuple[dict[str, str], ...] = (
    {
        "id": "analyze-project",
        "type": "analyze",
        "prompt": "Analyze the project structure and summarize its purpose and key features.",
    },
    {
        "id": "generate-homepage",
        "type": "generate",
        "prompt": "Generate homepage content with a hero section and a feature overview.",
    },
    {
        "id": "build-site",
        "type": "build",
        "prompt": "Build the website layout from the generated homepage content.",
    },
)


@dataclass(slots=True)
class WorkflowRunCommand:
    """CLI input for one workflow run."""

    tasks_path: Path | None
    snapshot_path: Path | None
    workflow_id: str | None
    parallel: bool
    export_usage_path: Path | None
    show_content: bool = False


@dataclass(slots=True)
class ContextSelectCommand:
    """CLI input for a context selection preview."""

    snapshot_path: Path
    task_type: str
    max_tokens: int | None
    show_content: bool = False


@dataclass(slots=True)
class WorkflowRunResult:
    """Workflow report to render in CLI."""

    lines: list[str]
    success: bool


class OrchestratorCliController:
    """Coordinates workflow runs and inspection CLI operations."""

    def run_workflow(self, command: WorkflowRunCommand) -> WorkflowRunResult:
        settings = Settings.from_env()
        tasks = (
            load_tasks(command.tasks_path)
            if command.tasks_path is not None
            else tuple(Task.from_dict(raw) for raw in DEFAULT_DEMO_TASKS)
        )
        analysis = (
            load_snapshot(command.snapshot_path) if command.snapshot_path is not None else None
        )
        observer = RecordingObserver()
        session = build_session(settings, observer)
        workflow_id = command.workflow_id or f"workflow-{uuid4().hex[:8]}"

        lines = [
            f"Workflow {workflow_id}: tasks={len(tasks)} "
            f"mode={'parallel' if command.parallel else 'sequential'} "
            f"providers={' -> '.join(session.chain.provider_names)}",
        ]
        success = True
        try:
            result = asyncio.run(
                _dispatch_and_close(
                    session,
                    GenerateContent(
                        workflow_id=workflow_id,
                        tasks=tasks,
                        analysis=analysis,
                        parallel=command.parallel,
                    ),
                ),
            )
        except OrchestratorError as error:
            success = False
            lines.extend(_task_event_lines(observer))
            lines.append(f"Workflow failed: {error}")
        else:
            lines.extend(_task_event_lines(observer))
            lines.append(
                f"Workflow completed: tasks={result.tasks_completed} "
                f"total_time={result.total_time:.3f}s",
            )
            if command.show_content:
                for outcome in result.results:
                    lines.append(f"--- {outcome.task_id} ({outcome.used_provider})")
                    lines.extend(outcome.result.content.splitlines())

        health = session.monitor.health_check()
        lines.append(
            f"Health: {health.status.value} error_rate={health.error_rate:.2f} "
            f"observed={health.observed_attempts} "
            f"total_cost=${session.monitor.get_total_cost():.6f}",
        )
        for alert in session.monitor.get_cost_alerts():
            lines.append(
                f"Cost alert: {alert.kind} ${alert.current:.2f} > ${alert.threshold:.2f}",
            )
        if command.export_usage_path is not None:
            command.export_usage_path.parent.mkdir(parents=True, exist_ok=True)
            command.export_usage_path.write_text(session.monitor.export_data(), "utf-8")
            lines.append(f"Usage exported: {command.export_usage_path}")
        return WorkflowRunResult(lines=lines, success=success)

    def list_workers(self) -> list[str]:
        registry = WorkerRegistry.with_default_workers()
        lines = [f"Workers: {len(registry)}"]
        for worker in registry.list():
            lines.append(
                f"  {worker.id} priority={worker.priority} status={worker.status.value} "
                f"capabilities={','.join(sorted(worker.capabilities))}",
            )
        return lines

    def list_providers(self) -> list[str]:
        settings = Settings.from_env()
        session = build_session(settings)
        lines = [f"Provider chain: {' -> '.join(session.chain.provider_names)}"]
        for state in session.chain.states():
            provider_settings = settings.chain.provider(state.name)
            model = provider_settings.model if provider_settings is not None else "mock"
            lines.append(f"  {state.name} kind={state.kind.value} model={model}")
        skipped = [
            name
            for name in settings.chain.provider_order
            if name not in session.chain.provider_names
        ]
        if skipped:
            lines.append(f"Skipped (not configured): {', '.join(skipped)}")
        return lines

    def select_context(self, command: ContextSelectCommand) -> list[str]:
        settings = Settings.from_env()
        selector = ContextSelector(default_max_tokens=settings.context.max_tokens)
        selection = selector.select_context(
            command.task_type,
            load_snapshot(command.snapshot_path),
            command.max_tokens,
        )
        lines = [
            f"Context for {selection.task_type}: items={len(selection.selected_items)} "
            f"tokens={selection.total_tokens}/{selection.max_tokens}",
            selection.selection_reason,
        ]
        for item in selection.selected_items:
            suffix = " truncated" if item.truncated else ""
            lines.append(
                f"  {item.source} category={item.category.value} tokens={item.tokens} "
                f"score={item.score:g}{suffix}",
            )
            if command.show_content:
                lines.extend(f"    {line}" for line in item.content.splitlines())
        return lines


async def _dispatch_and_close(
    session: OrchestratorSession,
    command: HostCommand,
) -> WorkflowResult | bool | StatusReport:
    try:
        return await session.dispatch(command)
    finally:
        await session.aclose()


def load_tasks(path: Path) -> tuple[Task, ...]:
    """Read tasks from a JSON list or a `{"tasks": [...]}` object."""

    raw = _read_json(path)
    if isinstance(raw, dict):
        raw = raw.get("tasks")
    if not isinstance(raw, list) or not raw:
        raise ValueError(f"{path} must contain a non-empty list of tasks.")
    tasks = tuple(Task.from_dict(entry) for entry in raw)
    ids = [task.id for task in tasks]
    duplicates = sorted({task_id for task_id in ids if ids.count(task_id) > 1})
    if duplicates:
        raise ValueError(f"Duplicate task ids in {path}: {', '.join(duplicates)}")
    return tasks


def load_snapshot(path: Path) -> AnalysisSnapshot:
    raw = _read_json(path)
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a JSON object.")
    return AnalysisSnapshot.from_dict(raw)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Invalid JSON in {path}: {error}") from error


def _task_event_lines(observer: RecordingObserver) -> list[str]:
    lines: list[str] = []
    for event in observer.events:
        if isinstance(event, TaskCompleted):
            outcome = event.result
            lines.append(
                f"  {event.task_id} worker={event.worker_id} provider={outcome.used_provider} "
                f"attempt={outcome.attempt_number} tokens={outcome.result.total_tokens} "
                f"time={event.execution_time:.3f}s",
            )
        elif isinstance(event, TaskFailed):
            lines.append(f"  {event.task_id} worker={event.worker_id} failed: {event.error}")
    return lines
