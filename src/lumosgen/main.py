"""CLI entrypoint for lumosgen."""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from lumosgen import __version__
from lumosgen.config import LOG_LEVELS
from lumosgen.orchestrator.controllers import (
    ContextSelectCommand,
    OrchestratorCliController,
    WorkflowRunCommand,
)
from lumosgen.orchestrator.errors import OrchestratorError

click.rich_click.USE_MARKDOWN = True
ORCHESTRATOR_CONTROLLER = OrchestratorCliController()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

T = TypeVar("T")


@click.group()
@click.version_option(version=__version__, prog_name="lumosgen")
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default=lambda: os.getenv("LUMOSGEN_LOG_LEVEL", "WARNING").upper(),
    show_default="WARNING or LUMOSGEN_LOG_LEVEL",
    help="Logging verbosity.",
)
def lumosgen(log_level: str) -> None:
    """Content-generation orchestrator CLI."""

    logging.basicConfig(level=log_level.upper(), format=LOG_FORMAT)


@lumosgen.group()
def workflow() -> None:
    """Workflow commands."""


@workflow.command("run")
@click.option(
    "--tasks",
    "tasks_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="JSON file with tasks. Defaults to the analyze/generate/build demo.",
)
@click.option(
    "--snapshot",
    "snapshot_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    default=None,
    help="Project analysis snapshot (JSON) used for context selection.",
)
@click.option("--workflow-id", default=None, help="Workflow id. Generated when omitted.")
@click.option(
    "--parallel/--sequential",
    default=False,
    show_default=True,
    help="Dispatch every routable task at once instead of one by one.",
)
@click.option(
    "--export-usage",
    "export_usage_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Write the usage snapshot JSON to this path.",
)
@click.option("--show-content", is_flag=True, help="Print generated content.")
def workflow_run(  # noqa: PLR0913
    tasks_path: Path | None,
    snapshot_path: Path | None,
    workflow_id: str | None,
    parallel: bool,
    export_usage_path: Path | None,
    show_content: bool,
) -> None:
    """Run a workflow through the worker pool and the provider chain."""

    result = _guarded(
        lambda: ORCHESTRATOR_CONTROLLER.run_workflow(
            WorkflowRunCommand(
                tasks_path=tasks_path,
                snapshot_path=snapshot_path,
                workflow_id=workflow_id,
                parallel=parallel,
                export_usage_path=export_usage_path,
                show_content=show_content,
            ),
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("Workflow failed.")


@lumosgen.command("workers")
def workers() -> None:
    """List the default worker roster."""

    _emit_lines(ORCHESTRATOR_CONTROLLER.list_workers())


@lumosgen.command("providers")
def providers() -> None:
    """Show the provider chain built from the environment."""

    _emit_lines(_guarded(ORCHESTRATOR_CONTROLLER.list_providers))


@lumosgen.group()
def context() -> None:
    """Context selection commands."""


@context.command("select")
@click.argument(
    "snapshot_path",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
)
@click.option(
    "--task-type",
    default="general",
    show_default=True,
    help="Context strategy, for example marketing-content or api-documentation.",
)
@click.option(
    "--max-tokens",
    type=click.IntRange(min=1),
    default=None,
    help="Token budget. Defaults to the strategy budget.",
)
@click.option("--show-content", is_flag=True, help="Print selected fragment text.")
def context_select(
    snapshot_path: Path,
    task_type: str,
    max_tokens: int | None,
    show_content: bool,
) -> None:
    """Preview the context selected for a task type."""

    _emit_lines(
        _guarded(
            lambda: ORCHESTRATOR_CONTROLLER.select_context(
                ContextSelectCommand(
                    snapshot_path=snapshot_path,
                    task_type=task_type,
                    max_tokens=max_tokens,
                    show_content=show_content,
                ),
            ),
        ),
    )


def _guarded(action: Callable[[], T]) -> T:
    try:
        return action()
    except (ValueError, OrchestratorError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    lumosgen()
