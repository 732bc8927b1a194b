from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from lumosgen import __version__
from lumosgen.main import lumosgen

pytestmark = [
    allure.epic("CLI"),
    allure.feature("Workflow, Context, Providers"),
]


def _write_snapshot(path: Path) -> Path:
    path.write_text(
        json.dumps(
            {
                "metadata": {"name": "lumos-demo", "description": "Docs site generator"},
                "techStack": ["TypeScript"],
                "features": ["Project analysis", "Content generation"],
                "documents": [
                    {"path": "README.md", "content": "# Lumos\n\nInstall and usage overview."},
                    {"path": "docs/api.md", "content": "API endpoint reference."},
                ],
            },
        ),
        "utf-8",
    )
    return path


def test_version_option() -> None:
    result = CliRunner().invoke(lumosgen, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_workflow_run_default_demo_with_usage_export(tmp_path: Path) -> None:
    export_path = tmp_path / "out" / "usage.json"

    result = CliRunner().invoke(
        lumosgen,
        ["workflow", "run", "--workflow-id", "demo", "--export-usage", str(export_path)],
    )

    assert result.exit_code == 0, result.output
    assert "Workflow demo: tasks=3 mode=sequential providers=mock" in result.output
    assert "analyze-project worker=content-analyzer provider=mock attempt=1" in result.output
    assert "build-site worker=website-builder" in result.output
    assert "Workflow completed: tasks=3" in result.output
    assert "Health: healthy" in result.output
    exported = json.loads(export_path.read_text("utf-8"))
    assert exported["stats"]["mock"]["requests"] == 3
    assert exported["totalCost"] == 0.0


def test_workflow_run_from_tasks_file_with_snapshot(tmp_path: Path) -> None:
    tasks_path = tmp_path / "tasks.json"
    tasks_path.write_text(
        json.dumps(
            {
                "tasks": [
                    {"id": "copy", "type": "generate", "prompt": "Write a FAQ section"},
                    {"id": "perf", "type": "monitor", "prompt": "Check performance"},
                ],
            },
        ),
        "utf-8",
    )
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")

    result = CliRunner().invoke(
        lumosgen,
        [
            "workflow",
            "run",
            "--tasks",
            str(tasks_path),
            "--snapshot",
            str(snapshot_path),
            "--parallel",
            "--show-content",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "mode=parallel" in result.output
    assert "copy worker=content-generator" in result.output
    assert "perf worker=performance-monitor" in result.output
    assert "--- copy (mock)" in result.output


def test_workflow_run_fails_for_unroutable_task(tmp_path: Path) -> None:
    tasks_path = tmp_path / "tasks.json"
    tasks_path.write_text(
        json.dumps([{"id": "poem", "type": "translate", "prompt": "Translate"}]),
        "utf-8",
    )

    result = CliRunner().invoke(lumosgen, ["workflow", "run", "--tasks", str(tasks_path)])

    assert result.exit_code != 0
    assert "Workflow failed: Workflow" in result.output
    assert "poem" in result.output


def test_workflow_run_rejects_invalid_tasks_file(tmp_path: Path) -> None:
    tasks_path = tmp_path / "tasks.json"
    tasks_path.write_text("{not json", "utf-8")

    result = CliRunner().invoke(lumosgen, ["workflow", "run", "--tasks", str(tasks_path)])

    assert result.exit_code != 0
    assert "Invalid JSON" in result.output


def test_workers_command_lists_default_roster() -> None:
    result = CliRunner().invoke(lumosgen, ["workers"])

    assert result.exit_code == 0
    assert "Workers: 4" in result.output
    assert "content-analyzer priority=1 status=idle" in result.output
    assert "performance-monitor priority=4" in result.output


def test_providers_command_reports_skipped_providers(monkeypatch) -> None:
    monkeypatch.setenv("LUMOSGEN_OPENAI_API_KEY", "sk-test")

    result = CliRunner().invoke(lumosgen, ["providers"])

    assert result.exit_code == 0, result.output
    assert "Provider chain: openai -> mock" in result.output
    assert "openai kind=primary model=gpt-4o-mini" in result.output
    assert "Skipped (not configured): deepseek" in result.output


def test_providers_command_surfaces_configuration_errors(monkeypatch) -> None:
    monkeypatch.setenv("LUMOSGEN_PROVIDER_ORDER", "anthropic")

    result = CliRunner().invoke(lumosgen, ["providers"])

    assert result.exit_code != 0
    assert "LUMOSGEN_PROVIDER_ORDER" in result.output


def test_context_select_prints_budgeted_selection(tmp_path: Path) -> None:
    snapshot_path = _write_snapshot(tmp_path / "snapshot.json")

    result = CliRunner().invoke(
        lumosgen,
        [
            "context",
            "select",
            str(snapshot_path),
            "--task-type",
            "api-documentation",
            "--max-tokens",
            "40",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Context for api-documentation:" in result.output
    assert "tokens=" in result.output
    assert "/40" in result.output
    assert "document:docs/api.md category=api" in result.output
