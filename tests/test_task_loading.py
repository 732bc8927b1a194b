from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from lumosgen.orchestrator.controllers import load_tasks
from lumosgen.orchestrator.models import Task

pytestmark = [
    allure.epic("Orchestration"),
    allure.feature("Task Loading"),
]


def _write_tasks(path: Path, tasks: object) -> Path:
    path.write_text(json.dumps(tasks), "utf-8")
    return path


def test_load_tasks_accepts_wrapped_list(tmp_path: Path) -> None:
    path = _write_tasks(
        tmp_path / "tasks.json",
        {
            "tasks": [
                {"id": "gen", "type": " Generate ", "prompt": "Write a homepage"},
                {
                    "id": "site",
                    "type": "build",
                    "payload": "Build it",
                    "requiredCapabilities": ["deployment", "site-building"],
                    "contextType": "general",
                },
            ],
        },
    )

    tasks = load_tasks(path)

    assert [task.id for task in tasks] == ["gen", "site"]
    assert tasks[0].type == "generate"
    assert tasks[1].prompt == "Build it"
    assert tasks[1].required_capabilities == ("deployment", "site-building")
    assert tasks[1].context_type == "general"


def test_single_capability_string_is_one_tag(tmp_path: Path) -> None:
    path = _write_tasks(
        tmp_path / "tasks.json",
        [{"id": "a", "type": "build", "requiredCapabilities": "deployment"}],
    )

    (task,) = load_tasks(path)

    assert task.required_capabilities == ("deployment",)


@pytest.mark.parametrize("capabilities", [7, {"deployment": True}, ["deployment", 3]])
def test_non_list_capabilities_are_rejected(capabilities: object) -> None:
    raw = {"id": "a", "type": "build", "requiredCapabilities": capabilities}

    with pytest.raises(ValueError, match="Task 'a' requiredCapabilities must be a list of strings"):
        Task.from_dict(raw)


def test_duplicate_task_ids_are_rejected(tmp_path: Path) -> None:
    path = _write_tasks(
        tmp_path / "tasks.json",
        [{"id": "a", "type": "build"}, {"id": "a", "type": "generate"}],
    )

    with pytest.raises(ValueError, match="Duplicate task ids"):
        load_tasks(path)
