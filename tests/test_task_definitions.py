# tests/test_task_definitions.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from photoflow.tasks.errors import TaskDefinitionError, UnknownTaskType
from photoflow.tasks.task_definitions import (
    TaskDefinitionRegistry,
    load_task_definitions,
    parse_task_definition,
)
from photoflow.tasks.task_models import FailurePolicy, JoinPolicy

PACKAGED_TYPES = {
    "upload_postprocess",
    "generate_derivatives",
    "image_move",
    "change_commit",
    "project_delete",
    "maintenance_global",
    "project_scavenge_global",
}


def test_packaged_definitions_load_and_validate() -> None:
    reg = load_task_definitions()
    assert set(reg.types()) == PACKAGED_TYPES
    for d in reg:
        assert d.steps, d.type
        for step in d.steps:
            assert d.scope_for(step), f"{d.type}/{step.job_type} has no scope"


def test_image_move_skips_derivatives_only_when_flag_is_false() -> None:
    d = load_task_definitions().require("image_move")
    step = d.steps[d.step_index("generate_derivatives")]
    assert step.should_skip({"need_generate_derivatives": False})
    assert not step.should_skip({"need_generate_derivatives": True})
    assert not step.should_skip({})


def test_maintenance_is_global_and_not_user_relevant() -> None:
    d = load_task_definitions().require("maintenance_global")
    assert d.scope == "global"
    assert d.user_relevant is False
    assert [s.job_type for s in d.steps][0] == "trash_maintenance"


def test_step_defaults(registry: TaskDefinitionRegistry) -> None:
    step = registry.require("abc").steps[0]
    assert step.join == JoinPolicy.ALL
    assert step.on_failure == FailurePolicy.HALT
    assert step.attempts_budget(3) == 3


def test_attempts_budget_applies_to_every_policy() -> None:
    for policy in ("halt", "retry"):
        d = parse_task_definition("t", {"scope": "project", "steps": [{"type": "x", "on_failure": policy}]})
        assert d.steps[0].attempts_budget(4) == 4
    d = parse_task_definition(
        "t", {"scope": "project", "steps": [{"type": "x", "on_failure": "retry", "max_attempts": 2}]}
    )
    assert d.steps[0].attempts_budget(4) == 2


def test_step_scope_overrides_definition_scope(registry: TaskDefinitionRegistry) -> None:
    d = registry.require("abc")
    assert d.scope_for(d.steps[0]) == "project"
    assert d.scope_for(d.steps[2]) == "global"


def test_require_unknown_raises(registry: TaskDefinitionRegistry) -> None:
    with pytest.raises(UnknownTaskType) as ei:
        registry.require("no-such-type")
    assert ei.value.task_type == "no-such-type"
    assert registry.get("no-such-type") is None
    assert "no-such-type" not in registry


@pytest.mark.parametrize(
    "raw, fragment",
    [
        ({"scope": "project", "steps": []}, "must not be empty"),
        ({"scope": "project"}, "'steps' must be a list"),
        ({"steps": [{"type": "x"}]}, "missing 'scope'"),
        ({"scope": "project", "steps": [{"priority": 1}]}, "missing 'type'"),
        ({"scope": "project", "steps": [{"type": "x", "priority": "high"}]}, "priority"),
        ({"scope": "project", "steps": [{"type": "x", "join": "some"}]}, "join"),
        ({"scope": "project", "steps": [{"type": "x", "on_failure": "explode"}]}, "on_failure"),
        ({"scope": "project", "steps": [{"type": "x", "on_failure": "compensate"}]}, "compensate"),
        ({"scope": "project", "steps": [{"type": "x", "compensate": "y"}]}, "compensate"),
        (
            {"scope": "project", "steps": [{"type": "x", "on_failure": "compensate", "compensate": "x"}]},
            "own type",
        ),
        ({"scope": "project", "steps": [{"type": "x", "max_attempts": 0}]}, "max_attempts"),
        ({"scope": "project", "steps": [{"type": "x", "skip_if": {"equals": True}}]}, "skip_if.flag"),
        ({"scope": "project", "steps": [{"type": "x", "skip_if": {"flag": "f"}}]}, "skip_if.equals"),
    ],
)
def test_malformed_definitions_are_rejected(raw: dict, fragment: str) -> None:
    with pytest.raises(TaskDefinitionError) as ei:
        TaskDefinitionRegistry.from_mapping({"broken": raw})
    assert ei.value.task_type == "broken"
    assert fragment in ei.value.reason


def test_metadata_only_definition_may_have_no_steps(registry: TaskDefinitionRegistry) -> None:
    d = registry.require("placeholder")
    assert d.steps == ()
    assert d.first_step is None


def test_skip_if_accepts_callable() -> None:
    d = parse_task_definition(
        "t",
        {"scope": "project", "steps": [{"type": "a"}, {"type": "b", "skip_if": lambda p: p.get("n", 0) > 3}]},
    )
    assert d.steps[1].should_skip({"n": 4})
    assert not d.steps[1].should_skip({"n": 1})


def test_from_file_and_invalid_json(tmp_path: Path) -> None:
    good = tmp_path / "defs.json"
    good.write_text(json.dumps({"t": {"scope": "global", "steps": [{"type": "x"}]}}), "utf-8")
    assert TaskDefinitionRegistry.from_file(good).types() == ["t"]
    assert load_task_definitions(good).types() == ["t"]

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", "utf-8")
    with pytest.raises(TaskDefinitionError):
        TaskDefinitionRegistry.from_file(bad)


def test_describe_is_json_ready(registry: TaskDefinitionRegistry) -> None:
    desc = registry.describe()
    json.dumps(desc)
    steps = desc["upload_postprocess"]["steps"]
    assert [s["type"] for s in steps] == ["ingest", "generate_derivatives", "finalize"]
    assert steps[1]["conditional"] is True
    assert desc["sweep"]["user_relevant"] is False
