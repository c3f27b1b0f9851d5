# src/photoflow/tasks/task_definitions.py

"""
Task definition registry.

Definitions are static configuration:
- loaded once at startup (bootstrap) from JSON,
- validated eagerly so a broken file stops the process before any job runs,
- immutable afterwards and passed explicitly to the starter/advancer.

JSON shape:
  {
    "<task_type>": {
      "label": "...", "user_relevant": true, "scope": "project",
      "steps": [
        {"type": "<job_type>", "priority": 90, "scope": "...",
         "skip_if": {"flag": "need_generate_derivatives", "equals": false},
         "join": "all", "on_failure": "halt", "max_attempts": 3, "compensate": "<job_type>"}
      ]
    }
  }
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator, Mapping
from importlib import resources
from pathlib import Path
from typing import Any

from .errors import TaskDefinitionError, UnknownTaskType
from .task_models import FailurePolicy, JoinPolicy, SkipPredicate, Step, TaskDefinition

logger = logging.getLogger(__name__)

_DEFAULT_RESOURCE = "task_definitions.json"


def flag_equals(flag: str, expected: Any) -> SkipPredicate:
    """Predicate: payload[flag] is present and equals `expected`."""

    def _pred(payload: Mapping[str, Any]) -> bool:
        return flag in payload and payload[flag] == expected

    _pred.__name__ = f"skip_if_{flag}_is_{expected!r}"
    return _pred


def _compile_skip_if(task_type: str, raw: Any) -> SkipPredicate | None:
    if raw is None:
        return None
    if callable(raw):
        return raw
    if not isinstance(raw, Mapping):
        raise TaskDefinitionError(task_type, "skip_if must be an object {flag, equals}")
    flag = raw.get("flag")
    if not isinstance(flag, str) or not flag.strip():
        raise TaskDefinitionError(task_type, "skip_if.flag must be a non-empty string")
    if "equals" not in raw:
        raise TaskDefinitionError(task_type, "skip_if.equals is required")
    return flag_equals(flag.strip(), raw["equals"])


def _parse_step(task_type: str, index: int, raw: Any) -> Step:
    if not isinstance(raw, Mapping):
        raise TaskDefinitionError(task_type, f"step #{index} must be an object")

    job_type = raw.get("type")
    if not isinstance(job_type, str) or not job_type.strip():
        raise TaskDefinitionError(task_type, f"step #{index} is missing 'type'")

    priority = raw.get("priority", 0)
    if isinstance(priority, bool) or not isinstance(priority, int):
        raise TaskDefinitionError(task_type, f"step '{job_type}' priority must be an integer")

    scope = raw.get("scope")
    if scope is not None and (not isinstance(scope, str) or not scope.strip()):
        raise TaskDefinitionError(task_type, f"step '{job_type}' scope must be a non-empty string")

    try:
        join = JoinPolicy(raw.get("join", JoinPolicy.ALL.value))
    except ValueError:
        raise TaskDefinitionError(task_type, f"step '{job_type}' has invalid join={raw.get('join')!r}") from None

    try:
        on_failure = FailurePolicy(raw.get("on_failure", FailurePolicy.HALT.value))
    except ValueError:
        raise TaskDefinitionError(
            task_type, f"step '{job_type}' has invalid on_failure={raw.get('on_failure')!r}"
        ) from None

    max_attempts = raw.get("max_attempts")
    if max_attempts is not None and (
        isinstance(max_attempts, bool) or not isinstance(max_attempts, int) or max_attempts < 1
    ):
        raise TaskDefinitionError(task_type, f"step '{job_type}' max_attempts must be an integer >= 1")

    compensate = raw.get("compensate")
    if on_failure == FailurePolicy.COMPENSATE:
        if not isinstance(compensate, str) or not compensate.strip():
            raise TaskDefinitionError(task_type, f"step '{job_type}' needs 'compensate' job type")
        compensate = compensate.strip()
        if compensate == job_type.strip():
            raise TaskDefinitionError(task_type, f"step '{job_type}' cannot compensate with its own type")
    elif compensate is not None:
        raise TaskDefinitionError(task_type, f"step '{job_type}' sets 'compensate' without on_failure=compensate")

    return Step(
        job_type=job_type.strip(),
        priority=priority,
        scope=scope.strip() if scope else None,
        skip_if=_compile_skip_if(task_type, raw.get("skip_if")),
        join=join,
        on_failure=on_failure,
        max_attempts=max_attempts,
        compensate=compensate,
    )


def parse_task_definition(task_type: str, raw: Any) -> TaskDefinition:
    if not isinstance(task_type, str) or not task_type.strip():
        raise TaskDefinitionError(str(task_type), "task type must be a non-empty string")
    if not isinstance(raw, Mapping):
        raise TaskDefinitionError(task_type, "definition must be an object")

    raw_steps = raw.get("steps")
    if not isinstance(raw_steps, list):
        raise TaskDefinitionError(task_type, "'steps' must be a list")
    if not raw_steps and not raw.get("metadata_only", False):
        raise TaskDefinitionError(task_type, "'steps' must not be empty")

    steps = tuple(_parse_step(task_type, i, s) for i, s in enumerate(raw_steps))

    scope = raw.get("scope")
    if scope is not None and (not isinstance(scope, str) or not scope.strip()):
        raise TaskDefinitionError(task_type, "scope must be a non-empty string")
    scope = scope.strip() if scope else None

    if scope is None:
        if not steps:
            raise TaskDefinitionError(task_type, "missing 'scope'")
        missing = [s.job_type for s in steps if not s.scope]
        if missing:
            raise TaskDefinitionError(task_type, f"missing 'scope' (definition or steps: {', '.join(missing)})")

    label = raw.get("label") or task_type
    return TaskDefinition(
        type=task_type,
        steps=steps,
        scope=scope,
        label=str(label),
        user_relevant=bool(raw.get("user_relevant", True)),
    )


class TaskDefinitionRegistry:
    """Read-only mapping task type -> TaskDefinition."""

    def __init__(self, definitions: Mapping[str, TaskDefinition]) -> None:
        self._defs: dict[str, TaskDefinition] = dict(definitions)

    @classmethod
    def from_mapping(cls, raw: Any) -> TaskDefinitionRegistry:
        if not isinstance(raw, Mapping):
            raise TaskDefinitionError("<root>", "task definitions must be a JSON object")
        defs = {task_type: parse_task_definition(task_type, body) for task_type, body in raw.items()}
        return cls(defs)

    @classmethod
    def from_file(cls, path: str | Path) -> TaskDefinitionRegistry:
        p = Path(path)
        try:
            raw = json.loads(p.read_text("utf-8"))
        except json.JSONDecodeError as e:
            raise TaskDefinitionError("<root>", f"{p}: invalid JSON ({e})") from e
        registry = cls.from_mapping(raw)
        logger.info("Task definitions loaded path=%s types=%d", p, len(registry))
        return registry

    # ---- lookup ----

    def get(self, task_type: str) -> TaskDefinition | None:
        return self._defs.get(task_type)

    def require(self, task_type: str) -> TaskDefinition:
        d = self._defs.get(task_type)
        if d is None:
            raise UnknownTaskType(task_type)
        return d

    def types(self) -> list[str]:
        return list(self._defs)

    def __contains__(self, task_type: object) -> bool:
        return task_type in self._defs

    def __len__(self) -> int:
        return len(self._defs)

    def __iter__(self) -> Iterator[TaskDefinition]:
        return iter(self._defs.values())

    def describe(self) -> dict[str, dict[str, Any]]:
        """JSON-ready view for listing endpoints / the CLI (predicates are not serialized)."""
        out: dict[str, dict[str, Any]] = {}
        for d in self._defs.values():
            out[d.type] = {
                "label": d.label,
                "user_relevant": d.user_relevant,
                "scope": d.scope,
                "steps": [
                    {
                        "type": s.job_type,
                        "priority": s.priority,
                        "scope": d.scope_for(s),
                        "conditional": s.skip_if is not None,
                        "join": s.join.value,
                        "on_failure": s.on_failure.value,
                    }
                    for s in d.steps
                ],
            }
        return out


def load_task_definitions(path: str | Path | None = None) -> TaskDefinitionRegistry:
    """
    Load the registry from `path`, or from the definitions packaged with photoflow.

    Raises TaskDefinitionError on the first malformed definition.
    """
    if path:
        return TaskDefinitionRegistry.from_file(path)

    text = resources.files("photoflow.tasks").joinpath(_DEFAULT_RESOURCE).read_text("utf-8")
    registry = TaskDefinitionRegistry.from_mapping(json.loads(text))
    logger.info("Task definitions loaded (packaged) types=%d", len(registry))
    return registry
