# src/photoflow/tasks/task_api.py

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from ..core.state import AppState
from .task_models import Job, JobStatus, TaskHandle
from .task_starter import ItemRef

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TaskProgress:
    """Derived view of a task: there is no task row, only its jobs."""

    task_id: str
    task_type: str | None
    status: str
    current_step: str
    step_index: int
    step_count: int
    job_count: int
    jobs_by_status: dict[str, int]

    @property
    def finished(self) -> bool:
        return self.status in ("completed", "failed", "canceled")

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_type": self.task_type,
            "status": self.status,
            "current_step": self.current_step,
            "step_index": self.step_index,
            "step_count": self.step_count,
            "job_count": self.job_count,
            "jobs_by_status": dict(self.jobs_by_status),
            "finished": self.finished,
        }


def _overall_status(jobs: list[Job]) -> str:
    statuses = {j.status for j in jobs}
    if statuses & {JobStatus.QUEUED, JobStatus.RUNNING}:
        return "running"
    if JobStatus.FAILED in statuses:
        return "failed"
    if JobStatus.CANCELED in statuses:
        return "canceled"
    return "completed"


def start_task(
        state: AppState,
        task_type: str,
        *,
        items: Iterable[ItemRef] | None = None,
        project_id: int | None = None,
        source: str = "user",
        payload: Mapping[str, Any] | None = None,
) -> TaskHandle:
    """Convenience wrapper around state.starter (already constructed in bootstrap)."""
    return state.starter.start_task(
        task_type,
        items=items,
        project_id=project_id,
        source=source,
        payload=payload,
    )


def describe_task(state: AppState, task_id: str) -> TaskProgress | None:
    """
    Progress of a task, or None when no job carries this task id.

    The current step is the type of the newest job of the chain.
    """
    jobs = state.job_store.list_by_task(task_id)
    if not jobs:
        return None

    latest = jobs[-1]
    ref = latest.task
    task_type = ref.type if ref else None
    definition = state.registry.get(task_type) if task_type else None

    counts: dict[str, int] = {}
    for j in jobs:
        counts[j.status.value] = counts.get(j.status.value, 0) + 1

    step_index = definition.step_index(latest.type) if definition else -1
    return TaskProgress(
        task_id=task_id,
        task_type=task_type,
        status=_overall_status(jobs),
        current_step=latest.type,
        step_index=step_index,
        step_count=len(definition.steps) if definition else 0,
        job_count=len(jobs),
        jobs_by_status=counts,
    )


def cancel_task(state: AppState, task_id: str) -> int:
    """Cancel every queued/running job of a task. Returns the number of jobs canceled."""
    n = state.job_store.cancel_task(task_id)
    logger.info("Task %s canceled (%d job(s))", task_id, n)
    return n


def list_definitions(state: AppState, *, user_relevant_only: bool = False) -> dict[str, dict[str, Any]]:
    defs = state.registry.describe()
    if user_relevant_only:
        return {k: v for k, v in defs.items() if v.get("user_relevant")}
    return defs
