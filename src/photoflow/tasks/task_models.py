# src/photoflow/tasks/task_models.py

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

SkipPredicate = Callable[[Mapping[str, Any]], bool]


class JobStatus(StrEnum):
    """
    Job lifecycle status.

    Transitions are monotonic:
      queued -> running -> completed | failed
    Exceptions:
    - running -> queued on retry / stale-heartbeat recovery
    - queued | running -> canceled
    """

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"

    @classmethod
    def from_db(cls, raw: str | None) -> JobStatus:
        if not raw:
            return cls.QUEUED
        try:
            return cls(raw)
        except ValueError:
            return cls.QUEUED

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELED)


class ItemStatus(StrEnum):
    PENDING = "pending"
    DONE = "done"
    FAILED = "failed"

    @classmethod
    def from_db(cls, raw: str | None) -> ItemStatus:
        try:
            return cls(raw or cls.PENDING.value)
        except ValueError:
            return cls.PENDING


class JoinPolicy(StrEnum):
    """When a chunked step counts as done."""

    ALL = "all"  # barrier: advance once every chunk of the step completed
    EACH = "each"  # every chunk advances the chain on its own


class FailurePolicy(StrEnum):
    """What a failed step does once its jobs spent their attempts."""

    HALT = "halt"
    RETRY = "retry"
    COMPENSATE = "compensate"


@dataclass(slots=True, frozen=True)
class Step:
    job_type: str
    priority: int = 0
    scope: str | None = None  # explicit override; None -> definition scope
    skip_if: SkipPredicate | None = None
    join: JoinPolicy = JoinPolicy.ALL
    on_failure: FailurePolicy = FailurePolicy.HALT
    max_attempts: int | None = None
    compensate: str | None = None

    def attempts_budget(self, default_attempts: int) -> int:
        """Worker-level attempts for jobs of this step; on_failure applies once they are spent."""
        if self.max_attempts is not None:
            return self.max_attempts
        return max(1, int(default_attempts))

    def should_skip(self, payload: Mapping[str, Any]) -> bool:
        if self.skip_if is None:
            return False
        return bool(self.skip_if(payload))


@dataclass(slots=True, frozen=True)
class TaskDefinition:
    type: str
    steps: tuple[Step, ...]
    scope: str | None = None
    label: str = ""
    user_relevant: bool = True

    @property
    def first_step(self) -> Step | None:
        return self.steps[0] if self.steps else None

    def step_index(self, job_type: str) -> int:
        for i, step in enumerate(self.steps):
            if step.job_type == job_type:
                return i
        return -1

    def step_at(self, index: int) -> Step | None:
        if 0 <= index < len(self.steps):
            return self.steps[index]
        return None

    def scope_for(self, step: Step) -> str | None:
        return step.scope or self.scope


@dataclass(slots=True, frozen=True)
class TaskRef:
    """Correlation id threaded through every job of a task."""

    id: str
    type: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any] | None) -> TaskRef | None:
        if not payload:
            return None
        task_id = payload.get("task_id")
        task_type = payload.get("task_type")
        if not task_id or not task_type:
            return None
        return cls(id=str(task_id), type=str(task_type))


@dataclass(slots=True)
class JobItem:
    """Canonical, self-describing item descriptor carried by a job."""

    filename: str | None = None
    photo_id: int | None = None
    project_id: int | None = None
    project_folder: str | None = None
    project_name: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    # Set once stored.
    id: int | None = None
    job_id: int | None = None
    position: int = 0
    status: ItemStatus = ItemStatus.PENDING
    message: str | None = None

    @property
    def has_project_identity(self) -> bool:
        return self.project_id is not None or self.project_folder is not None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        for key in ("filename", "photo_id", "project_id", "project_folder", "project_name"):
            val = getattr(self, key)
            if val is not None:
                out[key] = val
        return out


@dataclass(slots=True)
class Job:
    id: int
    tenant_id: str
    project_id: int | None
    type: str
    status: JobStatus
    priority: int
    scope: str | None
    payload: dict[str, Any]

    created_at: float
    started_at: float | None = None
    finished_at: float | None = None
    heartbeat_at: float | None = None
    worker_id: str | None = None

    chunk_index: int | None = None
    chunk_count: int | None = None
    chunk_group: str | None = None
    dedupe_key: str | None = None

    attempts: int = 0
    max_attempts: int = 1
    error_message: str | None = None
    progress_done: int = 0
    progress_total: int | None = None

    @property
    def task(self) -> TaskRef | None:
        return TaskRef.from_payload(self.payload)

    @property
    def is_chunk(self) -> bool:
        return (self.chunk_count or 0) > 1


@dataclass(slots=True, frozen=True)
class TaskHandle:
    task_id: str
    task_type: str
    first_job_id: int | None
    chunked: bool
    job_count: int
    job_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_type": self.task_type,
            "first_job_id": self.first_job_id,
            "chunked": self.chunked,
            "job_count": self.job_count,
            "job_ids": list(self.job_ids),
        }
