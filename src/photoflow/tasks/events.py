# src/photoflow/tasks/events.py

"""
In-process notification stream for job status changes.

The store publishes one JobUpdate per committed transition. Observers (SSE layer,
CLI, tests) subscribe and correlate updates through task_id/task_type.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import asdict, dataclass
from typing import Any

from .task_models import Job, JobStatus

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class JobUpdate:
    job_id: int
    status: JobStatus
    job_type: str
    task_id: str | None
    task_type: str | None
    source: str | None
    progress_done: int | None = None
    progress_total: int | None = None
    progress_only: bool = False

    @property
    def event(self) -> str:
        if self.progress_only:
            return "job_update"
        if self.status == JobStatus.COMPLETED:
            return "job_completed"
        if self.status == JobStatus.RUNNING:
            return "job_started"
        if self.status == JobStatus.FAILED:
            return "job_failed"
        return "job_update"

    @classmethod
    def from_job(cls, job: Job, *, progress_only: bool = False) -> JobUpdate:
        p = job.payload or {}
        return cls(
            job_id=job.id,
            status=job.status,
            job_type=job.type,
            task_id=p.get("task_id"),
            task_type=p.get("task_type"),
            source=p.get("source"),
            progress_done=job.progress_done,
            progress_total=job.progress_total,
            progress_only=progress_only,
        )

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["status"] = self.status.value
        d["event"] = self.event
        return d


JobListener = Callable[[JobUpdate], None]


class JobEventBus:
    """Thread-safe fan-out of JobUpdate objects to subscribed listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: list[JobListener] = []

    def subscribe(self, listener: JobListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, update: JobUpdate) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            # A broken observer must not break the job pipeline.
            try:
                listener(update)
            except Exception:
                logger.exception("Job event listener failed job_id=%s event=%s", update.job_id, update.event)
