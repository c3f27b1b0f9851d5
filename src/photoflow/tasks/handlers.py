# src/photoflow/tasks/handlers.py

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import Any

from .job_store import JobStore
from .task_models import ItemStatus, Job, JobItem

logger = logging.getLogger(__name__)

HandlerResult = dict[str, Any] | None
JobHandler = Callable[[Job, "JobContext"], HandlerResult | Awaitable[HandlerResult]]


@dataclass(slots=True)
class JobContext:
    """What a handler may touch while processing a job."""

    job: Job
    store: JobStore

    def items(self) -> list[JobItem]:
        return self.store.list_items(self.job.id)

    def mark_item(self, item: JobItem, status: ItemStatus, message: str | None = None) -> None:
        if item.id is None:
            raise ValueError("item is not stored")
        self.store.update_item_status(item.id, status, message)

    def progress(self, done: int, total: int | None = None) -> None:
        self.store.update_progress(self.job.id, done=done, total=total)


class HandlerRegistry:
    """job type -> handler. Handlers return optional payload flags merged on completion."""

    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, job_type: str, handler: JobHandler) -> None:
        key = (job_type or "").strip()
        if not key:
            raise ValueError("job_type is required")
        if key in self._handlers:
            logger.debug("Replacing handler for job type %s", key)
        self._handlers[key] = handler

    def register_many(self, job_types: Iterable[str], handler: JobHandler) -> None:
        for job_type in job_types:
            self.register(job_type, handler)

    def get(self, job_type: str) -> JobHandler | None:
        return self._handlers.get(job_type)

    def job_types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, job_type: object) -> bool:
        return job_type in self._handlers


def noop_handler(job: Job, ctx: JobContext) -> HandlerResult:
    """
    Walk the job's items and mark them done without touching any file.

    Used for dry runs / local demos where real photo workers are not wired in.
    """
    items = ctx.items()
    for n, item in enumerate(items, start=1):
        ctx.mark_item(item, ItemStatus.DONE)
        ctx.progress(n, len(items))
    logger.info("noop handler finished job=%s type=%s items=%d", job.id, job.type, len(items))
    return None
