# src/photoflow/tasks/maintenance.py

from __future__ import annotations

"""
Maintenance scheduler.

Periodically starts the global maintenance tasks (trash + reconciliation,
archived-project scavenging). A first round runs shortly after startup to seed
the queue, then one round per interval.

Folder discovery runs on its own, shorter interval as an out-of-band job: it is
not a task step, so it carries no task_id and the advancer leaves it alone.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from ..core.ports import JobRepo
from .errors import TaskError
from .task_models import Job, TaskHandle
from .task_starter import TaskStarter

logger = logging.getLogger(__name__)

DEFAULT_MAINTENANCE_TASKS: tuple[str, ...] = ("maintenance_global", "project_scavenge_global")

FOLDER_DISCOVERY_JOB_TYPE = "folder_discovery"
FOLDER_DISCOVERY_PRIORITY = 95


async def _wait_or_stop(seconds: float, stop_event: asyncio.Event | None) -> bool:
    """Sleep for `seconds`; True when stop_event fired meanwhile."""
    if stop_event is None:
        await asyncio.sleep(seconds)
        return False
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        return False
    return True


def start_maintenance_tasks(
        starter: TaskStarter,
        task_types: Iterable[str] = DEFAULT_MAINTENANCE_TASKS,
) -> list[TaskHandle]:
    """
    Start one task per type with source="maintenance".

    A type that fails to start is logged and skipped; the other types still run.
    """
    handles: list[TaskHandle] = []
    for task_type in task_types:
        try:
            handle = starter.start_task(task_type, source="maintenance", scope="global")
        except TaskError as e:
            logger.warning("Maintenance task %s not started: %s", task_type, e)
            continue
        except Exception:
            logger.exception("Maintenance task %s failed to start", task_type)
            continue
        logger.info("Maintenance task started type=%s task_id=%s", task_type, handle.task_id)
        handles.append(handle)
    return handles


def enqueue_folder_discovery(job_store: JobRepo, *, tenant_id: str) -> Job | None:
    """Queue one global folder_discovery job. Returns None when the store refused it."""
    try:
        job = job_store.enqueue(
            tenant_id=tenant_id,
            job_type=FOLDER_DISCOVERY_JOB_TYPE,
            payload={"source": "scheduler", "triggered_at": datetime.now(timezone.utc).isoformat()},
            priority=FOLDER_DISCOVERY_PRIORITY,
            scope="global",
        )
    except Exception:
        logger.exception("Folder discovery not scheduled")
        return None
    logger.info("Folder discovery scheduled job_id=%s", job.id)
    return job


async def run_maintenance_scheduler(
        starter: TaskStarter,
        *,
        task_types: Iterable[str] = DEFAULT_MAINTENANCE_TASKS,
        interval_seconds: float = 3600.0,
        initial_delay_seconds: float = 5.0,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Start maintenance tasks after initial_delay_seconds, then every interval_seconds.

    Stops when stop_event is set, or when cancelled.
    """
    types = list(task_types)
    every_s = max(1.0, float(interval_seconds))
    delay_s = max(0.0, float(initial_delay_seconds))

    logger.info("Maintenance scheduler started types=%s interval=%.0fs", ",".join(types), every_s)
    if await _wait_or_stop(delay_s, stop_event):
        return

    while True:
        # Store I/O is short and synchronous; keep it off the loop thread anyway.
        await asyncio.to_thread(start_maintenance_tasks, starter, types)
        if await _wait_or_stop(every_s, stop_event):
            logger.info("Maintenance scheduler stopped")
            return


async def run_folder_discovery_scheduler(
        job_store: JobRepo,
        *,
        tenant_id: str,
        interval_seconds: float = 300.0,
        initial_delay_seconds: float = 5.0,
        stop_event: asyncio.Event | None = None,
) -> None:
    """Queue a folder_discovery job after initial_delay_seconds, then every interval_seconds."""
    every_s = max(1.0, float(interval_seconds))
    logger.info("Folder discovery scheduler started interval=%.0fs", every_s)
    if await _wait_or_stop(max(0.0, float(initial_delay_seconds)), stop_event):
        return

    while True:
        await asyncio.to_thread(enqueue_folder_discovery, job_store, tenant_id=tenant_id)
        if await _wait_or_stop(every_s, stop_event):
            logger.info("Folder discovery scheduler stopped")
            return
