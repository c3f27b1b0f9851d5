# src/photoflow/tasks/worker_loop.py

from __future__ import annotations

"""
Worker loop.

A small polling loop that:
- requeues running jobs whose heartbeat went stale (crash recovery),
- claims queued jobs into two lanes (priority >= threshold, and the rest),
- runs the registered handler for each job, heartbeating while it runs,
- completes the job (which advances its task) or records a failed attempt.

What a handler does with photos is opaque to this loop.
"""

import asyncio
import inspect
import logging
import os
from dataclasses import dataclass

from .handlers import HandlerRegistry, JobContext
from .job_store import JobStore
from .task_models import Job

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class WorkerLanes:
    total_slots: int
    priority_slots: int
    priority_threshold: int

    @property
    def normal_slots(self) -> int:
        return max(0, self.total_slots - self.priority_slots)


def plan_lanes(
        *,
        max_parallel_jobs: int = 1,
        priority_lane_slots: int = 1,
        priority_threshold: int = 90,
) -> WorkerLanes:
    """Clamp lane configuration and warn about setups that can starve a lane."""
    total = max(1, int(max_parallel_jobs))
    prio = max(0, int(priority_lane_slots))

    if int(max_parallel_jobs) < 1:
        logger.warning("max_parallel_jobs=%s clamped to 1", max_parallel_jobs)
    if prio > total:
        logger.warning("priority_lane_slots=%s exceeds total slots=%s", prio, total)
        prio = total
    lanes = WorkerLanes(total_slots=total, priority_slots=prio, priority_threshold=int(priority_threshold))
    if lanes.normal_slots == 0:
        logger.warning("Normal lane has zero slots; jobs below priority %s may starve", priority_threshold)
    return lanes


async def _heartbeat(store: JobStore, job_id: int, every_seconds: float) -> None:
    while True:
        await asyncio.sleep(every_seconds)
        try:
            store.heartbeat(job_id)
        except Exception:
            logger.debug("heartbeat failed job_id=%s", job_id, exc_info=True)


async def run_job(
        store: JobStore,
        handlers: HandlerRegistry,
        job: Job,
        *,
        heartbeat_seconds: float = 1.0,
) -> None:
    """Run one claimed job to completion or to a recorded failure."""
    handler = handlers.get(job.type)
    if handler is None:
        # Unknown type: fail without retry.
        store.fail(job.id, f"Unknown job type: {job.type}")
        return

    ctx = JobContext(job=job, store=store)
    hb = asyncio.create_task(_heartbeat(store, job.id, max(0.25, float(heartbeat_seconds))))
    try:
        if inspect.iscoroutinefunction(handler):
            result = await handler(job, ctx)
        else:
            result = await asyncio.to_thread(handler, job, ctx)
    except Exception as e:
        logger.exception("Job %s type=%s handler failed", job.id, job.type)
        try:
            store.record_failure(job.id, str(e) or e.__class__.__name__)
        except Exception:
            logger.exception("record_failure failed job_id=%s", job.id)
        return
    finally:
        hb.cancel()

    try:
        store.complete(job.id, payload_updates=result if isinstance(result, dict) else None)
    except Exception as e:
        # The completion (and next-step insert) rolled back; count it as a failed attempt.
        logger.exception("complete failed job_id=%s", job.id)
        try:
            store.record_failure(job.id, f"completion failed: {e}")
        except Exception:
            logger.exception("record_failure failed job_id=%s", job.id)


async def run_worker_loop(
        store: JobStore,
        handlers: HandlerRegistry,
        *,
        worker_id: str | None = None,
        interval_seconds: float = 0.5,
        max_parallel_jobs: int = 1,
        priority_threshold: int = 90,
        priority_lane_slots: int = 1,
        heartbeat_seconds: float = 1.0,
        stale_seconds: float = 60.0,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Polling worker loop.

    Every interval_seconds:
    - requeue stale running jobs
    - fill the priority lane with jobs at priority >= priority_threshold
    - fill the normal lane with the rest
    Each claimed job runs as its own asyncio task.

    Stops when stop_event is set (in-flight jobs are awaited) or when cancelled
    (in-flight jobs are cancelled and later recovered by the stale-heartbeat sweep).
    """
    lanes = plan_lanes(
        max_parallel_jobs=max_parallel_jobs,
        priority_lane_slots=priority_lane_slots,
        priority_threshold=priority_threshold,
    )
    wid = worker_id or f"inproc-{os.getpid()}"
    sleep_s = max(0.01, float(interval_seconds))
    active_priority: set[asyncio.Task[None]] = set()
    active_normal: set[asyncio.Task[None]] = set()

    def _launch(job: Job, lane: set[asyncio.Task[None]]) -> None:
        t = asyncio.create_task(run_job(store, handlers, job, heartbeat_seconds=heartbeat_seconds))
        lane.add(t)
        t.add_done_callback(lane.discard)

    logger.info(
        "Worker loop started id=%s slots=%d (priority=%d >=%d, normal=%d)",
        wid,
        lanes.total_slots,
        lanes.priority_slots,
        lanes.priority_threshold,
        lanes.normal_slots,
    )

    try:
        while stop_event is None or not stop_event.is_set():
            try:
                store.requeue_stale_running(stale_seconds=stale_seconds)
            except Exception:
                logger.exception("requeue_stale_running failed")

            try:
                while len(active_priority) < lanes.priority_slots:
                    job = store.claim_next(wid, min_priority=lanes.priority_threshold)
                    if job is None:
                        break
                    _launch(job, active_priority)

                while len(active_normal) < lanes.normal_slots:
                    job = store.claim_next(wid, max_priority=lanes.priority_threshold - 1)
                    if job is None:
                        break
                    _launch(job, active_normal)
            except Exception:
                logger.exception("claim_next failed")

            if stop_event is None:
                await asyncio.sleep(sleep_s)
            else:
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)
                except asyncio.TimeoutError:
                    pass

        in_flight = active_priority | active_normal
        if in_flight:
            logger.info("Worker loop stopping; waiting for %d job(s)", len(in_flight))
            await asyncio.gather(*in_flight, return_exceptions=True)
    except asyncio.CancelledError:
        for t in active_priority | active_normal:
            t.cancel()
        raise
    finally:
        logger.info("Worker loop stopped id=%s", wid)
