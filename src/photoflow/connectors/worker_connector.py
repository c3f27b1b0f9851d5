# src/photoflow/connectors/worker_connector.py

"""
Background worker connector.

Runs the worker loop (and the maintenance scheduler, when enabled) on its own
asyncio event loop in a daemon thread, so the blocking console REPL can run in
the main thread.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from dataclasses import dataclass

from ..core.state import AppState
from ..tasks.maintenance import run_folder_discovery_scheduler, run_maintenance_scheduler
from ..tasks.worker_loop import run_worker_loop

logger = logging.getLogger(__name__)


async def _run_background(state: AppState, stop_event: asyncio.Event) -> None:
    s = state.settings
    coros = [
        run_worker_loop(
            state.job_store,
            state.handlers,
            interval_seconds=s.worker_interval_seconds,
            max_parallel_jobs=s.max_parallel_jobs,
            priority_threshold=s.priority_threshold,
            priority_lane_slots=s.priority_lane_slots,
            heartbeat_seconds=s.heartbeat_seconds,
            stale_seconds=s.stale_seconds,
            stop_event=stop_event,
        )
    ]
    if s.maintenance_enabled:
        coros.append(
            run_maintenance_scheduler(
                state.starter,
                task_types=s.maintenance_task_types,
                interval_seconds=s.maintenance_interval_seconds,
                stop_event=stop_event,
            )
        )
        if s.folder_discovery_enabled:
            coros.append(
                run_folder_discovery_scheduler(
                    state.job_store,
                    tenant_id=s.default_tenant_id,
                    interval_seconds=s.folder_discovery_interval_seconds,
                    stop_event=stop_event,
                )
            )

    results = await asyncio.gather(*coros, return_exceptions=True)
    for r in results:
        if isinstance(r, Exception):
            logger.error("Background component crashed: %r", r)


@dataclass(slots=True)
class WorkerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal worker stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_worker_in_background(state: AppState) -> WorkerBackgroundRunner | None:
    """Start the worker loop in a background thread with its own event loop."""
    if not state.settings.worker_enabled:
        logger.info("Worker disabled, not starting.")
        return None

    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(_run_background(state, stop_event))
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="photoflow-worker", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Worker thread did not initialize properly.")
        return None

    logger.info("Worker background thread started.")
    return WorkerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
