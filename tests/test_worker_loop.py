# tests/test_worker_loop.py

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

import pytest

from photoflow.core.state import AppState
from photoflow.tasks import task_api
from photoflow.tasks.handlers import JobContext, noop_handler
from photoflow.tasks.task_models import ItemStatus, Job, JobStatus
from photoflow.tasks.worker_loop import plan_lanes, run_worker_loop


def _jobs_of(state: AppState, job_type: str) -> list[Job]:
    return [j for j in state.job_store.list_jobs(limit=500) if j.type == job_type]


async def _run_until(state: AppState, done: Callable[[], bool], timeout: float = 5.0) -> None:
    stop = asyncio.Event()
    runner = asyncio.create_task(
        run_worker_loop(
            state.job_store,
            state.handlers,
            worker_id="test-worker",
            interval_seconds=0.01,
            max_parallel_jobs=2,
            priority_lane_slots=1,
            heartbeat_seconds=0.25,
            stop_event=stop,
        )
    )
    deadline = time.monotonic() + timeout
    while not done() and time.monotonic() < deadline:
        await asyncio.sleep(0.02)
    stop.set()
    await asyncio.wait_for(runner, timeout=5.0)


@pytest.mark.asyncio
async def test_upload_chain_skips_derivatives_when_flagged(state: AppState) -> None:
    project = state.projects.create_project(project_folder="p5", project_name="Project Five")

    def ingest(job: Job, ctx: JobContext):
        noop_handler(job, ctx)
        return {"need_generate_derivatives": False}

    state.handlers.register("ingest", ingest)
    handle = state.starter.start_task("upload_postprocess", items=["a.jpg", "b.jpg"], project_id=project.id)

    def finished() -> bool:
        return any(j.status == JobStatus.COMPLETED for j in _jobs_of(state, "finalize"))

    await _run_until(state, finished)

    assert finished()
    assert _jobs_of(state, "generate_derivatives") == []
    items = state.job_store.list_items(handle.first_job_id)
    assert [(i.filename, i.project_folder, i.status) for i in items] == [
        ("a.jpg", "p5", ItemStatus.DONE),
        ("b.jpg", "p5", ItemStatus.DONE),
    ]
    (final,) = _jobs_of(state, "finalize")
    assert final.payload["task_id"] == handle.task_id
    assert final.payload["need_generate_derivatives"] is False

    progress = task_api.describe_task(state, handle.task_id)
    assert progress is not None
    assert progress.status == "completed"
    assert progress.current_step == "finalize"


@pytest.mark.asyncio
async def test_full_chain_runs_every_step_in_order(state: AppState) -> None:
    order: list[str] = []

    async def record(job: Job, ctx: JobContext):
        order.append(job.type)
        return None

    for job_type in ("ingest", "generate_derivatives", "finalize"):
        state.handlers.register(job_type, record)
    handle = state.starter.start_task("upload_postprocess")

    await _run_until(state, lambda: "finalize" in order)

    assert order == ["ingest", "generate_derivatives", "finalize"]
    assert task_api.describe_task(state, handle.task_id).job_count == 3


@pytest.mark.asyncio
async def test_handler_errors_are_retried_then_fail(state: AppState) -> None:
    calls = {"n": 0}

    def flaky(job: Job, ctx: JobContext):
        calls["n"] += 1
        raise RuntimeError(f"boom {calls['n']}")

    state.handlers.register("flaky", flaky)
    handle = state.starter.start_task("retrying")

    def failed() -> bool:
        return state.job_store.get_job(handle.first_job_id).status == JobStatus.FAILED

    await _run_until(state, failed)

    job = state.job_store.get_job(handle.first_job_id)
    assert job.status == JobStatus.FAILED
    assert job.attempts == 2
    assert job.error_message == "boom 2"
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_retry_recovers_on_second_attempt(state: AppState) -> None:
    calls = {"n": 0}

    def flaky(job: Job, ctx: JobContext):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OSError("transient")
        return None

    state.handlers.register("flaky", flaky)
    handle = state.starter.start_task("retrying")

    def completed() -> bool:
        return state.job_store.get_job(handle.first_job_id).status == JobStatus.COMPLETED

    await _run_until(state, completed)
    assert completed()
    assert state.job_store.get_job(handle.first_job_id).attempts == 1


@pytest.mark.asyncio
async def test_failed_step_runs_compensation(state: AppState) -> None:
    def move(job: Job, ctx: JobContext):
        raise RuntimeError("target folder missing")

    state.handlers.register("move", move)
    handle = state.starter.start_task("fragile")

    def cleaned() -> bool:
        return any(j.status == JobStatus.COMPLETED for j in _jobs_of(state, "cleanup"))

    await _run_until(state, cleaned)

    assert cleaned()
    (cleanup,) = _jobs_of(state, "cleanup")
    assert cleanup.payload["failed_job_id"] == handle.first_job_id
    assert cleanup.payload["error"] == "target folder missing"
    assert _jobs_of(state, "verify") == []
    assert task_api.describe_task(state, handle.task_id).status == "failed"


@pytest.mark.asyncio
async def test_unknown_job_type_fails_without_retry(state: AppState) -> None:
    job = state.job_store.enqueue(tenant_id="user_0", job_type="mystery", max_attempts=3)

    def failed() -> bool:
        return state.job_store.get_job(job.id).status == JobStatus.FAILED

    await _run_until(state, failed)

    got = state.job_store.get_job(job.id)
    assert got.status == JobStatus.FAILED
    assert got.attempts == 0
    assert "Unknown job type" in (got.error_message or "")


@pytest.mark.asyncio
async def test_loop_stops_on_cancel(state: AppState) -> None:
    runner = asyncio.create_task(run_worker_loop(state.job_store, state.handlers, interval_seconds=0.01))
    await asyncio.sleep(0.05)
    runner.cancel()
    with pytest.raises(asyncio.CancelledError):
        await runner


def test_plan_lanes_clamps_configuration() -> None:
    lanes = plan_lanes(max_parallel_jobs=4, priority_lane_slots=1, priority_threshold=90)
    assert (lanes.total_slots, lanes.priority_slots, lanes.normal_slots) == (4, 1, 3)

    lanes = plan_lanes(max_parallel_jobs=0, priority_lane_slots=5)
    assert lanes.total_slots == 1
    assert lanes.priority_slots == 1
    assert lanes.normal_slots == 0
