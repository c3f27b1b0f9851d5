# tests/test_task_advancer.py

from __future__ import annotations

from photoflow.tasks.task_advancer import CompletionAdvancer
from photoflow.tasks.task_definitions import TaskDefinitionRegistry
from photoflow.tasks.task_models import JobItem, JobStatus
from photoflow.tasks.task_starter import TaskStarter

from .fakes import FakeJobRepo, FakeProjectRepo


def _start(registry, jobs, task_type, **kwargs):
    handle = TaskStarter(registry, jobs).start_task(task_type, **kwargs)
    return handle, jobs.jobs[handle.first_job_id]


def test_advances_to_next_step_with_payload_flags(registry: TaskDefinitionRegistry, fake_jobs: FakeJobRepo) -> None:
    handle, a = _start(registry, fake_jobs, "abc", payload={"keep": "me"})
    a = fake_jobs.mark(a.id, JobStatus.COMPLETED, note=1)

    nxt = CompletionAdvancer(registry, fake_jobs).on_job_completed(a)

    assert nxt is not None
    assert nxt.type == "B"
    assert nxt.priority == 20
    assert nxt.payload["task_id"] == handle.task_id
    assert nxt.payload["task_type"] == "abc"
    assert nxt.payload["keep"] == "me"
    assert nxt.payload["note"] == 1
    assert nxt.tenant_id == a.tenant_id
    assert len(fake_jobs.of_type("B")) == 1


def test_last_step_enqueues_nothing(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc")
    c = fake_jobs.enqueue(tenant_id="user_0", job_type="C", payload=dict(a.payload))
    c = fake_jobs.mark(c.id, JobStatus.COMPLETED)
    before = len(fake_jobs.jobs)

    assert CompletionAdvancer(registry, fake_jobs).on_job_completed(c) is None
    assert len(fake_jobs.jobs) == before


def test_conditional_step_is_skipped(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc")
    a = fake_jobs.mark(a.id, JobStatus.COMPLETED, flag=True)

    nxt = CompletionAdvancer(registry, fake_jobs).on_job_completed(a)

    assert nxt is not None and nxt.type == "C"
    assert not fake_jobs.of_type("B")
    # Step C declares its own scope; the dedupe key records the skipped index.
    assert nxt.scope == "global"
    assert nxt.dedupe_key.split(":")[1] == "2"


def test_flag_with_other_value_does_not_skip(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc")
    a = fake_jobs.mark(a.id, JobStatus.COMPLETED, flag=False)
    nxt = CompletionAdvancer(registry, fake_jobs).on_job_completed(a)
    assert nxt is not None and nxt.type == "B"


def test_untracked_job_is_noop(registry, fake_jobs) -> None:
    job = fake_jobs.enqueue(tenant_id="user_0", job_type="A", payload={"other": 1})
    job = fake_jobs.mark(job.id, JobStatus.COMPLETED)
    calls = fake_jobs.enqueue_calls

    assert CompletionAdvancer(registry, fake_jobs).on_job_completed(job) is None
    assert fake_jobs.enqueue_calls == calls


def test_unknown_task_type_and_unmatched_job_type_are_noops(registry, fake_jobs) -> None:
    adv = CompletionAdvancer(registry, fake_jobs)
    ghost = fake_jobs.enqueue(tenant_id="u", job_type="A", payload={"task_id": "t", "task_type": "gone"})
    stray = fake_jobs.enqueue(tenant_id="u", job_type="Z", payload={"task_id": "t", "task_type": "abc"})
    calls = fake_jobs.enqueue_calls

    assert adv.on_job_completed(fake_jobs.mark(ghost.id, JobStatus.COMPLETED)) is None
    assert adv.on_job_completed(fake_jobs.mark(stray.id, JobStatus.COMPLETED)) is None
    assert fake_jobs.enqueue_calls == calls


def test_reinvocation_is_idempotent(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc")
    a = fake_jobs.mark(a.id, JobStatus.COMPLETED)
    adv = CompletionAdvancer(registry, fake_jobs)

    assert adv.on_job_completed(a) is not None
    assert adv.on_job_completed(a) is None
    assert len(fake_jobs.of_type("B")) == 1


def test_chunked_step_waits_for_all_chunks(registry, fake_jobs) -> None:
    handle, _ = _start(registry, fake_jobs, "upload_postprocess", items=[f"{i}.jpg" for i in range(7)])
    assert handle.job_count == 3
    adv = CompletionAdvancer(registry, fake_jobs)

    first, second, third = handle.job_ids
    assert adv.on_job_completed(fake_jobs.mark(first, JobStatus.COMPLETED)) is None
    assert adv.on_job_completed(fake_jobs.mark(third, JobStatus.COMPLETED, chunk_flag="c")) is None
    assert not fake_jobs.of_type("generate_derivatives")

    nxt = adv.on_job_completed(fake_jobs.mark(second, JobStatus.COMPLETED))
    assert nxt is not None and nxt.type == "generate_derivatives"
    assert nxt.payload["chunk_flag"] == "c"
    assert len(fake_jobs.of_type("generate_derivatives")) == 1

    # A late duplicate notification for an earlier chunk does not enqueue again.
    assert adv.on_job_completed(fake_jobs.jobs[first]) is None
    assert len(fake_jobs.of_type("generate_derivatives")) == 1


def test_barrier_skip_requires_every_chunk_to_agree(registry, fake_jobs) -> None:
    handle, _ = _start(registry, fake_jobs, "upload_postprocess", items=[f"{i}.jpg" for i in range(4)])
    adv = CompletionAdvancer(registry, fake_jobs)
    a, b = handle.job_ids
    adv.on_job_completed(fake_jobs.mark(a, JobStatus.COMPLETED, need_generate_derivatives=False))
    nxt = adv.on_job_completed(fake_jobs.mark(b, JobStatus.COMPLETED, need_generate_derivatives=True))
    assert nxt is not None and nxt.type == "generate_derivatives"


def test_join_each_advances_per_chunk(registry, fake_jobs) -> None:
    handle, _ = _start(registry, fake_jobs, "fanout", items=[f"{i}.jpg" for i in range(5)])
    assert handle.job_count == 2
    adv = CompletionAdvancer(registry, fake_jobs)

    for job_id in handle.job_ids:
        assert adv.on_job_completed(fake_jobs.mark(job_id, JobStatus.COMPLETED)) is not None
    assert len(fake_jobs.of_type("index")) == 2


def test_failure_with_compensate_enqueues_cleanup(registry, fake_jobs) -> None:
    _, move = _start(registry, fake_jobs, "fragile")
    move = fake_jobs.mark(move.id, JobStatus.FAILED)
    move.error_message = "disk full"
    adv = CompletionAdvancer(registry, fake_jobs)

    comp = adv.on_job_failed(move)

    assert comp is not None and comp.type == "cleanup"
    assert comp.payload["failed_job_id"] == move.id
    assert comp.payload["error"] == "disk full"
    assert comp.payload["task_id"] == move.payload["task_id"]
    assert adv.on_job_failed(move) is None

    # The compensating job closes the chain; "verify" never runs.
    comp = fake_jobs.mark(comp.id, JobStatus.COMPLETED)
    assert adv.on_job_completed(comp) is None
    assert not fake_jobs.of_type("verify")


def test_failure_without_compensate_halts(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc")
    calls = fake_jobs.enqueue_calls
    assert CompletionAdvancer(registry, fake_jobs).on_job_failed(fake_jobs.mark(a.id, JobStatus.FAILED)) is None
    assert fake_jobs.enqueue_calls == calls


def test_upload_postprocess_scenario_skips_derivatives(registry) -> None:
    jobs = FakeJobRepo()
    projects = FakeProjectRepo()
    projects.add(5, "p5", "Project Five")
    starter = TaskStarter(registry, jobs, projects)
    adv = CompletionAdvancer(registry, jobs)

    handle = starter.start_task("upload_postprocess", items=["a.jpg", "b.jpg"], project_id=5, tenant_id="user_0")

    ingest = jobs.jobs[handle.first_job_id]
    assert ingest.type == "ingest"
    items: list[JobItem] = jobs.items[ingest.id]
    assert [(i.filename, i.project_folder, i.project_name) for i in items] == [
        ("a.jpg", "p5", "Project Five"),
        ("b.jpg", "p5", "Project Five"),
    ]

    nxt = adv.on_job_completed(jobs.mark(ingest.id, JobStatus.COMPLETED, need_generate_derivatives=False))
    assert nxt is not None and nxt.type == "finalize"
    assert nxt.project_id == 5
    assert not jobs.of_type("generate_derivatives")


def test_caller_payload_keys_do_not_end_the_chain(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc", payload={"failed_job_id": 1, "failed_job_type": "A"})
    nxt = CompletionAdvancer(registry, fake_jobs).on_job_completed(fake_jobs.mark(a.id, JobStatus.COMPLETED))
    assert nxt is not None and nxt.type == "B"


def test_compensation_is_told_apart_from_the_same_step_type(registry, fake_jobs) -> None:
    adv = CompletionAdvancer(registry, fake_jobs)

    # "revert" reached as a regular step advances to "report".
    _, apply_ok = _start(registry, fake_jobs, "undoable")
    revert = adv.on_job_completed(fake_jobs.mark(apply_ok.id, JobStatus.COMPLETED))
    assert revert is not None and revert.type == "revert"
    report = adv.on_job_completed(fake_jobs.mark(revert.id, JobStatus.COMPLETED))
    assert report is not None and report.type == "report"

    # "revert" enqueued as compensation for a failed "apply" ends the chain.
    _, apply_bad = _start(registry, fake_jobs, "undoable")
    comp = adv.on_job_failed(fake_jobs.mark(apply_bad.id, JobStatus.FAILED))
    assert comp is not None and comp.type == "revert"
    assert adv.on_job_completed(fake_jobs.mark(comp.id, JobStatus.COMPLETED)) is None
    assert len(fake_jobs.of_type("report")) == 1
    assert adv.on_job_failed(fake_jobs.mark(comp.id, JobStatus.FAILED)) is None


def test_next_job_inherits_scope_unless_step_declares_one(registry, fake_jobs) -> None:
    _, a = _start(registry, fake_jobs, "abc", scope="batch")
    adv = CompletionAdvancer(registry, fake_jobs)

    b = adv.on_job_completed(fake_jobs.mark(a.id, JobStatus.COMPLETED))
    assert b is not None and b.scope == "batch"
    c = adv.on_job_completed(fake_jobs.mark(b.id, JobStatus.COMPLETED))
    assert c is not None and c.scope == "global"
