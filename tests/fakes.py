# tests/fakes.py

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from photoflow.tasks.task_models import Job, JobItem, JobStatus


@dataclass(slots=True, frozen=True)
class FakeProject:
    id: int
    project_folder: str
    project_name: str


class FakeProjectRepo:
    """In-memory ProjectRepo."""

    def __init__(self) -> None:
        self.projects: dict[int, FakeProject] = {}

    def add(self, project_id: int, folder: str, name: str) -> FakeProject:
        p = FakeProject(id=project_id, project_folder=folder, project_name=name)
        self.projects[project_id] = p
        return p

    def get_by_id(self, project_id: int) -> FakeProject | None:
        return self.projects.get(project_id)


class FakeJobRepo:
    """
    In-memory JobRepo used for starter/advancer unit tests.

    This avoids SQLite and makes tests purely about orchestration logic:
    which jobs get enqueued, with which payload, and how many times.
    """

    def __init__(self, chunk_size: int = 2000) -> None:
        self.chunk_size = chunk_size
        self.jobs: dict[int, Job] = {}
        self.items: dict[int, list[JobItem]] = {}
        self.enqueue_calls = 0
        self._next_id = 1

    def _new_job(self, **kwargs: Any) -> Job:
        job = Job(
            id=self._next_id,
            tenant_id=kwargs["tenant_id"],
            project_id=kwargs.get("project_id"),
            type=kwargs["job_type"],
            status=JobStatus.QUEUED,
            priority=kwargs.get("priority", 0),
            scope=kwargs.get("scope"),
            payload=dict(kwargs.get("payload") or {}),
            created_at=time.time(),
            chunk_index=kwargs.get("chunk_index"),
            chunk_count=kwargs.get("chunk_count"),
            chunk_group=kwargs.get("chunk_group"),
            dedupe_key=kwargs.get("dedupe_key"),
            max_attempts=kwargs.get("max_attempts", 1),
        )
        self._next_id += 1
        self.jobs[job.id] = job
        return job

    def enqueue(
        self,
        *,
        tenant_id: str,
        job_type: str,
        project_id: int | None = None,
        payload: dict[str, Any] | None = None,
        priority: int = 0,
        scope: str | None = None,
        max_attempts: int = 1,
        dedupe_key: str | None = None,
        progress_total: int | None = None,
    ) -> Job:
        self.enqueue_calls += 1
        if dedupe_key is not None and self.find_by_dedupe_key(dedupe_key) is not None:
            raise ValueError(f"duplicate dedupe_key {dedupe_key}")
        return self._new_job(
            tenant_id=tenant_id,
            job_type=job_type,
            project_id=project_id,
            payload=payload,
            priority=priority,
            scope=scope,
            max_attempts=max_attempts,
            dedupe_key=dedupe_key,
        )

    def enqueue_with_items(
        self,
        *,
        tenant_id: str,
        job_type: str,
        items: Sequence[JobItem],
        project_id: int | None = None,
        payload: dict[str, Any] | None = None,
        priority: int = 0,
        scope: str | None = None,
        max_attempts: int = 1,
        auto_chunk: bool = True,
    ) -> list[Job]:
        self.enqueue_calls += 1
        size = self.chunk_size if auto_chunk else len(items)
        chunks = [list(items[i : i + size]) for i in range(0, len(items), size)]
        group = uuid.uuid4().hex if len(chunks) > 1 else None
        out: list[Job] = []
        for idx, chunk in enumerate(chunks):
            job = self._new_job(
                tenant_id=tenant_id,
                job_type=job_type,
                project_id=project_id,
                payload=payload,
                priority=priority,
                scope=scope,
                max_attempts=max_attempts,
                chunk_index=idx if group else None,
                chunk_count=len(chunks) if group else None,
                chunk_group=group,
            )
            self.items[job.id] = chunk
            out.append(job)
        return out

    def find_by_dedupe_key(self, dedupe_key: str) -> Job | None:
        for j in self.jobs.values():
            if j.dedupe_key == dedupe_key:
                return j
        return None

    def list_chunk_siblings(self, chunk_group: str) -> list[Job]:
        sibs = [j for j in self.jobs.values() if j.chunk_group == chunk_group]
        return sorted(sibs, key=lambda j: (j.chunk_index or 0, j.id))

    # ---- test helpers ----

    def mark(self, job_id: int, status: JobStatus, **payload_updates: Any) -> Job:
        j = self.jobs[job_id]
        j = replace(j, status=status, payload={**j.payload, **payload_updates})
        self.jobs[job_id] = j
        return j

    def of_type(self, job_type: str) -> list[Job]:
        return [j for j in self.jobs.values() if j.type == job_type]
