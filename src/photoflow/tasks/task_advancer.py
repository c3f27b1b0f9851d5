# src/photoflow/tasks/task_advancer.py

"""
Completion advancer.

Registered as the job store's completion/failure hook. For a finished job that
carries task metadata it:
- finds the job's step in the task definition,
- waits for sibling chunks when the step joins on all chunks,
- evaluates the next step's skip predicate (single-level lookahead),
- enqueues the next step's job with the payload copied forward.

Runs inside the store transaction that marked the job completed, so the status
change and the next job commit together.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..core.ports import JobRepo
from .task_definitions import TaskDefinitionRegistry
from .task_models import FailurePolicy, Job, JobStatus, JoinPolicy, TaskDefinition, TaskRef

logger = logging.getLogger(__name__)


class CompletionAdvancer:
    def __init__(
            self,
            registry: TaskDefinitionRegistry,
            job_store: JobRepo,
            *,
            max_attempts_default: int = 3,
    ) -> None:
        self._registry = registry
        self._jobs = job_store
        self._max_attempts_default = max_attempts_default

    def _resolve(self, job: Job) -> tuple[TaskRef, TaskDefinition, int] | None:
        ref = TaskRef.from_payload(job.payload)
        if ref is None:
            logger.debug("Job %s type=%s carries no task metadata; not advancing", job.id, job.type)
            return None

        definition = self._registry.get(ref.type)
        if definition is None:
            logger.warning("Job %s references unknown task type %s; not advancing", job.id, ref.type)
            return None

        idx = definition.step_index(job.type)
        if idx < 0:
            logger.debug("Job %s type=%s is not a step of %s; ignoring", job.id, job.type, ref.type)
            return None
        return ref, definition, idx

    def _join_chunks(self, job: Job) -> list[Job] | None:
        """
        Sibling chunks of `job` when all of them completed, else None.

        Siblings are ordered by chunk_index.
        """
        if not job.chunk_group:
            return [job]
        siblings = self._jobs.list_chunk_siblings(job.chunk_group)
        waiting = [s.id for s in siblings if s.status != JobStatus.COMPLETED and s.id != job.id]
        if waiting:
            logger.debug(
                "Chunk %s/%s of job group %s done; waiting for %d sibling(s)",
                (job.chunk_index or 0) + 1,
                job.chunk_count,
                job.chunk_group,
                len(waiting),
            )
            return None
        return siblings or [job]

    @staticmethod
    def _is_compensation(definition: TaskDefinition, job: Job) -> bool:
        failed_type = job.payload.get("failed_job_type")
        if not isinstance(failed_type, str):
            return False
        idx = definition.step_index(failed_type)
        return idx >= 0 and definition.steps[idx].compensate == job.type

    def on_job_completed(self, job: Job) -> Job | None:
        """
        Advance the task of a completed job. Returns the enqueued job, if any.

        Untracked jobs, unknown task types, unmatched job types and terminal steps
        are no-ops.
        """
        resolved = self._resolve(job)
        if resolved is None:
            return None
        ref, definition, idx = resolved
        step = definition.steps[idx]

        if self._is_compensation(definition, job):
            # Compensating jobs end the chain.
            logger.info("Task %s: compensating job %s done", ref.id, job.id)
            return None

        payloads: list[Mapping[str, Any]] = [job.payload]
        origin = str(job.id)
        if job.is_chunk and step.join == JoinPolicy.ALL:
            siblings = self._join_chunks(job)
            if siblings is None:
                return None
            payloads = [s.payload for s in siblings]
            origin = str(job.chunk_group)

        next_index = idx + 1
        nxt = definition.step_at(next_index)
        if nxt is None:
            logger.info("Task %s type=%s finished (last step %s)", ref.id, ref.type, job.type)
            return None

        if all(nxt.should_skip(p) for p in payloads):
            logger.info("Task %s: skipping step %s", ref.id, nxt.job_type)
            next_index = idx + 2
            nxt = definition.step_at(next_index)
            if nxt is None:
                logger.info("Task %s type=%s finished (remaining step skipped)", ref.id, ref.type)
                return None

        dedupe_key = f"{ref.id}:{next_index}:{origin}"
        existing = self._jobs.find_by_dedupe_key(dedupe_key)
        if existing is not None:
            logger.info("Task %s: step %s already enqueued as job %s", ref.id, nxt.job_type, existing.id)
            return None

        next_payload: dict[str, Any] = {}
        for p in payloads:
            next_payload.update(p)

        queued = self._jobs.enqueue(
            tenant_id=job.tenant_id,
            project_id=job.project_id,
            job_type=nxt.job_type,
            payload=next_payload,
            priority=nxt.priority,
            scope=nxt.scope or job.scope,
            max_attempts=nxt.attempts_budget(self._max_attempts_default),
            dedupe_key=dedupe_key,
        )
        logger.info(
            "Task %s advanced %s -> %s (job %s, step %d/%d)",
            ref.id,
            job.type,
            nxt.job_type,
            queued.id,
            next_index + 1,
            len(definition.steps),
        )
        return queued

    def on_job_failed(self, job: Job) -> Job | None:
        """Apply the failed step's on_failure policy. Returns a compensating job, if any."""
        resolved = self._resolve(job)
        if resolved is None:
            return None
        ref, definition, idx = resolved
        step = definition.steps[idx]

        if self._is_compensation(definition, job):
            logger.warning(
                "Task %s: compensating job %s (%s) failed: %s", ref.id, job.id, job.type, job.error_message
            )
            return None

        if step.on_failure != FailurePolicy.COMPENSATE or not step.compensate:
            logger.warning(
                "Task %s type=%s halted: job %s (%s) failed after %d attempt(s): %s",
                ref.id,
                ref.type,
                job.id,
                job.type,
                job.attempts,
                job.error_message,
            )
            return None

        dedupe_key = f"{ref.id}:compensate:{job.id}"
        if self._jobs.find_by_dedupe_key(dedupe_key) is not None:
            return None

        payload = {
            **job.payload,
            "failed_job_id": job.id,
            "failed_job_type": job.type,
            "error": job.error_message,
        }
        queued = self._jobs.enqueue(
            tenant_id=job.tenant_id,
            project_id=job.project_id,
            job_type=step.compensate,
            payload=payload,
            priority=step.priority,
            scope=job.scope,
            dedupe_key=dedupe_key,
        )
        logger.warning(
            "Task %s: job %s (%s) failed; enqueued compensating %s job %s",
            ref.id,
            job.id,
            job.type,
            step.compensate,
            queued.id,
        )
        return queued
