# src/photoflow/tasks/task_starter.py

"""
Task starter: turns a task request into the first step's job(s).

The task itself is never stored. Its identity (task_id, task_type) is generated
here and embedded in the payload of every job of the chain.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Mapping
from typing import Any

from ..core.ports import JobRepo, ProjectRepo
from .task_definitions import TaskDefinitionRegistry
from .task_models import JobItem, TaskHandle

logger = logging.getLogger(__name__)

_ITEM_FIELDS = ("filename", "photo_id", "project_id", "project_folder", "project_name")

ItemRef = str | Mapping[str, Any]


def item_from_ref(ref: ItemRef) -> JobItem | None:
    """Bare filename or partial descriptor -> JobItem (None for unusable entries)."""
    if isinstance(ref, str):
        name = ref.strip()
        return JobItem(filename=name) if name else None
    if isinstance(ref, Mapping):
        filename = ref.get("filename")
        if not isinstance(filename, str) or not filename.strip():
            return None
        extra = {k: v for k, v in ref.items() if k not in _ITEM_FIELDS}
        return JobItem(
            filename=filename.strip(),
            photo_id=ref.get("photo_id"),
            project_id=ref.get("project_id"),
            project_folder=ref.get("project_folder"),
            project_name=ref.get("project_name"),
            extra=extra,
        )
    return None


def normalize_items(
        items: Iterable[ItemRef] | None,
        *,
        project_hints: Mapping[str, Any] | None = None,
) -> list[JobItem]:
    """
    Normalize heterogeneous item references into JobItem objects.

    Items without project identity (no project_id and no project_folder) get the
    hints merged in; items that already name a project are left untouched.
    """
    if not items:
        return []

    out: list[JobItem] = []
    for ref in items:
        item = item_from_ref(ref)
        if item is None:
            logger.warning("Dropping unusable task item: %r", ref)
            continue
        if project_hints and not item.has_project_identity:
            item.project_id = project_hints.get("project_id")
            item.project_folder = project_hints.get("project_folder")
            if item.project_name is None:
                item.project_name = project_hints.get("project_name")
        out.append(item)
    return out


class TaskStarter:
    def __init__(
            self,
            registry: TaskDefinitionRegistry,
            job_store: JobRepo,
            projects: ProjectRepo | None = None,
            *,
            default_tenant_id: str = "user_0",
            max_attempts_default: int = 3,
    ) -> None:
        self._registry = registry
        self._jobs = job_store
        self._projects = projects
        self._default_tenant_id = default_tenant_id
        self._max_attempts_default = max_attempts_default

    def _project_hints(self, project_id: int) -> dict[str, Any] | None:
        if self._projects is None:
            return None
        project = self._projects.get_by_id(project_id)
        if project is None:
            logger.warning("Project %s not found; items keep their own project hints", project_id)
            return None
        return {
            "project_id": project.id,
            "project_folder": project.project_folder,
            "project_name": project.project_name,
        }

    def start_task(
            self,
            task_type: str,
            *,
            items: Iterable[ItemRef] | None = None,
            project_id: int | None = None,
            tenant_id: str | None = None,
            source: str = "user",
            scope: str | None = None,
            payload: Mapping[str, Any] | None = None,
    ) -> TaskHandle:
        """
        Start a task: enqueue the first step's job(s) and return a handle.

        Raises UnknownTaskType when the registry has no such definition (nothing is
        enqueued). Store errors propagate unchanged.
        """
        definition = self._registry.require(task_type)
        task_id = str(uuid.uuid4())

        first = definition.first_step
        if first is None:
            logger.info("Task %s type=%s has no steps; nothing to enqueue", task_id, task_type)
            return TaskHandle(task_id=task_id, task_type=task_type, first_job_id=None, chunked=False, job_count=0)

        effective_scope = scope or definition.scope_for(first)
        tenant = tenant_id or self._default_tenant_id
        # Caller flags may carry their own source; task identity always wins.
        base_payload: dict[str, Any] = {"source": source, **(payload or {})}
        base_payload.update(task_id=task_id, task_type=task_type)
        max_attempts = first.attempts_budget(self._max_attempts_default)

        hints = self._project_hints(project_id) if project_id is not None else None
        normalized = normalize_items(items, project_hints=hints)

        if normalized:
            jobs = self._jobs.enqueue_with_items(
                tenant_id=tenant,
                project_id=project_id,
                job_type=first.job_type,
                payload=base_payload,
                items=normalized,
                priority=first.priority,
                scope=effective_scope,
                max_attempts=max_attempts,
                auto_chunk=True,
            )
        else:
            jobs = [
                self._jobs.enqueue(
                    tenant_id=tenant,
                    project_id=project_id,
                    job_type=first.job_type,
                    payload=base_payload,
                    priority=first.priority,
                    scope=effective_scope,
                    max_attempts=max_attempts,
                )
            ]

        handle = TaskHandle(
            task_id=task_id,
            task_type=task_type,
            first_job_id=jobs[0].id if jobs else None,
            chunked=len(jobs) > 1,
            job_count=len(jobs),
            job_ids=tuple(j.id for j in jobs),
        )
        logger.info(
            "Task started id=%s type=%s source=%s first_job=%s jobs=%d items=%d",
            task_id,
            task_type,
            base_payload["source"],
            handle.first_job_id,
            handle.job_count,
            len(normalized),
        )
        return handle
