# src/photoflow/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the orchestration core.

The starter/advancer depend on Protocols instead of concrete implementations.
This keeps the job store and project lookup swappable and makes testing easier.
"""

from collections.abc import Sequence
from typing import Any, Protocol

from ..tasks.task_models import Job, JobItem


class ProjectInfo(Protocol):
    id: int
    project_folder: str
    project_name: str


class ProjectRepo(Protocol):
    def get_by_id(self, project_id: int) -> ProjectInfo | None: ...


class JobRepo(Protocol):
    """
    What the core needs from a job store.

    Guarantees expected from implementations:
    - enqueue/enqueue_with_items assign identity atomically
    - enqueue_with_items is all-or-nothing across chunks
    - completion hooks run exactly once per job reaching "completed", inside the
      transaction that marks it completed
    """

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
    ) -> Job: ...

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
    ) -> list[Job]: ...

    # Advancer API
    def find_by_dedupe_key(self, dedupe_key: str) -> Job | None: ...
    def list_chunk_siblings(self, chunk_group: str) -> list[Job]: ...
