# src/photoflow/tasks/errors.py

"""
Task/job error types.

All errors inherit from TaskError so callers (CLI, API layer) can catch one type.
Store-level failures (sqlite3.Error) are not wrapped and propagate unchanged.
"""

from __future__ import annotations


class TaskError(Exception):
    """Base exception for task orchestration failures."""


class UnknownTaskType(TaskError):
    """Raised when a task type has no definition in the registry."""

    def __init__(self, task_type: str) -> None:
        self.task_type = task_type
        super().__init__(f"Unknown task type: {task_type}")


class TaskDefinitionError(TaskError):
    """Raised at load time when a task definition is malformed."""

    def __init__(self, task_type: str, reason: str) -> None:
        self.task_type = task_type
        self.reason = reason
        super().__init__(f"Invalid task definition '{task_type}': {reason}")


class JobNotFoundError(TaskError):
    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
