# src/photoflow/cli/commands.py

from __future__ import annotations

import inspect
import logging
import sqlite3
from collections.abc import Callable
from typing import cast

from ..core.state import AppState
from ..tasks import task_api
from ..tasks.errors import TaskError
from ..tasks.task_models import JobStatus

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by connectors (/help, /start, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _parse_int(raw: str) -> int | None:
    try:
        return int(raw)
    except ValueError:
        return None


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    s = state.settings
    counts = state.job_store.count_by_status()
    by_status = ", ".join(f"{k}={v}" for k, v in sorted(counts.items())) or "none"
    return (
        "Status:\n"
        f"  Jobs DB: {s.jobs_db_path}\n"
        f"  Task types: {len(state.registry)}\n"
        f"  Worker: {'ON' if s.worker_enabled else 'OFF'} "
        f"(slots={s.max_parallel_jobs}, priority>={s.priority_threshold})\n"
        f"  Maintenance: {'ON' if s.maintenance_enabled else 'OFF'}\n"
        f"  Jobs: {by_status}"
    )


def cmd_defs(state: AppState, args: list[str]) -> str:
    """
    /defs      -> user-relevant task types
    /defs all  -> every task type
    """
    show_all = bool(args) and args[0].lower() == "all"
    defs = task_api.list_definitions(state, user_relevant_only=not show_all)
    if not defs:
        return "No task definitions."
    lines = ["Task definitions:"]
    for task_type, d in sorted(defs.items()):
        steps = " -> ".join(
            f"{st['type']}{'?' if st['conditional'] else ''}({st['priority']})" for st in d["steps"]
        )
        lines.append(f"  {task_type}: {steps or '(metadata only)'}")
    return "\n".join(lines)


def cmd_start(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /start <task_type> [project=<id>] [file ...]
    """
    if not args:
        return "Usage: /start <task_type> [project=<id>] [file ...]"

    task_type = args[0]
    project_id: int | None = None
    files: list[str] = []
    for a in args[1:]:
        if a.startswith("project="):
            project_id = _parse_int(a.split("=", 1)[1])
            if project_id is None:
                return f"Bad project id: {a}"
        else:
            files.append(a)

    try:
        handle = task_api.start_task(state, task_type, items=files or None, project_id=project_id)
    except TaskError as e:
        return f"Cannot start task: {e}"

    logger.debug("Task started from console: %s", handle.to_dict())
    chunk_note = f" in {handle.job_count} chunks" if handle.chunked else ""
    return f"Task {handle.task_id} ({task_type}) started; first job {handle.first_job_id}{chunk_note}."


def cmd_task(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /task <task_id>"
    progress = task_api.describe_task(state, args[0])
    if progress is None:
        return f"No jobs for task {args[0]}."
    counts = ", ".join(f"{k}={v}" for k, v in sorted(progress.jobs_by_status.items()))
    return (
        f"Task {progress.task_id} ({progress.task_type}): {progress.status}\n"
        f"  Step: {progress.current_step} ({progress.step_index + 1}/{progress.step_count})\n"
        f"  Jobs: {progress.job_count} ({counts})"
    )


def cmd_jobs(state: AppState, args: list[str]) -> str:
    """
    /jobs                  -> newest jobs
    /jobs <status> [limit] -> newest jobs with that status
    """
    status: JobStatus | None = None
    limit = 20
    for a in args:
        n = _parse_int(a)
        if n is not None:
            limit = max(1, n)
            continue
        try:
            status = JobStatus(a.lower())
        except ValueError:
            return f"Unknown status: {a}. Use one of: {', '.join(s.value for s in JobStatus)}"

    jobs = state.job_store.list_jobs(status=status, limit=limit)
    if not jobs:
        return "No jobs."
    lines = ["Jobs (newest first):"]
    for j in jobs:
        ref = j.task
        task_note = f" task={ref.type}:{ref.id}" if ref else ""
        chunk = f" chunk {(j.chunk_index or 0) + 1}/{j.chunk_count}" if j.is_chunk else ""
        err = f" error={j.error_message}" if j.error_message else ""
        lines.append(f"  #{j.id} {j.type} [{j.status.value}] p={j.priority}{chunk}{task_note}{err}")
    return "\n".join(lines)


def cmd_job(state: AppState, args: list[str]) -> str:
    job_id = _parse_int(args[0]) if args else None
    if job_id is None:
        return "Usage: /job <id>"
    try:
        j = state.job_store.require_job(job_id)
    except TaskError as e:
        return str(e)
    items = state.job_store.list_items(j.id)
    done = sum(1 for it in items if it.status.value == "done")
    lines = [
        f"Job #{j.id} {j.type} [{j.status.value}] priority={j.priority} scope={j.scope}",
        f"  Attempts: {j.attempts}/{j.max_attempts}",
        f"  Progress: {j.progress_done}/{j.progress_total if j.progress_total is not None else '?'}",
        f"  Items: {len(items)} ({done} done)",
    ]
    if j.task:
        lines.append(f"  Task: {j.task.type}:{j.task.id}")
    if j.error_message:
        lines.append(f"  Error: {j.error_message}")
    return "\n".join(lines)


def cmd_cancel(state: AppState, args: list[str]) -> str:
    """
    /cancel <task_id>   -> cancel every open job of a task
    /cancel job <id>    -> cancel one job
    """
    if not args:
        return "Usage: /cancel <task_id> | /cancel job <id>"
    if args[0].lower() == "job":
        job_id = _parse_int(args[1]) if len(args) > 1 else None
        if job_id is None:
            return "Usage: /cancel job <id>"
        job = state.job_store.cancel(job_id)
        return f"Job {job_id} canceled." if job else f"Job {job_id} is not queued/running."
    n = task_api.cancel_task(state, args[0])
    return f"Canceled {n} job(s) of task {args[0]}."


def cmd_project(state: AppState, args: list[str]) -> str:
    """
    /project add <folder> [name ...]
    /project <id>
    """
    if not args:
        return "Usage: /project add <folder> [name ...] | /project <id>"
    if args[0].lower() == "add":
        if len(args) < 2:
            return "Usage: /project add <folder> [name ...]"
        name = " ".join(args[2:]) or None
        try:
            p = state.projects.create_project(project_folder=args[1], project_name=name)
        except sqlite3.IntegrityError:
            return f"Project folder {args[1]} already exists."
        return f"Project {p.id} created: {p.project_folder} ({p.project_name})"
    project_id = _parse_int(args[0])
    if project_id is None:
        return f"Bad project id: {args[0]}"
    p = state.projects.get_by_id(project_id)
    if p is None:
        return f"No project {project_id}."
    queued = state.job_store.list_by_project(project_id, status=JobStatus.QUEUED, limit=1000)
    running = state.job_store.list_by_project(project_id, status=JobStatus.RUNNING, limit=1000)
    return (
        f"Project {p.id}: {p.project_folder} ({p.project_name}); "
        f"jobs queued={len(queued)} running={len(running)}"
    )


def cmd_projects(state: AppState, args: list[str]) -> str:
    projects = state.projects.list_projects()
    if not projects:
        return "No projects."
    return "\n".join(["Projects:"] + [f"  {p.id}: {p.project_folder} ({p.project_name})" for p in projects])


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show worker settings and job counts.")
registry.register("defs", cmd_defs, help_text="List task definitions: /defs | /defs all.")
registry.register("start", cmd_start, help_text="Start a task: /start <type> [project=<id>] [file ...].")
registry.register("task", cmd_task, help_text="Show task progress: /task <task_id>.")
registry.register("jobs", cmd_jobs, help_text="List jobs: /jobs [status] [limit].")
registry.register("job", cmd_job, help_text="Show one job: /job <id>.")
registry.register("cancel", cmd_cancel, help_text="Cancel: /cancel <task_id> | /cancel job <id>.")
registry.register("project", cmd_project, help_text="Project: /project add <folder> [name] | /project <id>.")
registry.register("projects", cmd_projects, help_text="List projects.")
