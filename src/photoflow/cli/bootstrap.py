# src/photoflow/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- loads the task definition registry,
- wires the job store, starter, advancer and handlers into AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..projects.project_store import ProjectStore
from ..tasks.events import JobEventBus
from ..tasks.handlers import HandlerRegistry, noop_handler
from ..tasks.job_store import JobStore
from ..tasks.maintenance import FOLDER_DISCOVERY_JOB_TYPE
from ..tasks.task_advancer import CompletionAdvancer
from ..tasks.task_definitions import TaskDefinitionRegistry, load_task_definitions
from ..tasks.task_starter import TaskStarter

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.jobs_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.projects_db_path.parent.mkdir(parents=True, exist_ok=True)


def register_noop_handlers(handlers: HandlerRegistry, registry: TaskDefinitionRegistry) -> None:
    """
    Give every job type named by a definition (plus folder_discovery) the noop handler.

    Real photo processors are registered by the embedding application; this keeps
    a bare checkout able to run chains end to end.
    """
    job_types: set[str] = {FOLDER_DISCOVERY_JOB_TYPE}
    for definition in registry:
        for step in definition.steps:
            job_types.add(step.job_type)
            if step.compensate:
                job_types.add(step.compensate)
    for job_type in sorted(job_types):
        if job_type not in handlers:
            handlers.register(job_type, noop_handler)


def create_initial_state(*, settings=None, registry: TaskDefinitionRegistry | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if registry is None:
        registry = load_task_definitions(getattr(settings, "task_definitions_path", None))

    events = JobEventBus()
    job_store = JobStore(settings.jobs_db_path, chunk_size=settings.job_chunk_size, events=events)
    projects = ProjectStore(settings.projects_db_path)

    starter = TaskStarter(
        registry,
        job_store,
        projects,
        default_tenant_id=settings.default_tenant_id,
        max_attempts_default=settings.max_attempts_default,
    )
    advancer = CompletionAdvancer(registry, job_store, max_attempts_default=settings.max_attempts_default)
    job_store.add_completion_hook(advancer.on_job_completed)
    job_store.add_failure_hook(advancer.on_job_failed)

    handlers = HandlerRegistry()
    register_noop_handlers(handlers, registry)

    logger.info("State ready: task types=%d handlers=%d", len(registry), len(handlers.job_types()))
    return AppState(
        settings=settings,
        registry=registry,
        events=events,
        job_store=job_store,
        projects=projects,
        starter=starter,
        advancer=advancer,
        handlers=handlers,
    )
