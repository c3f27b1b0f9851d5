# src/photoflow/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..projects.project_store import ProjectStore
from ..tasks.events import JobEventBus
from ..tasks.handlers import HandlerRegistry
from ..tasks.job_store import JobStore
from ..tasks.task_advancer import CompletionAdvancer
from ..tasks.task_definitions import TaskDefinitionRegistry
from ..tasks.task_starter import TaskStarter


@dataclass
class AppState:
    """Everything wired once at startup and shared by connectors and the worker."""

    # Store Settings on the state for easy access in other modules.
    settings: Any

    registry: TaskDefinitionRegistry
    events: JobEventBus
    job_store: JobStore
    projects: ProjectStore
    starter: TaskStarter
    advancer: CompletionAdvancer
    handlers: HandlerRegistry

    lock: threading.RLock = field(default_factory=threading.RLock)
