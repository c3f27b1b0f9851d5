# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from photoflow.cli.bootstrap import create_initial_state
from photoflow.core.state import AppState
from photoflow.tasks.events import JobEventBus
from photoflow.tasks.job_store import JobStore
from photoflow.tasks.task_definitions import TaskDefinitionRegistry

from .fakes import FakeJobRepo, FakeProjectRepo

# Small, readable pipelines; the packaged definitions are covered separately.
PIPELINES = {
    "upload_postprocess": {
        "label": "Upload post-processing",
        "scope": "project",
        "steps": [
            {"type": "ingest", "priority": 90},
            {
                "type": "generate_derivatives",
                "priority": 70,
                "skip_if": {"flag": "need_generate_derivatives", "equals": False},
            },
            {"type": "finalize", "priority": 50},
        ],
    },
    "abc": {
        "scope": "project",
        "steps": [
            {"type": "A", "priority": 10},
            {"type": "B", "priority": 20, "skip_if": {"flag": "flag", "equals": True}},
            {"type": "C", "priority": 30, "scope": "global"},
        ],
    },
    "fragile": {
        "scope": "project",
        "steps": [
            {"type": "move", "priority": 80, "on_failure": "compensate", "compensate": "cleanup"},
            {"type": "verify", "priority": 50},
        ],
    },
    "undoable": {
        "scope": "project",
        "steps": [
            {"type": "apply", "on_failure": "compensate", "compensate": "revert"},
            {"type": "revert"},
            {"type": "report"},
        ],
    },
    "retrying": {
        "scope": "project",
        "steps": [{"type": "flaky", "on_failure": "retry", "max_attempts": 2}],
    },
    "fanout": {
        "scope": "project",
        "steps": [
            {"type": "scan", "join": "each"},
            {"type": "index"},
        ],
    },
    "sweep": {
        "scope": "global",
        "user_relevant": False,
        "steps": [{"type": "sweep_trash", "priority": 40}],
    },
    "placeholder": {"scope": "project", "metadata_only": True, "steps": []},
}


@pytest.fixture()
def registry() -> TaskDefinitionRegistry:
    return TaskDefinitionRegistry.from_mapping(PIPELINES)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="photoflow-test",
        log_level="DEBUG",
        data_dir=tmp_path,
        jobs_db_path=tmp_path / "jobs.sqlite3",
        projects_db_path=tmp_path / "projects.sqlite3",
        task_definitions_path=None,
        default_tenant_id="user_0",
        job_chunk_size=2000,
        max_attempts_default=3,
        worker_enabled=True,
        worker_interval_seconds=0.01,
        max_parallel_jobs=2,
        priority_threshold=90,
        priority_lane_slots=1,
        heartbeat_seconds=0.25,
        stale_seconds=60.0,
        maintenance_enabled=False,
        maintenance_interval_seconds=3600.0,
        maintenance_task_types=["maintenance_global", "project_scavenge_global"],
        folder_discovery_enabled=False,
        folder_discovery_interval_seconds=300.0,
        console_enabled=False,
    )


@pytest.fixture()
def state(settings: SimpleNamespace, registry: TaskDefinitionRegistry) -> AppState:
    """
    AppState wired through the real composition root.

    NOTE: We keep real SQLite stores here because their transactional behavior
    is part of what we want to test.
    """
    return create_initial_state(settings=settings, registry=registry)


@pytest.fixture()
def events() -> JobEventBus:
    return JobEventBus()


@pytest.fixture()
def job_store(tmp_path: Path, events: JobEventBus) -> JobStore:
    return JobStore(tmp_path / "jobs.sqlite3", chunk_size=3, events=events)


@pytest.fixture()
def fake_jobs() -> FakeJobRepo:
    return FakeJobRepo(chunk_size=3)


@pytest.fixture()
def fake_projects() -> FakeProjectRepo:
    repo = FakeProjectRepo()
    repo.add(5, "p5", "Project Five")
    repo.add(7, "p7", "Project Seven")
    return repo
