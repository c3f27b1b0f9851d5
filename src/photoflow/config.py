# src/photoflow/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing but local paths and tuning knobs; no secrets required.
- Every knob has a default, so a bare checkout runs.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "PHOTOFLOW"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_opt_path(name: str) -> Path | None:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    jobs_db_path: Path
    projects_db_path: Path
    # None -> definitions packaged with photoflow
    task_definitions_path: Path | None

    # ---- Jobs ----
    default_tenant_id: str
    job_chunk_size: int
    max_attempts_default: int

    # ---- Worker ----
    worker_enabled: bool
    worker_interval_seconds: float
    max_parallel_jobs: int
    priority_threshold: int
    priority_lane_slots: int
    heartbeat_seconds: float
    stale_seconds: float

    # ---- Maintenance ----
    maintenance_enabled: bool
    maintenance_interval_seconds: float
    maintenance_task_types: list[str]
    folder_discovery_enabled: bool
    folder_discovery_interval_seconds: float

    # ---- Connector flags ----
    console_enabled: bool

    @staticmethod
    def from_env() -> Settings:
        app_name = _env(_k("APP_NAME"), "photoflow") or "photoflow"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/photoflow"))
        jobs_db_path = _env_path(_k("JOBS_DB_PATH"), data_dir / "jobs.sqlite3")
        projects_db_path = _env_path(_k("PROJECTS_DB_PATH"), data_dir / "projects.sqlite3")
        task_definitions_path = _env_opt_path(_k("TASK_DEFINITIONS_PATH"))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            jobs_db_path=jobs_db_path,
            projects_db_path=projects_db_path,
            task_definitions_path=task_definitions_path,
            default_tenant_id=_env(_k("DEFAULT_TENANT_ID"), "user_0") or "user_0",
            job_chunk_size=_env_int(_k("JOB_CHUNK_SIZE"), 2000),
            max_attempts_default=_env_int(_k("MAX_ATTEMPTS_DEFAULT"), 3),
            worker_enabled=_env_bool(_k("WORKER_ENABLED"), True),
            worker_interval_seconds=_env_float(_k("WORKER_INTERVAL_SECONDS"), 0.5),
            max_parallel_jobs=_env_int(_k("MAX_PARALLEL_JOBS"), 2),
            priority_threshold=_env_int(_k("PRIORITY_THRESHOLD"), 90),
            priority_lane_slots=_env_int(_k("PRIORITY_LANE_SLOTS"), 1),
            heartbeat_seconds=_env_float(_k("HEARTBEAT_SECONDS"), 1.0),
            stale_seconds=_env_float(_k("STALE_SECONDS"), 60.0),
            maintenance_enabled=_env_bool(_k("MAINTENANCE_ENABLED"), True),
            maintenance_interval_seconds=_env_float(_k("MAINTENANCE_INTERVAL_SECONDS"), 3600.0),
            maintenance_task_types=_env_list(
                _k("MAINTENANCE_TASK_TYPES"),
                ["maintenance_global", "project_scavenge_global"],
            ),
            folder_discovery_enabled=_env_bool(_k("FOLDER_DISCOVERY_ENABLED"), True),
            folder_discovery_interval_seconds=_env_float(_k("FOLDER_DISCOVERY_INTERVAL_SECONDS"), 300.0),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env; use config_local.py only for on/off switches.
try:
    import config_local as _config_local  # type: ignore
except ImportError:
    _config_local = None

if _config_local is not None:
    for _name in ("CONSOLE_ENABLED", "WORKER_ENABLED", "MAINTENANCE_ENABLED"):
        if hasattr(_config_local, _name):
            object.__setattr__(SETTINGS, _name.lower(), bool(getattr(_config_local, _name)))  # type: ignore[misc]


def get_settings() -> Settings:
    return SETTINGS
