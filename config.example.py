# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Use:
- .env (local, gitignored)
- config_local.py (local on/off switches, gitignored)

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "PHOTOFLOW_APP_NAME": "App display name (default: photoflow).",
    "PHOTOFLOW_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Paths (gitignored)
    "PHOTOFLOW_DATA_DIR": "Local data directory (default: .local/photoflow). Holds photoflow.log.",
    "PHOTOFLOW_JOBS_DB_PATH": "JobStore SQLite path (default: <data_dir>/jobs.sqlite3).",
    "PHOTOFLOW_PROJECTS_DB_PATH": "ProjectStore SQLite path (default: <data_dir>/projects.sqlite3).",
    "PHOTOFLOW_TASK_DEFINITIONS_PATH": "Task definitions JSON (default: definitions packaged with photoflow).",
    # Jobs
    "PHOTOFLOW_DEFAULT_TENANT_ID": "Tenant used when a task is started without one (default: user_0).",
    "PHOTOFLOW_JOB_CHUNK_SIZE": "Max items per job; larger item lists are split into chunks (default: 2000).",
    "PHOTOFLOW_MAX_ATTEMPTS_DEFAULT": "Attempts for steps with on_failure=retry and no max_attempts (default: 3).",
    # Worker
    "PHOTOFLOW_WORKER_ENABLED": "Run the in-process worker loop (true/false, default: true).",
    "PHOTOFLOW_WORKER_INTERVAL_SECONDS": "Polling interval (default: 0.5).",
    "PHOTOFLOW_MAX_PARALLEL_JOBS": "Total worker slots, priority lane included (default: 2).",
    "PHOTOFLOW_PRIORITY_THRESHOLD": "Jobs at or above this priority use the priority lane (default: 90).",
    "PHOTOFLOW_PRIORITY_LANE_SLOTS": "Slots reserved for the priority lane (default: 1).",
    "PHOTOFLOW_HEARTBEAT_SECONDS": "Heartbeat period for running jobs (default: 1.0).",
    "PHOTOFLOW_STALE_SECONDS": "Running jobs without a heartbeat this long are requeued (default: 60).",
    # Maintenance
    "PHOTOFLOW_MAINTENANCE_ENABLED": "Start maintenance tasks periodically (true/false, default: true).",
    "PHOTOFLOW_MAINTENANCE_INTERVAL_SECONDS": "Seconds between maintenance rounds (default: 3600).",
    "PHOTOFLOW_MAINTENANCE_TASK_TYPES": (
        "Comma/space separated task types (default: maintenance_global project_scavenge_global)."
    ),
    "PHOTOFLOW_FOLDER_DISCOVERY_ENABLED": "Queue folder_discovery jobs with the maintenance scheduler (default: true).",
    "PHOTOFLOW_FOLDER_DISCOVERY_INTERVAL_SECONDS": "Seconds between folder_discovery jobs (default: 300).",
    # Connectors
    "PHOTOFLOW_CONSOLE_ENABLED": "Enable console REPL (true/false, default: true).",
}
