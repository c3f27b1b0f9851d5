# src/photoflow/tasks/job_store.py

from __future__ import annotations

import contextlib
import json
import logging
import sqlite3
import threading
import time
import uuid
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

from .errors import JobNotFoundError
from .events import JobEventBus, JobUpdate
from .task_models import ItemStatus, Job, JobItem, JobStatus

logger = logging.getLogger(__name__)

JobHook = Callable[[Job], object]

DEFAULT_CHUNK_SIZE = 2000


class JobStore:
    """
    SQLite job queue.

    The schema is intentionally simple and migration-safe:
    - create tables if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Thread-safety:
    - each call opens its own SQLite connection
    - inside `transaction()` the calling thread reuses one connection, so nested
      store calls (e.g. completion hook -> enqueue) commit or roll back together

    Events are published to the bus only after the owning transaction commits.
    """

    def __init__(
        self,
        db_path: str | Path = "jobs.sqlite3",
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        events: JobEventBus | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._chunk_size = max(1, int(chunk_size))
        self._events = events
        self._local = threading.local()
        self._completion_hooks: list[JobHook] = []
        self._failure_hooks: list[JobHook] = []
        self._ensure_schema()
        logger.info(
            "JobStore ready db=%s total=%s chunk_size=%s",
            self._db_path,
            self.count_jobs(),
            self._chunk_size,
        )

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- hooks ----

    def add_completion_hook(self, hook: JobHook) -> None:
        """Called with the finished job inside the completion transaction."""
        self._completion_hooks.append(hook)

    def add_failure_hook(self, hook: JobHook) -> None:
        """Called with the failed job (attempts exhausted) inside the failure transaction."""
        self._failure_hooks.append(hook)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode; multi-statement work goes through transaction().
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return
        conn = self._get_conn()
        try:
            yield conn
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        BEGIN IMMEDIATE ... COMMIT on a thread-local connection.

        Re-entrant: a nested call joins the outer transaction.
        """
        outer = getattr(self._local, "conn", None)
        if outer is not None:
            yield outer
            return

        conn = self._get_conn()
        self._local.conn = conn
        self._local.pending = []
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except BaseException:
            with contextlib.suppress(sqlite3.Error):
                conn.execute("ROLLBACK")
            self._local.pending = []
            raise
        finally:
            self._local.conn = None
            conn.close()

        pending: list[JobUpdate] = self._local.pending
        self._local.pending = []
        for update in pending:
            self._publish(update)

    def _emit(self, job: Job, *, progress_only: bool = False) -> None:
        update = JobUpdate.from_job(job, progress_only=progress_only)
        if getattr(self._local, "conn", None) is not None:
            self._local.pending.append(update)
        else:
            self._publish(update)

    def _publish(self, update: JobUpdate) -> None:
        if self._events is None:
            return
        self._events.publish(update)

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    project_id INTEGER,
                    type TEXT NOT NULL,
                    status TEXT NOT NULL DEFAULT 'queued',
                    priority INTEGER NOT NULL DEFAULT 0,
                    scope TEXT,
                    payload TEXT NOT NULL DEFAULT '{}',
                    task_id TEXT,
                    created_at REAL NOT NULL,
                    started_at REAL,
                    finished_at REAL,
                    heartbeat_at REAL,
                    worker_id TEXT,
                    chunk_index INTEGER,
                    chunk_count INTEGER,
                    chunk_group TEXT,
                    dedupe_key TEXT,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    max_attempts INTEGER NOT NULL DEFAULT 1,
                    error_message TEXT,
                    progress_done INTEGER NOT NULL DEFAULT 0,
                    progress_total INTEGER
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS job_items (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    job_id INTEGER NOT NULL REFERENCES jobs(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL DEFAULT 0,
                    filename TEXT,
                    photo_id INTEGER,
                    project_id INTEGER,
                    project_folder TEXT,
                    project_name TEXT,
                    extra TEXT NOT NULL DEFAULT '{}',
                    status TEXT NOT NULL DEFAULT 'pending',
                    message TEXT,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(jobs)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE jobs ADD COLUMN {name} {decl}")
                logger.info("JobStore migration: added column %s", name)

            add_col("scope", "TEXT")
            add_col("task_id", "TEXT")
            add_col("heartbeat_at", "REAL")
            add_col("worker_id", "TEXT")
            add_col("chunk_index", "INTEGER")
            add_col("chunk_count", "INTEGER")
            add_col("chunk_group", "TEXT")
            add_col("dedupe_key", "TEXT")
            add_col("attempts", "INTEGER NOT NULL DEFAULT 0")
            add_col("max_attempts", "INTEGER NOT NULL DEFAULT 1")
            add_col("error_message", "TEXT")
            add_col("progress_done", "INTEGER NOT NULL DEFAULT 0")
            add_col("progress_total", "INTEGER")

            cur.execute("CREATE INDEX IF NOT EXISTS idx_jobs_dispatch ON jobs(status, priority, created_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_jobs_task ON jobs(task_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_jobs_project ON jobs(project_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_jobs_chunk_group ON jobs(chunk_group)")
            cur.execute(
                "CREATE UNIQUE INDEX IF NOT EXISTS idx_jobs_dedupe ON jobs(dedupe_key) "
                "WHERE dedupe_key IS NOT NULL"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_job_items_job ON job_items(job_id, status)")
        finally:
            conn.close()

    @staticmethod
    def _json_to_str(obj: dict[str, Any] | None) -> str:
        if not obj:
            return "{}"
        return json.dumps(obj, ensure_ascii=False)

    @staticmethod
    def _str_to_json(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else {}
        except json.JSONDecodeError:
            logger.warning("Corrupt JSON column ignored: %.80s", s)
            return {}

    def _row_to_job(self, row: sqlite3.Row) -> Job:
        return Job(
            id=int(row["id"]),
            tenant_id=str(row["tenant_id"]),
            project_id=int(row["project_id"]) if row["project_id"] is not None else None,
            type=str(row["type"]),
            status=JobStatus.from_db(row["status"]),
            priority=int(row["priority"] or 0),
            scope=row["scope"],
            payload=self._str_to_json(row["payload"]),
            created_at=float(row["created_at"] or 0.0),
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            heartbeat_at=row["heartbeat_at"],
            worker_id=row["worker_id"],
            chunk_index=row["chunk_index"],
            chunk_count=row["chunk_count"],
            chunk_group=row["chunk_group"],
            dedupe_key=row["dedupe_key"],
            attempts=int(row["attempts"] or 0),
            max_attempts=int(row["max_attempts"] or 1),
            error_message=row["error_message"],
            progress_done=int(row["progress_done"] or 0),
            progress_total=row["progress_total"],
        )

    def _row_to_item(self, row: sqlite3.Row) -> JobItem:
        return JobItem(
            id=int(row["id"]),
            job_id=int(row["job_id"]),
            position=int(row["position"] or 0),
            filename=row["filename"],
            photo_id=row["photo_id"],
            project_id=row["project_id"],
            project_folder=row["project_folder"],
            project_name=row["project_name"],
            extra=self._str_to_json(row["extra"]),
            status=ItemStatus.from_db(row["status"]),
            message=row["message"],
        )

    def _fetch_job(self, conn: sqlite3.Connection, job_id: int) -> Job | None:
        row = conn.execute("SELECT * FROM jobs WHERE id = ?", (int(job_id),)).fetchone()
        return self._row_to_job(row) if row else None

    def _insert_job(
        self,
        conn: sqlite3.Connection,
        *,
        tenant_id: str,
        project_id: int | None,
        job_type: str,
        payload: dict[str, Any] | None,
        priority: int,
        scope: str | None,
        max_attempts: int,
        dedupe_key: str | None,
        progress_total: int | None,
        chunk_index: int | None = None,
        chunk_count: int | None = None,
        chunk_group: str | None = None,
    ) -> int:
        if not job_type or not job_type.strip():
            raise ValueError("job_type is required")
        if not tenant_id:
            raise ValueError("tenant_id is required")

        task_id = (payload or {}).get("task_id")
        cur = conn.execute(
            """
            INSERT INTO jobs(
                tenant_id, project_id, type, status, priority, scope, payload, task_id,
                created_at, chunk_index, chunk_count, chunk_group, dedupe_key,
                attempts, max_attempts, progress_done, progress_total
            )
            VALUES (?, ?, ?, 'queued', ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, 0, ?)
            """,
            (
                str(tenant_id),
                project_id,
                job_type.strip(),
                int(priority),
                scope,
                self._json_to_str(payload),
                str(task_id) if task_id else None,
                time.time(),
                chunk_index,
                chunk_count,
                chunk_group,
                dedupe_key,
                max(1, int(max_attempts)),
                progress_total,
            ),
        )
        rowid = cur.lastrowid
        if rowid is None:
            raise RuntimeError("SQLite did not return lastrowid for jobs insert")
        return int(rowid)

    # ---- enqueue ----

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
    ) -> Job:
        with self.transaction() as conn:
            job_id = self._insert_job(
                conn,
                tenant_id=tenant_id,
                project_id=project_id,
                job_type=job_type,
                payload=payload,
                priority=priority,
                scope=scope,
                max_attempts=max_attempts,
                dedupe_key=dedupe_key,
                progress_total=progress_total,
            )
            job = self._fetch_job(conn, job_id)
            if job is None:
                raise RuntimeError(f"Job {job_id} vanished right after insert")
            self._emit(job)

        logger.debug(
            "Job enqueued id=%s type=%s priority=%s scope=%s task_id=%s",
            job.id,
            job.type,
            job.priority,
            job.scope,
            job.payload.get("task_id"),
        )
        return job

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
    ) -> list[Job]:
        """
        Enqueue one job per chunk of `items` (a single job when auto_chunk is False).

        All jobs and item rows are created in one transaction. Chunk siblings share
        payload and chunk_group and carry chunk_index/chunk_count.
        """
        if not items:
            raise ValueError("items must not be empty")

        size = self._chunk_size if auto_chunk else len(items)
        chunks = [list(items[i : i + size]) for i in range(0, len(items), size)]
        chunk_count = len(chunks)
        chunk_group = uuid.uuid4().hex if chunk_count > 1 else None

        jobs: list[Job] = []
        now = time.time()
        with self.transaction() as conn:
            for idx, chunk in enumerate(chunks):
                job_id = self._insert_job(
                    conn,
                    tenant_id=tenant_id,
                    project_id=project_id,
                    job_type=job_type,
                    payload=payload,
                    priority=priority,
                    scope=scope,
                    max_attempts=max_attempts,
                    dedupe_key=None,
                    progress_total=len(chunk),
                    chunk_index=idx if chunk_count > 1 else None,
                    chunk_count=chunk_count if chunk_count > 1 else None,
                    chunk_group=chunk_group,
                )
                conn.executemany(
                    """
                    INSERT INTO job_items(
                        job_id, position, filename, photo_id, project_id,
                        project_folder, project_name, extra, status, message,
                        created_at, updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, NULL, ?, ?)
                    """,
                    [
                        (
                            job_id,
                            pos,
                            it.filename,
                            it.photo_id,
                            it.project_id,
                            it.project_folder,
                            it.project_name,
                            self._json_to_str(it.extra),
                            it.status.value,
                            now,
                            now,
                        )
                        for pos, it in enumerate(chunk)
                    ],
                )
                job = self._fetch_job(conn, job_id)
                if job is None:
                    raise RuntimeError(f"Job {job_id} vanished right after insert")
                self._emit(job)
                jobs.append(job)

        logger.debug(
            "Jobs enqueued with items type=%s items=%d chunks=%d task_id=%s",
            job_type,
            len(items),
            chunk_count,
            (payload or {}).get("task_id"),
        )
        return jobs

    # ---- dispatch ----

    def claim_next(
        self,
        worker_id: str | None = None,
        *,
        min_priority: int | None = None,
        max_priority: int | None = None,
        scope: str | None = None,
        tenant_id: str | None = None,
    ) -> Job | None:
        """
        Claim the next queued job: highest priority first, then oldest.

        Atomically transitions queued -> running. Returns None when nothing matches.
        """
        conds = ["status = 'queued'"]
        params: list[Any] = []
        if tenant_id:
            conds.append("tenant_id = ?")
            params.append(tenant_id)
        if scope:
            conds.append("scope = ?")
            params.append(scope)
        if min_priority is not None:
            conds.append("priority >= ?")
            params.append(int(min_priority))
        if max_priority is not None:
            conds.append("priority <= ?")
            params.append(int(max_priority))

        with self.transaction() as conn:
            row = conn.execute(
                f"""
                SELECT id FROM jobs
                WHERE {' AND '.join(conds)}
                ORDER BY priority DESC, created_at ASC, id ASC
                LIMIT 1
                """,
                params,
            ).fetchone()
            if row is None:
                return None

            now = time.time()
            cur = conn.execute(
                """
                UPDATE jobs
                SET status = 'running', started_at = ?, heartbeat_at = ?, worker_id = ?
                WHERE id = ? AND status = 'queued'
                """,
                (now, now, worker_id, int(row["id"])),
            )
            if cur.rowcount != 1:
                return None
            job = self._fetch_job(conn, int(row["id"]))
            if job is not None:
                self._emit(job)
            return job

    def heartbeat(self, job_id: int) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE jobs SET heartbeat_at = ? WHERE id = ? AND status = 'running'",
                (time.time(), int(job_id)),
            )

    def update_progress(self, job_id: int, *, done: int | None = None, total: int | None = None) -> Job | None:
        fields: list[str] = []
        params: list[Any] = []
        if done is not None:
            fields.append("progress_done = ?")
            params.append(int(done))
        if total is not None:
            fields.append("progress_total = ?")
            params.append(int(total))

        with self.transaction() as conn:
            if fields:
                params.append(int(job_id))
                conn.execute(f"UPDATE jobs SET {', '.join(fields)} WHERE id = ?", params)
            job = self._fetch_job(conn, job_id)
            if job is not None and fields:
                self._emit(job, progress_only=True)
            return job

    def update_payload(self, job_id: int, payload: dict[str, Any]) -> Job | None:
        with self.transaction() as conn:
            conn.execute(
                "UPDATE jobs SET payload = ? WHERE id = ?",
                (self._json_to_str(payload), int(job_id)),
            )
            return self._fetch_job(conn, job_id)

    # ---- status transitions ----

    def complete(self, job_id: int, *, payload_updates: dict[str, Any] | None = None) -> Job | None:
        """
        running -> completed, then run completion hooks in the same transaction.

        Returns the completed job, or None when the job was not running (already
        completed, failed, canceled or unknown). A hook error rolls the completion back.
        """
        with self.transaction() as conn:
            current = self._fetch_job(conn, job_id)
            if current is None:
                logger.warning("complete() on unknown job id=%s", job_id)
                return None

            payload = dict(current.payload)
            if payload_updates:
                payload.update(payload_updates)

            cur = conn.execute(
                """
                UPDATE jobs
                SET status = 'completed', finished_at = ?, payload = ?
                WHERE id = ? AND status = 'running'
                """,
                (time.time(), self._json_to_str(payload), int(job_id)),
            )
            if cur.rowcount != 1:
                logger.debug("complete() ignored id=%s status=%s", job_id, current.status.value)
                return None

            job = self._fetch_job(conn, job_id)
            if job is None:
                return None
            self._emit(job)
            for hook in self._completion_hooks:
                hook(job)

        logger.debug("Job %s -> completed type=%s", job.id, job.type)
        return job

    def fail(self, job_id: int, error: str | None = None) -> Job | None:
        """running|queued -> failed, then run failure hooks in the same transaction."""
        now = time.time()
        with self.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE jobs
                SET status = 'failed', error_message = ?, finished_at = ?
                WHERE id = ? AND status IN ('queued', 'running')
                """,
                (str(error or "")[:1000], now, int(job_id)),
            )
            if cur.rowcount != 1:
                return None
            job = self._fetch_job(conn, job_id)
            if job is None:
                return None
            self._emit(job)
            for hook in self._failure_hooks:
                hook(job)

        logger.info("Job %s -> failed type=%s error=%s", job.id, job.type, job.error_message)
        return job

    def record_failure(self, job_id: int, error: str | None = None) -> Job | None:
        """
        Count one failed attempt: requeue while attempts < max_attempts, else fail().
        """
        with self.transaction() as conn:
            conn.execute(
                "UPDATE jobs SET attempts = COALESCE(attempts, 0) + 1, error_message = ? WHERE id = ?",
                (str(error or "")[:1000], int(job_id)),
            )
            job = self._fetch_job(conn, job_id)
            if job is None:
                return None
            if job.attempts < job.max_attempts:
                logger.info(
                    "Job %s attempt %d/%d failed; requeueing",
                    job.id,
                    job.attempts,
                    job.max_attempts,
                )
                return self.requeue(job_id)
            return self.fail(job_id, error)

    def requeue(self, job_id: int) -> Job | None:
        with self.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE jobs
                SET status = 'queued', started_at = NULL, finished_at = NULL,
                    worker_id = NULL, heartbeat_at = NULL
                WHERE id = ? AND status = 'running'
                """,
                (int(job_id),),
            )
            job = self._fetch_job(conn, job_id)
            if job is not None and cur.rowcount == 1:
                self._emit(job)
            return job

    def requeue_stale_running(self, *, stale_seconds: float = 60.0) -> list[int]:
        """Crash recovery: requeue running jobs whose heartbeat is older than stale_seconds."""
        cutoff = time.time() - max(0.0, float(stale_seconds))
        with self.transaction() as conn:
            rows = conn.execute(
                """
                SELECT id FROM jobs
                WHERE status = 'running'
                  AND heartbeat_at IS NOT NULL
                  AND heartbeat_at < ?
                """,
                (cutoff,),
            ).fetchall()
            ids = [int(r["id"]) for r in rows]
            for job_id in ids:
                self.requeue(job_id)

        if ids:
            logger.warning("Requeued %d stale running job(s): %s", len(ids), ids)
        return ids

    def cancel(self, job_id: int) -> Job | None:
        with self.transaction() as conn:
            cur = conn.execute(
                """
                UPDATE jobs SET status = 'canceled', finished_at = ?
                WHERE id = ? AND status IN ('queued', 'running')
                """,
                (time.time(), int(job_id)),
            )
            if cur.rowcount != 1:
                return None
            job = self._fetch_job(conn, job_id)
            if job is not None:
                self._emit(job)
            return job

    def _cancel_where(self, where: str, params: Sequence[Any]) -> int:
        with self.transaction() as conn:
            rows = conn.execute(
                f"SELECT id FROM jobs WHERE {where} AND status IN ('queued', 'running')",
                params,
            ).fetchall()
            for r in rows:
                self.cancel(int(r["id"]))
            return len(rows)

    def cancel_task(self, task_id: str) -> int:
        """Mark every non-terminal job of a task as canceled. Returns the count."""
        n = self._cancel_where("task_id = ?", (str(task_id),))
        logger.info("Canceled %d job(s) for task_id=%s", n, task_id)
        return n

    def cancel_by_project(self, project_id: int) -> int:
        n = self._cancel_where("project_id = ?", (int(project_id),))
        logger.info("Canceled %d job(s) for project_id=%s", n, project_id)
        return n

    # ---- queries ----

    def get_job(self, job_id: int) -> Job | None:
        with self._connection() as conn:
            return self._fetch_job(conn, job_id)

    def require_job(self, job_id: int) -> Job:
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def count_jobs(self) -> int:
        with self._connection() as conn:
            (n,) = conn.execute("SELECT COUNT(*) FROM jobs").fetchone()
            return int(n)

    def count_by_status(self) -> dict[str, int]:
        with self._connection() as conn:
            rows = conn.execute("SELECT status, COUNT(*) AS n FROM jobs GROUP BY status").fetchall()
            return {str(r["status"]): int(r["n"]) for r in rows}

    def list_jobs(self, *, status: JobStatus | None = None, limit: int = 50) -> list[Job]:
        with self._connection() as conn:
            if status is None:
                rows = conn.execute(
                    "SELECT * FROM jobs ORDER BY id DESC LIMIT ?",
                    (int(limit),),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM jobs WHERE status = ? ORDER BY id DESC LIMIT ?",
                    (status.value, int(limit)),
                ).fetchall()
            return [self._row_to_job(r) for r in rows]

    def list_by_project(
        self,
        project_id: int,
        *,
        limit: int = 50,
        offset: int = 0,
        status: JobStatus | None = None,
        job_type: str | None = None,
    ) -> list[Job]:
        conds = ["project_id = ?"]
        params: list[Any] = [int(project_id)]
        if status is not None:
            conds.append("status = ?")
            params.append(status.value)
        if job_type:
            conds.append("type = ?")
            params.append(job_type)
        params.extend([int(limit), int(offset)])

        with self._connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM jobs
                WHERE {' AND '.join(conds)}
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                params,
            ).fetchall()
            return [self._row_to_job(r) for r in rows]

    def list_by_task(self, task_id: str) -> list[Job]:
        """All jobs of a task, oldest first."""
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE task_id = ? ORDER BY id ASC",
                (str(task_id),),
            ).fetchall()
            return [self._row_to_job(r) for r in rows]

    def list_chunk_siblings(self, chunk_group: str) -> list[Job]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM jobs WHERE chunk_group = ? ORDER BY chunk_index ASC, id ASC",
                (chunk_group,),
            ).fetchall()
            return [self._row_to_job(r) for r in rows]

    def find_by_dedupe_key(self, dedupe_key: str) -> Job | None:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM jobs WHERE dedupe_key = ?", (dedupe_key,)).fetchone()
            return self._row_to_job(row) if row else None

    # ---- items ----

    def list_items(self, job_id: int) -> list[JobItem]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM job_items WHERE job_id = ? ORDER BY position ASC, id ASC",
                (int(job_id),),
            ).fetchall()
            return [self._row_to_item(r) for r in rows]

    def next_pending_item(self, job_id: int) -> JobItem | None:
        with self._connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM job_items
                WHERE job_id = ? AND status = 'pending'
                ORDER BY position ASC, id ASC
                LIMIT 1
                """,
                (int(job_id),),
            ).fetchone()
            return self._row_to_item(row) if row else None

    def update_item_status(self, item_id: int, status: ItemStatus, message: str | None = None) -> None:
        with self._connection() as conn:
            conn.execute(
                "UPDATE job_items SET status = ?, message = ?, updated_at = ? WHERE id = ?",
                (status.value, message, time.time(), int(item_id)),
            )
