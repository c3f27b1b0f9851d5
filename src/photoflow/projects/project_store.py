# src/photoflow/projects/project_store.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class Project:
    id: int
    project_folder: str
    project_name: str
    created_at: float
    updated_at: float


class ProjectStore:
    """
    Minimal SQLite project table (id, folder, name).

    Only what task orchestration needs to resolve project hints for job items;
    the full photo/project CRUD lives elsewhere.
    """

    def __init__(self, db_path: str | Path = "projects.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()
        logger.info("ProjectStore ready db=%s", self._db_path)

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_folder TEXT NOT NULL UNIQUE,
                    project_name TEXT NOT NULL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_project(row: sqlite3.Row) -> Project:
        return Project(
            id=int(row["id"]),
            project_folder=str(row["project_folder"]),
            project_name=str(row["project_name"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    def create_project(self, *, project_folder: str, project_name: str | None = None) -> Project:
        folder = (project_folder or "").strip()
        if not folder:
            raise ValueError("project_folder is required")
        name = (project_name or "").strip() or folder

        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "INSERT INTO projects(project_folder, project_name, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (folder, name, now, now),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for projects insert")
            logger.debug("Project created id=%s folder=%s", rowid, folder)
            return Project(id=int(rowid), project_folder=folder, project_name=name, created_at=now, updated_at=now)
        finally:
            conn.close()

    def get_by_id(self, project_id: int) -> Project | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM projects WHERE id = ?", (int(project_id),)).fetchone()
            return self._row_to_project(row) if row else None
        finally:
            conn.close()

    def get_by_folder(self, project_folder: str) -> Project | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM projects WHERE project_folder = ?", (project_folder,)).fetchone()
            return self._row_to_project(row) if row else None
        finally:
            conn.close()

    def list_projects(self) -> list[Project]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT * FROM projects ORDER BY id ASC").fetchall()
            return [self._row_to_project(r) for r in rows]
        finally:
            conn.close()
