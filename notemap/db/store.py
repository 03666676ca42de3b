"""Thread-safe storage facade consumed by the import orchestrator."""

from __future__ import annotations

import sqlite3
import threading
from typing import Optional, Protocol

from notemap.db import projects as project_db
from notemap.models import Project


class ProjectStore(Protocol):
    def save_project(self, project: Project) -> Project: ...

    def load_project(self, project_id: str, hydrate: bool = False) -> Optional[Project]: ...

    def load_all_projects(self, hydrate: bool = False) -> list[Project]: ...


class SqliteProjectStore:
    """Serialises access to one SQLite connection across worker threads."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn
        self._lock = threading.Lock()

    def save_project(self, project: Project) -> Project:
        with self._lock:
            return project_db.save_project(self.conn, project)

    def load_project(self, project_id: str, hydrate: bool = False) -> Optional[Project]:
        with self._lock:
            return project_db.load_project(self.conn, project_id, hydrate=hydrate)

    def load_all_projects(self, hydrate: bool = False) -> list[Project]:
        with self._lock:
            return project_db.load_all_projects(self.conn, hydrate=hydrate)
