"""Schema creation and versioned upgrades.

``init_db`` applies ``schema.sql`` (every statement is ``IF NOT EXISTS``) and
then any entry of :data:`MIGRATIONS` newer than the recorded
``schema_version``.  Migrations are Python callables so that data upgrades
(rewriting stored project documents) sit next to DDL ones.
"""

from __future__ import annotations

import json
import sqlite3
from typing import Callable

from loguru import logger

from notemap.config import settings
from notemap.models import Project


def _index_asset_kinds(conn: sqlite3.Connection) -> None:
    conn.execute("CREATE INDEX IF NOT EXISTS idx_assets_kind ON assets(kind)")


def _normalise_documents(conn: sqlite3.Connection) -> None:
    """Rewrite stored documents into the current wire shape.

    Older documents carry single ``groupId``/``groupName`` fields, ISO
    timestamps or no project type; parsing and re-serialising fixes all three.
    """
    rows = conn.execute("SELECT id, document FROM projects").fetchall()
    for row in rows:
        project = Project.from_dict(json.loads(row["document"]))
        conn.execute(
            "UPDATE projects SET document = ?, type = ?, created_at = ? WHERE id = ?",
            (json.dumps(project.to_dict()), project.type, project.created_at, row["id"]),
        )
    if rows:
        logger.info("Normalised {} stored project documents", len(rows))


# (version, description, upgrade); append only.
MIGRATIONS: list[tuple[int, str, Callable[[sqlite3.Connection], None]]] = [
    (1, "index assets by kind", _index_asset_kinds),
    (2, "normalise legacy project documents", _normalise_documents),
]


def init_db(conn: sqlite3.Connection) -> None:
    """Create every table and bring the schema up to date.  Idempotent."""
    # executescript() commits first; fine for a DDL-only script.
    conn.executescript(settings.schema_path.read_text(encoding="utf-8"))
    migrate(conn)


def current_version(conn: sqlite3.Connection) -> int:
    """Highest applied migration, 0 on a fresh database."""
    row = conn.execute("SELECT COALESCE(MAX(version), 0) FROM schema_version").fetchone()
    return row[0]


def migrate(conn: sqlite3.Connection) -> None:
    """Apply pending migrations, each in its own transaction."""
    applied = current_version(conn)
    for version, description, upgrade in MIGRATIONS:
        if version <= applied:
            continue
        with conn:
            upgrade(conn)
            conn.execute(
                "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                (version, description),
            )
        logger.debug("Applied migration {}: {}", version, description)
