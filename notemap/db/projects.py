"""Project persistence with images kept out of the project document.

``save_project`` rewrites every inline image (note images, sketches, the
board background) into an ``asset:<id>`` reference stored in ``assets``;
``load_project`` returns that reference form, or resolves every reference
back to inline data when ``hydrate=True``.
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import dataclass, replace
from typing import Optional

from loguru import logger

from notemap.db.assets import (
    asset_id_from_ref,
    cleanup_orphaned_assets,
    load_asset,
    set_project_refs,
    store_asset,
)
from notemap.errors import StaleProject
from notemap.models import (
    PROJECT_TYPES,
    Note,
    Project,
    generate_id,
    is_asset_ref,
    is_inline_image,
    now_ms,
)


@dataclass
class ProjectSummary:
    id: str
    name: str
    type: str
    created_at: float
    notes_count: int
    has_images: bool
    has_sketches: bool


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _externalise(
    conn: sqlite3.Connection, kind: str, value: str, asset_ids: set[str]
) -> str:
    if is_inline_image(value):
        value = store_asset(conn, kind, value)
    if is_asset_ref(value):
        asset_ids.add(asset_id_from_ref(value))
    return value


def _externalise_note(conn: sqlite3.Connection, note: Note, asset_ids: set[str]) -> Note:
    images = [_externalise(conn, "image", img, asset_ids) for img in note.images]
    sketch = _externalise(conn, "sketch", note.sketch, asset_ids) if note.sketch else None
    return replace(note, images=images, sketch=sketch)


def _hydrate_note(conn: sqlite3.Connection, note: Note) -> Note:
    images: list[str] = []
    for img in note.images:
        if not is_asset_ref(img):
            images.append(img)
            continue
        data = load_asset(conn, img)
        if data is None:
            logger.warning("Image {} for note {} is missing from the asset store", img, note.id)
            continue
        images.append(data)

    sketch = note.sketch
    if sketch and is_asset_ref(sketch):
        sketch = load_asset(conn, sketch)
        if sketch is None:
            logger.warning("Sketch {} for note {} is missing from the asset store", note.sketch, note.id)
    return replace(note, images=images, sketch=sketch)


def hydrate_project(conn: sqlite3.Connection, project: Project) -> Project:
    """Resolve every asset reference in *project* to inline data."""
    background = project.background_image
    if background and is_asset_ref(background):
        background = load_asset(conn, background)
    return project.with_changes(
        notes=[_hydrate_note(conn, n) for n in project.notes],
        background_image=background,
    )


def _row_to_project(row: sqlite3.Row) -> Project:
    data = json.loads(row["document"])
    data["version"] = row["version"]
    return Project.from_dict(data)


def _claim_version(conn: sqlite3.Connection, project: Project) -> None:
    """Take the write lock and check *project* was read from the stored version.

    Raises:
        StaleProject: Another writer saved the project after *project* was
            loaded; saving it would discard that write.
    """
    # A no-op write makes SQLite take the write lock before the version is read.
    conn.execute("UPDATE projects SET version = version WHERE id = ?", (project.id,))
    row = conn.execute("SELECT version FROM projects WHERE id = ?", (project.id,)).fetchone()
    if row is not None and row["version"] != project.version:
        raise StaleProject(
            f"Project '{project.name}' was modified elsewhere "
            f"(stored version {row['version']}, saving from {project.version})"
        )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def save_project(conn: sqlite3.Connection, project: Project) -> Project:
    """Persist *project* as one unit and return its stored (reference) form.

    Idempotent: saving the stored form again rewrites the same document and
    references the same assets.
    """
    if project.type not in PROJECT_TYPES:
        raise ValueError(f"Unknown project type {project.type!r}")

    asset_ids: set[str] = set()
    version = max(now_ms(), project.version + 1)
    with conn:
        _claim_version(conn, project)
        notes = [_externalise_note(conn, n, asset_ids) for n in project.notes]
        background = (
            _externalise(conn, "background", project.background_image, asset_ids)
            if project.background_image
            else None
        )
        stored = project.with_changes(notes=notes, background_image=background, version=version)
        conn.execute(
            """
            INSERT INTO projects (id, name, type, created_at, version, document)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                type = excluded.type,
                created_at = excluded.created_at,
                version = excluded.version,
                document = excluded.document
            """,
            (
                stored.id,
                stored.name,
                stored.type,
                stored.created_at,
                version,
                json.dumps(stored.to_dict()),
            ),
        )
        set_project_refs(conn, stored.id, asset_ids)
        cleanup_orphaned_assets(conn)

    logger.debug(
        "Saved project {} ({} notes, {} assets)", stored.id, len(stored.notes), len(asset_ids)
    )
    return stored


def load_project(
    conn: sqlite3.Connection, project_id: str, hydrate: bool = False
) -> Optional[Project]:
    """Fetch a project by id.  Returns ``None`` if not found."""
    row = conn.execute(
        "SELECT * FROM projects WHERE id = ?", (project_id,)
    ).fetchone()
    if row is None:
        return None
    project = _row_to_project(row)
    return hydrate_project(conn, project) if hydrate else project


def load_all_projects(conn: sqlite3.Connection, hydrate: bool = False) -> list[Project]:
    rows = conn.execute("SELECT * FROM projects ORDER BY created_at").fetchall()
    projects = [_row_to_project(r) for r in rows]
    if hydrate:
        projects = [hydrate_project(conn, p) for p in projects]
    return projects


def create_project(
    conn: sqlite3.Connection,
    name: str,
    project_type: str,
    background_image: Optional[str] = None,
) -> Project:
    """Create and persist an empty project."""
    project = Project(
        id=generate_id(),
        name=name,
        type=project_type,
        created_at=now_ms(),
        background_image=background_image,
    )
    return save_project(conn, project)


def delete_project(conn: sqlite3.Connection, project_id: str) -> None:
    """Delete a project and every asset only it referenced.

    This is a no-op if the project does not exist.
    """
    with conn:
        conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        cleanup_orphaned_assets(conn)


def list_project_summaries(conn: sqlite3.Connection) -> list[ProjectSummary]:
    summaries: list[ProjectSummary] = []
    for project in load_all_projects(conn):
        summaries.append(
            ProjectSummary(
                id=project.id,
                name=project.name,
                type=project.type,
                created_at=project.created_at,
                notes_count=len(project.notes),
                has_images=any(n.images for n in project.notes),
                has_sketches=any(n.sketch for n in project.notes),
            )
        )
    return summaries


def find_project(conn: sqlite3.Connection, identifier: str) -> Optional[Project]:
    """Look a project up by id first, then by exact name."""
    project = load_project(conn, identifier)
    if project is not None:
        return project
    row = conn.execute(
        "SELECT * FROM projects WHERE name = ? ORDER BY created_at LIMIT 1", (identifier,)
    ).fetchone()
    return _row_to_project(row) if row else None
