"""Portable project exports: full JSON bundles and tabular CSV."""

from __future__ import annotations

import csv
import io
from typing import Any

from notemap.models import COMPACT, MAP, Note, Project, is_asset_ref

BUNDLE_VERSION = "1.0"
CSV_BOM = "\ufeff"
MAX_TAG_COLUMNS = 3
MAX_GROUP_COLUMNS = 3


def _unresolved_refs(project: Project) -> int:
    count = sum(1 for n in project.notes for img in n.images if is_asset_ref(img))
    count += sum(1 for n in project.notes if n.sketch and is_asset_ref(n.sketch))
    if project.background_image and is_asset_ref(project.background_image):
        count += 1
    return count


def export_project_json(project: Project) -> dict[str, Any]:
    """Serialise a hydrated project into a self-contained bundle.

    Raises:
        ValueError: If any image field is still an asset reference.
    """
    if _unresolved_refs(project):
        raise ValueError("Project must be loaded with hydrate=True before export")
    return {"version": BUNDLE_VERSION, "project": project.to_dict()}


def _group_labels(project: Project, note: Note) -> list[str]:
    frames = {f.id: f.title for f in project.frames}
    labels = [frames[g] for g in note.group_ids if g in frames]
    return labels or list(note.group_names)


def _coordinate_cell(project: Project, note: Note) -> str:
    if project.type == MAP:
        return f"{note.coords.lat:.6f}, {note.coords.lng:.6f}"
    return f"{note.board_x:.2f}, {note.board_y:.2f}"


def _pad(values: list[str], size: int) -> list[str]:
    return (values + [""] * size)[:size]


def export_csv(project: Project) -> str:
    """Render one row per non-compact note, prefixed with a UTF-8 BOM.

    Every cell is double-quoted with embedded quotes doubled.
    """
    coord_header = "Latitude, Longitude" if project.type == MAP else "X, Y"
    headers = [coord_header, "Text"]
    headers += [f"Tag{i}" for i in range(1, MAX_TAG_COLUMNS + 1)]
    headers += [f"Group{i}" for i in range(1, MAX_GROUP_COLUMNS + 1)]

    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for note in sorted(project.notes, key=lambda n: n.created_at):
        if note.variant == COMPACT:
            continue
        writer.writerow(
            [_coordinate_cell(project, note), note.text]
            + _pad([t.label for t in note.tags], MAX_TAG_COLUMNS)
            + _pad(_group_labels(project, note), MAX_GROUP_COLUMNS)
        )
    return CSV_BOM + buf.getvalue()
