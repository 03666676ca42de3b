"""Direct edits to a project: add notes, frames and connections.

Every function returns a new :class:`Project`; the input is left untouched.
"""

from __future__ import annotations

from typing import Optional

from notemap.models import (
    MAP,
    VARIANTS,
    Connection,
    Coordinates,
    Frame,
    Note,
    Project,
    generate_id,
    make_tag,
    now_ms,
)


def add_note(
    project: Project,
    text: str,
    *,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    board_x: Optional[float] = None,
    board_y: Optional[float] = None,
    variant: str = "standard",
    tags: Optional[list[str]] = None,
    frame_id: Optional[str] = None,
    images: Optional[list[str]] = None,
) -> tuple[Project, Note]:
    """Append a note positioned in the project's own coordinate system.

    Raises:
        ValueError: Missing coordinates for the project type, an unknown
            variant, or an unknown frame.
    """
    if variant not in VARIANTS:
        raise ValueError(f"Unknown variant {variant!r}")

    coords = None
    if project.type == MAP:
        if lat is None or lng is None:
            raise ValueError("Map notes need lat and lng coordinates")
        coords = Coordinates(lat=lat, lng=lng)
    elif board_x is None or board_y is None:
        raise ValueError("Board notes need x and y positions")

    group_ids: list[str] = []
    group_names: list[str] = []
    if frame_id:
        frame = next((f for f in project.frames if f.id == frame_id), None)
        if frame is None:
            raise ValueError(f"Frame not found: {frame_id!r}")
        group_ids, group_names = [frame.id], [frame.title]

    note = Note(
        id=generate_id(),
        text=text,
        variant=variant,
        tags=[make_tag(label) for label in tags or []],
        group_ids=group_ids,
        group_names=group_names,
        created_at=now_ms(),
        coords=coords,
        board_x=None if coords else board_x,
        board_y=None if coords else board_y,
        images=list(images or []),
    )
    return project.with_changes(notes=list(project.notes) + [note]), note


def add_frame(
    project: Project,
    title: str,
    x: float,
    y: float,
    width: Optional[float] = None,
    height: Optional[float] = None,
) -> tuple[Project, Frame]:
    if project.type == MAP:
        raise ValueError("Frames are only available on board projects")
    frame = Frame(id=generate_id(), title=title, x=x, y=y, width=width, height=height)
    return project.with_changes(frames=list(project.frames) + [frame]), frame


def connect_notes(project: Project, from_note_id: str, to_note_id: str) -> tuple[Project, Connection]:
    if project.type == MAP:
        raise ValueError("Connections are only available on board projects")
    note_ids = {n.id for n in project.notes}
    for nid in (from_note_id, to_note_id):
        if nid not in note_ids:
            raise ValueError(f"Note not found: {nid!r}")
    conn = Connection(id=generate_id(), from_note_id=from_note_id, to_note_id=to_note_id)
    return project.with_changes(connections=list(project.connections) + [conn]), conn


def delete_note(project: Project, note_id: str) -> Project:
    """Remove a note and every connection touching it."""
    return project.with_changes(
        notes=[n for n in project.notes if n.id != note_id],
        connections=[
            c for c in project.connections if note_id not in (c.from_note_id, c.to_note_id)
        ],
    )
