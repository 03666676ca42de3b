"""Give every imported entity a fresh identifier.

Remapping runs in two passes.  The first assigns new ids to notes and frames
and records ``old -> new`` in two separate tables (the two kinds do not
share an id space).  The second rewrites references through those tables:
a ``group_id`` with no entry is cleared and a connection with an unresolved
endpoint is dropped.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from notemap.models import Connection, Frame, ImportBundle, Note, generate_id


@dataclass
class RemapResult:
    notes: list[Note]
    frames: list[Frame]
    connections: list[Connection]
    note_ids: dict[str, str]
    frame_ids: dict[str, str]
    dropped_connections: int = 0


def remap(
    notes: list[Note],
    frames: list[Frame],
    connections: list[Connection],
    id_factory: Callable[[], str] = generate_id,
) -> RemapResult:
    # Pass 1: fresh ids.  A repeated old id keeps its first mapping.
    note_ids: dict[str, str] = {}
    new_note_ids: list[str] = []
    for note in notes:
        new_id = id_factory()
        note_ids.setdefault(note.id, new_id)
        new_note_ids.append(new_id)

    frame_ids: dict[str, str] = {}
    new_frames: list[Frame] = []
    for frame in frames:
        new_id = id_factory()
        frame_ids.setdefault(frame.id, new_id)
        new_frames.append(replace(frame, id=new_id))

    # Pass 2: references.
    new_notes = [
        replace(
            note,
            id=new_id,
            group_ids=[frame_ids[g] for g in note.group_ids if g in frame_ids],
            tags=list(note.tags),
            images=list(note.images),
            group_names=list(note.group_names),
        )
        for note, new_id in zip(notes, new_note_ids)
    ]

    new_connections: list[Connection] = []
    dropped = 0
    for conn in connections:
        src = note_ids.get(conn.from_note_id)
        dst = note_ids.get(conn.to_note_id)
        if src is None or dst is None:
            dropped += 1
            continue
        new_connections.append(
            replace(conn, id=id_factory(), from_note_id=src, to_note_id=dst)
        )

    return RemapResult(
        notes=new_notes,
        frames=new_frames,
        connections=new_connections,
        note_ids=note_ids,
        frame_ids=frame_ids,
        dropped_connections=dropped,
    )


def remap_bundle(bundle: ImportBundle, id_factory: Callable[[], str] = generate_id) -> RemapResult:
    project = bundle.project
    return remap(project.notes, project.frames, project.connections, id_factory)
