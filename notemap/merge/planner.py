"""Pure import planning.

``prepare`` and ``build_plan`` take an explicit :class:`ImportRequest` and
return values only: the merged :class:`Project`, a summary, and a list of
effect descriptions (save, reload, show summary) for a driver to carry out.
Nothing here touches storage, and the active project is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Union

from notemap.errors import IncompatibleProjectType, ProjectNotFound
from notemap.merge.duplicates import find_duplicates, find_frame_match
from notemap.merge.remap import remap_bundle
from notemap.merge.spatial import Offset, apply_offset, compute_offset, offset_frames
from notemap.models import (
    MAP,
    Connection,
    DuplicateCandidate,
    Frame,
    ImportBundle,
    Note,
    Project,
    Resolution,
    generate_id,
    now_ms,
)

IMPORTED_SUFFIX = " (Imported)"


class ImportMode(str, Enum):
    CREATE = "create"
    MERGE = "merge"


class ImportState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    DETECTING = "detecting"
    AWAITING_RESOLUTION = "awaiting_resolution"
    MERGING = "merging"
    PERSISTING = "persisting"
    RELOADING = "reloading"
    DONE = "done"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Effect descriptions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SaveProject:
    project: Project


@dataclass(frozen=True)
class ReloadProject:
    project_id: str


@dataclass(frozen=True)
class ShowSummary:
    text: str


Effect = Union[SaveProject, ReloadProject, ShowSummary]


# ---------------------------------------------------------------------------
# Request / result records
# ---------------------------------------------------------------------------

@dataclass
class ImportRequest:
    mode: ImportMode
    bundle: ImportBundle
    active_project: Optional[Project] = None


@dataclass
class ImportSummary:
    mode: ImportMode
    project_name: str
    notes_added: int = 0
    frames_added: int = 0
    connections_added: int = 0
    notes_skipped: int = 0
    frames_skipped: int = 0
    notes_replaced: int = 0
    connections_dropped: int = 0
    images_uncompressed: int = 0

    def text(self) -> str:
        verb = "Created" if self.mode == ImportMode.CREATE else "Merged into"
        lines = [
            f"{verb} '{self.project_name}': {self.notes_added} notes, "
            f"{self.frames_added} frames, {self.connections_added} connections."
        ]
        if self.notes_skipped or self.frames_skipped:
            lines.append(
                f"Skipped {self.notes_skipped} duplicate notes and "
                f"{self.frames_skipped} duplicate frames."
            )
        if self.notes_replaced:
            lines.append(f"Replaced content of {self.notes_replaced} existing notes.")
        if self.connections_dropped:
            lines.append(f"Dropped {self.connections_dropped} connections with missing endpoints.")
        if self.images_uncompressed:
            lines.append(f"{self.images_uncompressed} images could not be compressed and were kept as-is.")
        return " ".join(lines)


@dataclass
class PreparedImport:
    """Remapped (and, for boards, repositioned) content awaiting resolution."""

    request: ImportRequest
    notes: list[Note]
    frames: list[Frame]
    connections: list[Connection]
    duplicates: list[DuplicateCandidate] = field(default_factory=list)
    # incoming frame id -> existing frame id it duplicates
    frame_matches: dict[str, str] = field(default_factory=dict)
    dropped_connections: int = 0
    offset: Optional[Offset] = None


@dataclass
class ImportPlan:
    project: Project
    summary: ImportSummary
    effects: list[Effect]
    duplicates: list[DuplicateCandidate] = field(default_factory=list)

    def with_project(self, project: Project) -> ImportPlan:
        """Swap the planned project, rewriting the save effect to match."""
        effects = [
            SaveProject(project) if isinstance(e, SaveProject) else e for e in self.effects
        ]
        return replace(self, project=project, effects=effects)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

def prepare(request: ImportRequest, now: Optional[float] = None) -> PreparedImport:
    """Validate the request, remap identities, and detect duplicates.

    Raises:
        ProjectNotFound: Merge mode without an active project.
        IncompatibleProjectType: Bundle and active project types differ.
    """
    bundle = request.bundle
    remapped = remap_bundle(bundle)

    if request.mode == ImportMode.CREATE:
        return PreparedImport(
            request=request,
            notes=remapped.notes,
            frames=remapped.frames,
            connections=remapped.connections,
            dropped_connections=remapped.dropped_connections,
        )

    target = request.active_project
    if target is None:
        raise ProjectNotFound("No active project to merge into")
    if target.type != bundle.project.type:
        raise IncompatibleProjectType(
            f"Cannot merge a {bundle.project.type} project into a {target.type} project"
        )

    if target.type == MAP:
        # Frames and connections only exist on boards.
        notes = [replace(n, group_ids=[]) for n in remapped.notes]
        return PreparedImport(
            request=request,
            notes=notes,
            frames=[],
            connections=[],
            duplicates=find_duplicates(notes, target.notes, MAP),
        )

    offset = compute_offset(target.notes, remapped.notes)
    notes = apply_offset(remapped.notes, offset, now if now is not None else now_ms())
    frames = offset_frames(remapped.frames, offset)

    frame_matches: dict[str, str] = {}
    for frame in frames:
        match = find_frame_match(frame, target.frames)
        if match is not None:
            frame_matches[frame.id] = match.id

    return PreparedImport(
        request=request,
        notes=notes,
        frames=frames,
        connections=remapped.connections,
        duplicates=find_duplicates(notes, target.notes, target.type),
        frame_matches=frame_matches,
        dropped_connections=remapped.dropped_connections,
        offset=offset,
    )


def _effects(project: Project, summary: ImportSummary) -> list[Effect]:
    return [SaveProject(project), ReloadProject(project.id), ShowSummary(summary.text())]


def _plan_create(prepared: PreparedImport, now: float) -> ImportPlan:
    source = prepared.request.bundle.project
    project = Project(
        id=generate_id(),
        name=f"{source.name}{IMPORTED_SUFFIX}",
        type=source.type,
        created_at=now,
        notes=prepared.notes,
        frames=prepared.frames,
        connections=prepared.connections,
        background_image=source.background_image,
    )
    summary = ImportSummary(
        mode=ImportMode.CREATE,
        project_name=project.name,
        notes_added=len(project.notes),
        frames_added=len(project.frames),
        connections_added=len(project.connections),
        connections_dropped=prepared.dropped_connections,
    )
    return ImportPlan(project=project, summary=summary, effects=_effects(project, summary))


def _replace_content(existing: Note, incoming: Note) -> Note:
    return replace(
        existing,
        images=list(incoming.images),
        sketch=incoming.sketch,
        tags=list(incoming.tags),
        variant=incoming.variant,
    )


def _plan_merge(prepared: PreparedImport, resolutions: list[Resolution]) -> ImportPlan:
    target = prepared.request.active_project
    assert target is not None

    actions = {r.import_index: r.action for r in resolutions}
    duplicate_of = {d.import_index: d.existing_note_id for d in prepared.duplicates}

    replacements: dict[str, Note] = {}
    # incoming note id -> note id connections should point at instead
    redirect: dict[str, str] = {}
    kept: list[Note] = []
    skipped = 0

    for index, note in enumerate(prepared.notes):
        existing_id = duplicate_of.get(index)
        if existing_id is None:
            kept.append(note)
            continue
        action = actions.get(index, "skip")
        if action == "keep_both":
            kept.append(note)
        elif action == "replace":
            replacements[existing_id] = note
            redirect[note.id] = existing_id
        else:
            skipped += 1

    new_frames = [f for f in prepared.frames if f.id not in prepared.frame_matches]
    if prepared.frame_matches:
        rewritten: list[Note] = []
        for note in kept:
            group_ids: list[str] = []
            for gid in note.group_ids:
                gid = prepared.frame_matches.get(gid, gid)
                if gid not in group_ids:
                    group_ids.append(gid)
            rewritten.append(replace(note, group_ids=group_ids))
        kept = rewritten

    kept_ids = {n.id for n in kept}
    new_connections: list[Connection] = []
    pruned = 0
    for conn in prepared.connections:
        src = redirect.get(conn.from_note_id, conn.from_note_id)
        dst = redirect.get(conn.to_note_id, conn.to_note_id)
        if (src in kept_ids or src in replacements) and (dst in kept_ids or dst in replacements):
            new_connections.append(replace(conn, from_note_id=src, to_note_id=dst))
        else:
            pruned += 1

    existing_notes = [
        _replace_content(n, replacements[n.id]) if n.id in replacements else n
        for n in target.notes
    ]
    project = target.with_changes(
        notes=existing_notes + kept,
        frames=list(target.frames) + new_frames,
        connections=list(target.connections) + new_connections,
    )
    summary = ImportSummary(
        mode=ImportMode.MERGE,
        project_name=project.name,
        notes_added=len(kept),
        frames_added=len(new_frames),
        connections_added=len(new_connections),
        notes_skipped=skipped,
        frames_skipped=len(prepared.frame_matches),
        notes_replaced=len(replacements),
        connections_dropped=prepared.dropped_connections + pruned,
    )
    return ImportPlan(
        project=project,
        summary=summary,
        effects=_effects(project, summary),
        duplicates=list(prepared.duplicates),
    )


def build_plan(
    prepared: PreparedImport,
    resolutions: Optional[list[Resolution]] = None,
    now: Optional[float] = None,
) -> ImportPlan:
    """Produce the merged project.  Unresolved duplicates are skipped."""
    if prepared.request.mode == ImportMode.CREATE:
        return _plan_create(prepared, now if now is not None else now_ms())
    return _plan_merge(prepared, resolutions or [])


def plan_import(
    request: ImportRequest,
    resolutions: Optional[list[Resolution]] = None,
) -> ImportPlan:
    """One-shot ``prepare`` + ``build_plan``."""
    now = now_ms()
    return build_plan(prepare(request, now=now), resolutions, now=now)
