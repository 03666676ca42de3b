"""Utilities for rendering projects in the CLI."""

from __future__ import annotations

from notemap.models import MAP, Note, Project

_VARIANT_ICONS = {"standard": "📝", "compact": "📌", "text": "🔤"}


def _position(project: Project, note: Note) -> str:
    if project.type == MAP and note.coords is not None:
        return f"({note.coords.lat:.5f}, {note.coords.lng:.5f})"
    return f"({note.board_x:.0f}, {note.board_y:.0f})"


def _note_line(project: Project, note: Note) -> str:
    icon = _VARIANT_ICONS.get(note.variant, "📝")
    text = note.text.splitlines()[0] if note.text else "(empty)"
    if len(text) > 48:
        text = text[:45] + "..."
    extras = []
    if note.images:
        extras.append(f"{len(note.images)} img")
    if note.sketch:
        extras.append("sketch")
    if note.tags:
        extras.append(" ".join(f"#{t.label}" for t in note.tags))
    suffix = f"  [{', '.join(extras)}]" if extras else ""
    return f"{icon} {text} {_position(project, note)}{suffix}"


def render_outline(project: Project) -> str:
    """Render a project as an ASCII tree: frames with their notes, then loose notes.

    Map projects have no frames, so every note is listed at the top level.
    """
    lines = [f"{'🗺️' if project.type == MAP else '🧩'} {project.name}"]

    grouped: dict[str, list[Note]] = {f.id: [] for f in project.frames}
    loose: list[Note] = []
    for note in sorted(project.notes, key=lambda n: n.created_at):
        frame = project.frame_for(note)
        if frame is not None:
            grouped[frame.id].append(note)
        else:
            loose.append(note)

    entries: list[tuple[str, list[Note]]] = [
        (f"🖼️ {f.title}", grouped[f.id]) for f in project.frames
    ]
    entries += [(_note_line(project, n), []) for n in loose]

    for i, (label, children) in enumerate(entries):
        last = i == len(entries) - 1
        lines.append(("└── " if last else "├── ") + label)
        child_prefix = "    " if last else "│   "
        for j, child in enumerate(children):
            connector = "└── " if j == len(children) - 1 else "├── "
            lines.append(child_prefix + connector + _note_line(project, child))

    if project.connections:
        texts = {n.id: (n.text.splitlines()[0] if n.text else n.id[:8]) for n in project.notes}
        lines.append("")
        lines.append("Connections:")
        for c in project.connections:
            arrow = "→" if c.arrow else "─"
            lines.append(
                f"  {texts.get(c.from_note_id, c.from_note_id[:8])} {arrow} "
                f"{texts.get(c.to_note_id, c.to_note_id[:8])}"
            )
    return "\n".join(lines)
