"""Commands for adding notes, frames and connections to the active project."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from notemap.db import open_db
from notemap.db.projects import load_project, save_project
from notemap.editing import add_frame, add_note, connect_notes, delete_note
from notemap.errors import StaleProject
from notemap.images import file_to_data_url
from notemap.models import VARIANTS, Project
from notemap.photos import import_photos

from cli.context import load_context, require_context

note_app = typer.Typer(help="Edit notes in the active project.")


def _edit(apply) -> None:
    """Load the active project, apply *apply* to it, and save the result.

    *apply* returns ``(updated_project, message)``; a ``ValueError`` from it
    is reported and exits with code 1.
    """
    ctx = load_context()
    with open_db() as conn:
        project = load_project(conn, ctx.active_project_id)
        if project is None:
            typer.echo(f"❌ Active project {ctx.active_project_id} no longer exists.")
            raise typer.Exit(code=1)
        try:
            updated, message = apply(project)
        except ValueError as exc:
            typer.echo(f"❌ {exc}")
            raise typer.Exit(code=1)
        try:
            save_project(conn, updated)
        except StaleProject as exc:
            typer.echo(f"❌ {exc.message} Run the command again.")
            raise typer.Exit(code=1)
    typer.echo(message)


@note_app.command("add")
@require_context
def note_add(
    text: str = typer.Argument(..., help="Note text."),
    lat: Optional[float] = typer.Option(None, help="Latitude (map projects)."),
    lng: Optional[float] = typer.Option(None, help="Longitude (map projects)."),
    x: Optional[float] = typer.Option(None, help="Board x position (board projects)."),
    y: Optional[float] = typer.Option(None, help="Board y position (board projects)."),
    variant: str = typer.Option("standard", help="standard | compact | text"),
    tag: List[str] = typer.Option([], "--tag", "-t", help="Tag label (repeatable)."),
    frame: Optional[str] = typer.Option(None, "--frame", help="Frame id to place the note in."),
    image: List[Path] = typer.Option([], "--image", help="Image file to attach (repeatable)."),
) -> None:
    """Pin a note to the active project."""
    if variant not in VARIANTS:
        typer.echo(f"❌ Unknown variant {variant!r}. Use: {' | '.join(VARIANTS)}")
        raise typer.Exit(code=1)

    images = []
    for path in image:
        try:
            images.append(file_to_data_url(path))
        except (OSError, ValueError) as exc:
            typer.echo(f"❌ Could not read image {path}: {exc}")
            raise typer.Exit(code=1)

    def apply(project: Project):
        updated, note = add_note(
            project,
            text,
            lat=lat,
            lng=lng,
            board_x=x,
            board_y=y,
            variant=variant,
            tags=tag,
            frame_id=frame,
            images=images,
        )
        return updated, f"✅ Note added: {note.id}"

    _edit(apply)


@note_app.command("frame")
@require_context
def note_frame(
    title: str = typer.Argument(..., help="Frame title."),
    x: float = typer.Option(..., help="Left edge."),
    y: float = typer.Option(..., help="Top edge."),
    width: Optional[float] = typer.Option(None, help="Frame width."),
    height: Optional[float] = typer.Option(None, help="Frame height."),
) -> None:
    """Add a frame to the active board project."""

    def apply(project: Project):
        updated, created = add_frame(project, title, x, y, width, height)
        return updated, f"✅ Frame added: {created.title} ({created.id})"

    _edit(apply)


@note_app.command("connect")
@require_context
def note_connect(
    from_id: str = typer.Argument(..., help="Source note id."),
    to_id: str = typer.Argument(..., help="Target note id."),
) -> None:
    """Draw a connection between two notes on the active board."""

    def apply(project: Project):
        updated, connection = connect_notes(project, from_id, to_id)
        return updated, f"🔗 Connected {from_id[:8]} → {to_id[:8]} ({connection.id})"

    _edit(apply)


@note_app.command("delete")
@require_context
def note_delete(
    note_id: str = typer.Argument(..., help="Note id."),
) -> None:
    """Remove a note and its connections from the active project."""

    def apply(project: Project):
        if not any(n.id == note_id for n in project.notes):
            raise ValueError(f"Note not found: {note_id!r}")
        return delete_note(project, note_id), f"🗑️  Deleted note {note_id}"

    _edit(apply)


@note_app.command("import-photos")
@require_context
def note_import_photos(
    photos: List[Path] = typer.Argument(..., help="Geotagged photo files."),
) -> None:
    """Pin one note per geotagged photo to the active map project.

    Photos whose GPS position already holds a note with images are skipped.
    """
    payloads = []
    for path in photos:
        try:
            payloads.append((path.name, path.read_bytes()))
        except OSError as exc:
            typer.echo(f"❌ Could not read photo {path}: {exc}")
            raise typer.Exit(code=1)

    def apply(project: Project):
        result = import_photos(project, payloads)
        return result.project, f"📷 {result.text()}"

    _edit(apply)
