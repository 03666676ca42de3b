"""Project management commands."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer

from notemap.db import SqliteProjectStore, open_db
from notemap.db.projects import (
    create_project,
    delete_project,
    find_project,
    list_project_summaries,
    load_project,
)
from notemap.exporters import export_csv, export_project_json
from notemap.images import file_to_data_url
from notemap.merge import ImportMode, ImportOrchestrator, ImportOutcome
from notemap.models import PROJECT_TYPES, RESOLUTION_ACTIONS, DuplicateCandidate, Project, Resolution

from cli.context import (
    clear_active_project,
    load_context,
    preference,
    require_context,
    set_active_project,
)
from cli.rendering import render_outline

project_app = typer.Typer(help="Manage map and board projects.")


def _safe_filename(name: str, suffix: str) -> Path:
    safe = "".join(c for c in name if c.isalnum() or c in (" ", "-", "_")).strip()
    return Path(f"{safe.replace(' ', '_') or 'project'}{suffix}")


def _read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        typer.echo(f"❌ Could not read {path}: {exc}")
        raise typer.Exit(code=1)


def _read_image(path: Path) -> str:
    try:
        return file_to_data_url(path)
    except (OSError, ValueError) as exc:
        typer.echo(f"❌ Could not read image {path}: {exc}")
        raise typer.Exit(code=1)


def _report(outcome: ImportOutcome) -> None:
    if not outcome.ok:
        typer.echo(f"❌ {outcome.error_kind}: {outcome.message}")
        raise typer.Exit(code=1)
    typer.echo(f"✅ {outcome.message}")


def _prompting_resolver(existing: Project):
    """Ask the user what to do with each duplicate note."""
    texts = {n.id: n.text for n in existing.notes}

    def resolve(duplicates: list[DuplicateCandidate]) -> list[Resolution]:
        typer.echo(f"⚠️  {len(duplicates)} incoming notes duplicate existing ones.")
        resolutions = []
        for d in duplicates:
            label = texts.get(d.existing_note_id) or "(empty)"
            action = typer.prompt(
                f"  {label!r} [{d.duplicate_type}] skip/replace/keep_both",
                default="skip",
            )
            if action not in RESOLUTION_ACTIONS:
                typer.echo(f"  Unknown action {action!r}; skipping.")
                action = "skip"
            resolutions.append(Resolution(import_index=d.import_index, action=action))
        return resolutions

    return resolve


def _uniform_resolver(action: str):
    def resolve(duplicates: list[DuplicateCandidate]) -> list[Resolution]:
        return [Resolution(import_index=d.import_index, action=action) for d in duplicates]

    return resolve


@project_app.command("new")
def project_new(
    name: str = typer.Argument(..., help="Name of the new project."),
    type: str = typer.Option("map", "--type", help="Project type: map | image."),
    background: Optional[Path] = typer.Option(
        None, "--background", help="Background image for board projects."
    ),
) -> None:
    """Create a new project and switch to it."""
    if type not in PROJECT_TYPES:
        typer.echo(f"❌ Unknown project type {type!r}. Use: map | image")
        raise typer.Exit(code=1)

    background_image = None
    if background is not None:
        background_image = _read_image(background)

    with open_db() as conn:
        project = create_project(conn, name, type, background_image)

    typer.echo(f"✅ Project created: {project.name} ({project.id})")
    set_active_project(project.id, project.name)
    typer.echo(f"📂 Switched to project: {project.name}")


@project_app.command("list")
def project_list() -> None:
    """List all available projects."""
    with open_db() as conn:
        summaries = list_project_summaries(conn)

    if not summaries:
        typer.echo("No projects found.")
        return

    active_id = load_context().active_project_id
    typer.echo("Projects:")
    for s in summaries:
        marker = "*" if s.id == active_id else " "
        typer.echo(f"{marker} {s.name} \t[{s.type}, {s.notes_count} notes]\t[{s.id}]")


@project_app.command("switch")
def project_switch(
    identifier: str = typer.Argument(..., help="Project name or UUID."),
) -> None:
    """Switch the active project context."""
    with open_db() as conn:
        target = find_project(conn, identifier)

    if target is None:
        typer.echo(f"❌ Project '{identifier}' not found.")
        raise typer.Exit(code=1)

    set_active_project(target.id, target.name)
    typer.echo(f"📂 Switched to project: {target.name}")


@project_app.command("status")
@require_context
def project_status() -> None:
    """Show an outline of the current project."""
    ctx = load_context()
    with open_db() as conn:
        project = load_project(conn, ctx.active_project_id)

    if project is None:
        typer.echo(f"❌ Active project {ctx.active_project_id} no longer exists.")
        raise typer.Exit(code=1)

    typer.echo(f"\n📊 Project: {project.name}")
    typer.echo(f"   ID: {project.id}")
    typer.echo(f"   Type: {project.type}")
    typer.echo("-" * 40)
    typer.echo(f"   Notes: {len(project.notes)}")
    if project.is_board:
        typer.echo(f"   Frames: {len(project.frames)}")
        typer.echo(f"   Connections: {len(project.connections)}")
    typer.echo("")
    typer.echo(render_outline(project))
    for problem in project.check_integrity():
        typer.echo(f"⚠️  {problem}")


@project_app.command("delete")
def project_delete(
    identifier: str = typer.Argument(..., help="Project name or UUID."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Delete a project and the images only it uses."""
    with open_db() as conn:
        target = find_project(conn, identifier)
        if target is None:
            typer.echo(f"❌ Project '{identifier}' not found.")
            raise typer.Exit(code=1)
        if not yes and not typer.confirm(f"Delete '{target.name}'?"):
            raise typer.Exit(code=1)
        delete_project(conn, target.id)

    if load_context().active_project_id == target.id:
        clear_active_project()
    typer.echo(f"🗑️  Deleted project: {target.name}")


@project_app.command("export")
@require_context
def project_export(
    output: Path = typer.Option(None, help="Output JSON file path. Defaults to <project_name>.json"),
) -> None:
    """Export the active project (images inline) to a JSON file."""
    ctx = load_context()
    with open_db() as conn:
        project = load_project(conn, ctx.active_project_id, hydrate=True)

    if project is None:
        typer.echo(f"❌ Active project {ctx.active_project_id} no longer exists.")
        raise typer.Exit(code=1)

    output = output or _safe_filename(project.name, ".json")
    output.write_text(json.dumps(export_project_json(project), indent=2), encoding="utf-8")
    typer.echo(f"✅ Exported to {output.absolute()}")


@project_app.command("export-csv")
@require_context
def project_export_csv(
    output: Path = typer.Option(None, help="Output CSV file path. Defaults to <project_name>.csv"),
) -> None:
    """Export the active project's notes as CSV."""
    ctx = load_context()
    with open_db() as conn:
        project = load_project(conn, ctx.active_project_id)

    if project is None:
        typer.echo(f"❌ Active project {ctx.active_project_id} no longer exists.")
        raise typer.Exit(code=1)

    output = output or _safe_filename(project.name, ".csv")
    output.write_text(export_csv(project), encoding="utf-8", newline="")
    typer.echo(f"✅ Exported to {output.absolute()}")


@project_app.command("import")
def project_import(
    path: Path = typer.Argument(..., help="Exported project JSON file."),
    switch: bool = typer.Option(True, "--switch/--no-switch", help="Switch to the new project."),
) -> None:
    """Import a JSON export as a brand-new project."""
    raw = _read_file(path)
    with open_db() as conn:
        orchestrator = ImportOrchestrator(SqliteProjectStore(conn))
        outcome = asyncio.run(orchestrator.run(raw, ImportMode.CREATE))

    _report(outcome)
    if switch:
        set_active_project(outcome.project.id, outcome.project.name)
        typer.echo(f"📂 Switched to project: {outcome.project.name}")


@project_app.command("merge")
@require_context
def project_merge(
    path: Path = typer.Argument(..., help="Exported project JSON file."),
    on_duplicate: Optional[str] = typer.Option(
        None,
        "--on-duplicate",
        help="Duplicate handling: ask | skip | replace | keep_both. "
        "Defaults to the saved 'on_duplicate' preference, else ask.",
    ),
) -> None:
    """Merge a JSON export into the active project."""
    on_duplicate = on_duplicate or preference("on_duplicate", "ask")
    if on_duplicate != "ask" and on_duplicate not in RESOLUTION_ACTIONS:
        typer.echo(f"❌ Unknown duplicate action {on_duplicate!r}.")
        raise typer.Exit(code=1)

    ctx = load_context()
    raw = _read_file(path)
    with open_db() as conn:
        active = load_project(conn, ctx.active_project_id)
        if active is None:
            typer.echo(f"❌ Active project {ctx.active_project_id} no longer exists.")
            raise typer.Exit(code=1)
        resolver = (
            _prompting_resolver(active) if on_duplicate == "ask" else _uniform_resolver(on_duplicate)
        )
        orchestrator = ImportOrchestrator(SqliteProjectStore(conn))
        outcome = asyncio.run(
            orchestrator.run(raw, ImportMode.MERGE, active_project=active, resolver=resolver)
        )

    _report(outcome)
