"""Project REST endpoints.

Routes
------
GET    /projects                    List project summaries
POST   /projects                    Create an empty project
POST   /projects/import             Import an uploaded bundle as a new project
GET    /projects/{id}               Project document (image references, not data)
DELETE /projects/{id}               Delete a project and its unshared assets
POST   /projects/{id}/notes         Add a note
POST   /projects/{id}/frames        Add a frame (board projects)
POST   /projects/{id}/connections   Connect two notes (board projects)
POST   /projects/{id}/merge         Merge an uploaded bundle into this project
GET    /projects/{id}/export        Self-contained JSON bundle (images inline)
GET    /projects/{id}/export.csv    Tabular export
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Query, Request, UploadFile
from fastapi.responses import Response
from pydantic import BaseModel

from notemap.db.projects import (
    create_project,
    delete_project,
    list_project_summaries,
    load_project,
    save_project,
)
from notemap.editing import add_frame, add_note, connect_notes
from notemap.errors import StaleProject
from notemap.exporters import export_csv, export_project_json
from notemap.merge import ImportMode, ImportOutcome
from notemap.models import DuplicateCandidate, Project, Resolution
from notemap.photos import import_photos

router = APIRouter()

# Tagged import failures -> HTTP status.
_ERROR_STATUS = {
    "InvalidFormat": 422,
    "IncompatibleProjectType": 409,
    "ImportInProgress": 409,
    "ProjectNotFound": 404,
    "PersistenceFailure": 500,
}


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class ProjectCreate(BaseModel):
    name: str
    type: Literal["map", "image"] = "map"
    background_image: Optional[str] = None


class NoteCreate(BaseModel):
    text: str = ""
    variant: Literal["standard", "compact", "text"] = "standard"
    lat: Optional[float] = None
    lng: Optional[float] = None
    board_x: Optional[float] = None
    board_y: Optional[float] = None
    tags: list[str] = []
    frame_id: Optional[str] = None
    images: list[str] = []


class FrameCreate(BaseModel):
    title: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None


class ConnectionCreate(BaseModel):
    from_note_id: str
    to_note_id: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _require_project(conn: Any, project_id: str, hydrate: bool = False) -> Project:
    project = load_project(conn, project_id, hydrate=hydrate)
    if project is None:
        raise HTTPException(status_code=404, detail=f"Project '{project_id}' not found.")
    return project


def _save(conn: Any, project: Project) -> Project:
    try:
        return save_project(conn, project)
    except StaleProject as exc:
        raise HTTPException(status_code=409, detail=exc.message) from exc


def _project_dict(project: Project) -> dict[str, Any]:
    data = project.to_dict()
    data["version"] = project.version
    return data


def _outcome_response(outcome: ImportOutcome) -> dict[str, Any]:
    if not outcome.ok:
        status = _ERROR_STATUS.get(outcome.error_kind or "", 500)
        raise HTTPException(
            status_code=status,
            detail={"kind": outcome.error_kind, "message": outcome.message},
        )
    return {
        "project": _project_dict(outcome.project),
        "summary": outcome.message,
        "counts": {
            k: v for k, v in asdict(outcome.summary).items() if isinstance(v, int)
        },
    }


def _uniform_resolver(action: str):
    def resolve(duplicates: list[DuplicateCandidate]) -> list[Resolution]:
        return [Resolution(import_index=d.import_index, action=action) for d in duplicates]

    return resolve


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("", response_model=list[dict[str, Any]])
def list_projects_endpoint(request: Request) -> list[dict[str, Any]]:
    """Return a summary of every project."""
    conn = request.app.state.db
    return [asdict(s) for s in list_project_summaries(conn)]


@router.post("", status_code=201, response_model=dict[str, Any])
def create_project_endpoint(body: ProjectCreate, request: Request) -> dict[str, Any]:
    conn = request.app.state.db
    project = create_project(conn, body.name, body.type, body.background_image)
    return _project_dict(project)


@router.post("/import", status_code=201, response_model=dict[str, Any])
async def import_project_endpoint(file: UploadFile, request: Request) -> dict[str, Any]:
    """Create a brand-new project from an uploaded ``.json`` export."""
    raw = await file.read()
    outcome = await request.app.state.importer.run(raw, ImportMode.CREATE)
    return _outcome_response(outcome)


@router.get("/{project_id}", response_model=dict[str, Any])
def get_project_endpoint(project_id: str, request: Request) -> dict[str, Any]:
    conn = request.app.state.db
    return _project_dict(_require_project(conn, project_id))


@router.delete("/{project_id}", status_code=204)
def delete_project_endpoint(project_id: str, request: Request) -> Response:
    conn = request.app.state.db
    _require_project(conn, project_id)
    delete_project(conn, project_id)
    return Response(status_code=204)


@router.post("/{project_id}/notes", status_code=201, response_model=dict[str, Any])
def add_note_endpoint(project_id: str, body: NoteCreate, request: Request) -> dict[str, Any]:
    conn = request.app.state.db
    project = _require_project(conn, project_id)
    try:
        updated, note = add_note(
            project,
            body.text,
            lat=body.lat,
            lng=body.lng,
            board_x=body.board_x,
            board_y=body.board_y,
            variant=body.variant,
            tags=body.tags,
            frame_id=body.frame_id,
            images=body.images,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    stored = _save(conn, updated)
    return next(n.to_dict() for n in stored.notes if n.id == note.id)


@router.post("/{project_id}/frames", status_code=201, response_model=dict[str, Any])
def add_frame_endpoint(project_id: str, body: FrameCreate, request: Request) -> dict[str, Any]:
    conn = request.app.state.db
    project = _require_project(conn, project_id)
    try:
        updated, frame = add_frame(project, body.title, body.x, body.y, body.width, body.height)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    _save(conn, updated)
    return frame.to_dict()


@router.post("/{project_id}/connections", status_code=201, response_model=dict[str, Any])
def add_connection_endpoint(
    project_id: str, body: ConnectionCreate, request: Request
) -> dict[str, Any]:
    conn = request.app.state.db
    project = _require_project(conn, project_id)
    try:
        updated, connection = connect_notes(project, body.from_note_id, body.to_note_id)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    _save(conn, updated)
    return connection.to_dict()


@router.post("/{project_id}/photos", status_code=201, response_model=dict[str, Any])
async def import_photos_endpoint(
    project_id: str, files: list[UploadFile], request: Request
) -> dict[str, Any]:
    """Pin one note per geotagged photo to a map project."""
    payloads = [(f.filename or "photo", await f.read()) for f in files]
    conn = request.app.state.db
    project = _require_project(conn, project_id)
    try:
        result = await asyncio.to_thread(import_photos, project, payloads)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    _save(conn, result.project)
    return {
        "added": [n.to_dict() for n in result.added],
        "duplicates": result.duplicates,
        "without_location": result.without_location,
        "unreadable": result.unreadable,
    }


@router.post("/{project_id}/merge", response_model=dict[str, Any])
async def merge_project_endpoint(
    project_id: str,
    file: UploadFile,
    request: Request,
    on_duplicate: Literal["skip", "replace", "keep_both"] = Query("skip"),
) -> dict[str, Any]:
    """Merge an uploaded ``.json`` export into an existing project.

    Duplicate notes are handled uniformly according to ``on_duplicate``.
    """
    raw = await file.read()
    project = _require_project(request.app.state.db, project_id)
    outcome = await request.app.state.importer.run(
        raw,
        ImportMode.MERGE,
        active_project=project,
        resolver=_uniform_resolver(on_duplicate),
    )
    return _outcome_response(outcome)


@router.get("/{project_id}/export", response_model=dict[str, Any])
def export_project_endpoint(project_id: str, request: Request) -> dict[str, Any]:
    """Serialise the project with every image inline."""
    conn = request.app.state.db
    return export_project_json(_require_project(conn, project_id, hydrate=True))


@router.get("/{project_id}/export.csv")
def export_csv_endpoint(project_id: str, request: Request) -> Response:
    conn = request.app.state.db
    project = _require_project(conn, project_id)
    return Response(
        content=export_csv(project).encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{project.id}.csv"'},
    )


