"""HTTP front end for notemap.

``create_app`` builds the FastAPI application.  Its lifespan opens one SQLite
connection for the process, brings the schema up to date and hangs two
objects off ``app.state``:

* ``db``: the shared connection, used by the CRUD and export routes;
* ``importer``: an :class:`~notemap.merge.ImportOrchestrator` over the same
  connection, so that at most one import touches the store at a time.

Run it with ``uvicorn notemap.api.app:app --reload``.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notemap import __version__
from notemap.config import settings
from notemap.db import SqliteProjectStore, get_connection, init_db
from notemap.db.migrations import current_version
from notemap.logging_config import configure_logging
from notemap.merge import ImportOrchestrator

from notemap.api.routers import projects as projects_router


def attach_db(app: FastAPI, conn) -> None:
    """Bind *conn* to *app*; tests call this with an in-memory connection."""
    app.state.db = conn
    app.state.importer = ImportOrchestrator(SqliteProjectStore(conn))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    conn = get_connection()
    init_db(conn)
    attach_db(app, conn)
    try:
        yield
    finally:
        conn.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="notemap API",
        description=(
            "Projects of pinned notes on a map or an image board. "
            "Notes, frames and connections can be added, whole projects "
            "exported as JSON or CSV, and exports imported back either as "
            "a new project or merged into an existing one."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Any origin may call the API.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(projects_router.router, prefix="/projects", tags=["projects"])

    @app.get("/health", tags=["meta"])
    def health() -> dict:
        conn = app.state.db
        return {
            "status": "ok",
            "version": __version__,
            "schema_version": current_version(conn),
            "database": str(settings.db_path),
        }

    return app


app = create_app()
