"""notemap CLI: entry-point for project, note and import operations.

Usage:
    python cli/main.py --help

Sub-command groups:
    db       database initialisation
    project  create / switch / export / import / merge projects
    note     add notes, frames and connections to the active project
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the repository root is on sys.path so that `from notemap.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import typer

from notemap.config import settings
from notemap.db import open_db
from notemap.db.migrations import current_version
from notemap.logging_config import configure_logging

from cli.commands.note import note_app
from cli.commands.project import project_app

app = typer.Typer(
    name="notemap",
    help="Pinned-note projects on maps and boards.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    configure_logging(verbose=verbose)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    with open_db() as conn:
        version = current_version(conn)
    typer.echo(f"[db init] Database ready at {settings.db_path} (schema v{version})")


app.add_typer(project_app, name="project")
app.add_typer(note_app, name="note")


if __name__ == "__main__":
    app()
