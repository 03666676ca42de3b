"""Persistent state for the notemap CLI.

``~/.notemap_cli/context.json`` remembers which project note and merge
commands act on, plus a few user preferences (for example the default
answer to duplicate prompts, under ``"on_duplicate"``).
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional

import typer
from loguru import logger

from notemap.config import settings


@dataclass
class CliContext:
    active_project_id: str | None = None
    active_project_name: str | None = None
    user_preferences: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, data: str) -> CliContext:
        """Parse *data*; anything unreadable yields an empty context."""
        try:
            return cls(**json.loads(data))
        except (json.JSONDecodeError, TypeError):
            logger.warning("Ignoring malformed CLI context")
            return cls()


def _context_file() -> Path:
    return settings.cli_config_dir / "context.json"


def load_context() -> CliContext:
    path = _context_file()
    if not path.exists():
        return CliContext()
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        logger.warning("Could not read CLI context at {}: {}", path, exc)
        return CliContext()
    return CliContext.from_json(text)


def save_context(ctx: CliContext) -> None:
    path = _context_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(ctx.to_json(), encoding="utf-8")


def set_active_project(project_id: Optional[str], name: Optional[str] = None) -> None:
    """Record *project_id* as active; ``None`` clears the selection."""
    ctx = load_context()
    ctx.active_project_id = project_id
    ctx.active_project_name = name if project_id else None
    save_context(ctx)


def clear_active_project() -> None:
    set_active_project(None)


def preference(key: str, default: Any = None) -> Any:
    return load_context().user_preferences.get(key, default)


def require_context(func: Callable) -> Callable:
    """Abort a command with exit code 1 unless a project is active.

    The wrapped command reads the selection itself via :func:`load_context`.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        if not load_context().active_project_id:
            typer.echo("❌ No active project selected.")
            typer.echo("Run 'project new <name>' or 'project switch <name>' first.")
            raise typer.Exit(code=1)
        return func(*args, **kwargs)

    return wrapper
