"""Runtime settings for notemap.

Every knob is read from a ``NOTEMAP_*`` environment variable, with a ``.env``
file next to the repository root loaded first (existing variables win).
Import the shared instance::

    from notemap.config import settings
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

_PACKAGE_DIR = Path(__file__).resolve().parent

load_dotenv(_PACKAGE_DIR.parent / ".env", override=False)


def _env_path(name: str, default: Path):
    return lambda: Path(os.environ.get(name, default)).expanduser()


def _env_int(name: str, default: int):
    return lambda: int(os.environ.get(name, default))


@dataclass
class Settings:
    # Where the database lives; created on first connection.
    workspace_dir: Path = field(
        default_factory=_env_path("NOTEMAP_WORKSPACE", Path.home() / ".notemap_data")
    )
    # Active-project context of the CLI.
    cli_config_dir: Path = field(
        default_factory=_env_path("NOTEMAP_CLI_DIR", Path.home() / ".notemap_cli")
    )

    # Images attached to notes are shrunk to this bound on their longest edge
    # and re-encoded as JPEG at this quality when they carry no transparency.
    image_max_side: int = field(default_factory=_env_int("NOTEMAP_IMAGE_MAX_SIDE", 1920))
    jpeg_quality: int = field(default_factory=_env_int("NOTEMAP_JPEG_QUALITY", 80))

    log_level: str = field(
        default_factory=lambda: os.environ.get("NOTEMAP_LOG_LEVEL", "INFO").upper()
    )

    @property
    def db_path(self) -> Path:
        return self.workspace_dir / "notemap.db"

    @property
    def schema_path(self) -> Path:
        """``schema.sql`` shipped inside the ``notemap.db`` package."""
        return _PACKAGE_DIR / "db" / "schema.sql"

    def ensure_workspace(self) -> None:
        self.workspace_dir.mkdir(parents=True, exist_ok=True)


settings = Settings()
