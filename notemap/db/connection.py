"""SQLite connections for the project store.

``get_connection`` returns a bare configured connection (the API keeps one
for its whole lifetime); ``open_db`` is the short-lived form used by CLI
commands: connect, make sure the schema is current, close on exit.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Union

from notemap.config import settings
from notemap.db.migrations import init_db

MEMORY = ":memory:"

_PRAGMAS = (
    "PRAGMA foreign_keys = ON",
    "PRAGMA journal_mode = WAL",
    "PRAGMA busy_timeout = 5000",
)


def get_connection(db_path: Optional[Union[Path, str]] = None) -> sqlite3.Connection:
    """Connect to *db_path* (default ``settings.db_path``).

    Rows come back as :class:`sqlite3.Row`.  The connection may be handed to
    worker threads; :class:`~notemap.db.store.SqliteProjectStore` serialises
    that access.
    """
    path = db_path or settings.db_path
    if str(path) != MEMORY:
        settings.ensure_workspace()

    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    for pragma in _PRAGMAS:
        conn.execute(pragma)
    return conn


@contextmanager
def open_db(db_path: Optional[Union[Path, str]] = None) -> Iterator[sqlite3.Connection]:
    """Yield an initialised connection and close it afterwards."""
    conn = get_connection(db_path)
    try:
        init_db(conn)
        yield conn
    finally:
        conn.close()
