"""Database layer package.

Public re-exports so callers can write::

    from notemap.db import open_db, SqliteProjectStore
"""

from notemap.db.connection import get_connection, open_db
from notemap.db.migrations import init_db
from notemap.db.store import ProjectStore, SqliteProjectStore

__all__ = ["get_connection", "open_db", "init_db", "ProjectStore", "SqliteProjectStore"]
