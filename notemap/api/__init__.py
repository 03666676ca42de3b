"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from notemap.api import app

    uvicorn notemap.api:app --reload
"""

from notemap.api.app import app

__all__ = ["app"]
