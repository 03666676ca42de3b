"""Operations on the ``assets`` content store.

The helpers here never commit; callers wrap them in ``with conn:`` so that a
project and the assets it references are written as one unit.
"""

from __future__ import annotations

import sqlite3
import uuid
from typing import Optional

from loguru import logger

from notemap.images import content_hash
from notemap.models import ASSET_REF_PREFIX, now_ms

ASSET_KINDS = ("image", "sketch", "background")


def asset_id_from_ref(ref: str) -> str:
    return ref[len(ASSET_REF_PREFIX):]


def store_asset(conn: sqlite3.Connection, kind: str, data_url: str) -> str:
    """Store *data_url* and return its ``asset:<id>`` reference.

    Identical content of the same kind reuses the existing asset.
    """
    if kind not in ASSET_KINDS:
        raise ValueError(f"Unknown asset kind {kind!r}")
    digest = content_hash(data_url)
    row = conn.execute(
        "SELECT id FROM assets WHERE kind = ? AND sha256 = ?", (kind, digest)
    ).fetchone()
    if row:
        return f"{ASSET_REF_PREFIX}{row['id']}"

    asset_id = str(uuid.uuid4())
    conn.execute(
        """
        INSERT INTO assets (id, kind, sha256, data, size, created_at)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        (asset_id, kind, digest, data_url, len(data_url), now_ms()),
    )
    logger.debug("Stored {} asset {} ({} bytes)", kind, asset_id, len(data_url))
    return f"{ASSET_REF_PREFIX}{asset_id}"


def load_asset(conn: sqlite3.Connection, ref: str) -> Optional[str]:
    """Resolve an ``asset:<id>`` reference.  Returns ``None`` if missing."""
    row = conn.execute(
        "SELECT data FROM assets WHERE id = ?", (asset_id_from_ref(ref),)
    ).fetchone()
    return row["data"] if row else None


def set_project_refs(conn: sqlite3.Connection, project_id: str, asset_ids: set[str]) -> None:
    """Replace the reference set of *project_id*.  Unknown asset ids are ignored."""
    conn.execute("DELETE FROM asset_refs WHERE project_id = ?", (project_id,))
    conn.executemany(
        """
        INSERT OR IGNORE INTO asset_refs (asset_id, project_id)
        SELECT id, ? FROM assets WHERE id = ?
        """,
        [(project_id, aid) for aid in sorted(asset_ids)],
    )


def cleanup_orphaned_assets(conn: sqlite3.Connection) -> tuple[int, int]:
    """Delete assets no project references.

    Returns:
        ``(assets_deleted, bytes_freed)``.
    """
    rows = conn.execute(
        """
        SELECT id, size FROM assets
        WHERE  id NOT IN (SELECT asset_id FROM asset_refs)
        """
    ).fetchall()
    if not rows:
        return 0, 0
    conn.executemany("DELETE FROM assets WHERE id = ?", [(r["id"],) for r in rows])
    freed = sum(r["size"] for r in rows)
    logger.info("Removed {} orphaned assets ({} bytes)", len(rows), freed)
    return len(rows), freed
