"""Place imported board content beside existing content, not on top of it."""

from __future__ import annotations

import random
from dataclasses import dataclass, replace
from typing import Optional

from notemap.models import Frame, Note

# Anchor used when the board is empty.
EMPTY_BOARD_OFFSET_X = 100
EMPTY_BOARD_OFFSET_Y = 0
GUTTER = 50
# Upper bound (ms) of the created_at jitter given to offset notes.
CREATED_AT_JITTER_MS = 1000


@dataclass(frozen=True)
class Offset:
    x: float
    y: float


def compute_offset(existing_notes: list[Note], incoming_notes: list[Note]) -> Offset:
    """Translation that aligns the imported block to the right of the board.

    *incoming_notes* must already be remapped but not yet offset; their
    topmost ``board_y`` is lined up with the topmost existing note.
    """
    placed = [n for n in existing_notes if n.board_x is not None and n.board_y is not None]
    if not placed:
        return Offset(EMPTY_BOARD_OFFSET_X, EMPTY_BOARD_OFFSET_Y)

    max_right = max(n.board_x + n.rendered_width for n in placed)
    min_top = min(n.board_y for n in placed)

    incoming_tops = [n.board_y for n in incoming_notes if n.board_y is not None]
    imported_min_top = min(incoming_tops) if incoming_tops else min_top

    return Offset(max_right + GUTTER, min_top - imported_min_top)


def apply_offset(
    notes: list[Note],
    offset: Offset,
    now: float,
    rng: Optional[random.Random] = None,
) -> list[Note]:
    """Shift every note by *offset* and stamp a jittered ``created_at``.

    The jitter only gives notes imported in the same millisecond a total
    display order.
    """
    rng = rng or random.Random()
    return [
        replace(
            note,
            board_x=(note.board_x or 0) + offset.x,
            board_y=(note.board_y or 0) + offset.y,
            created_at=now + rng.random() * CREATED_AT_JITTER_MS,
        )
        for note in notes
    ]


def offset_frames(frames: list[Frame], offset: Offset) -> list[Frame]:
    return [replace(f, x=f.x + offset.x, y=f.y + offset.y) for f in frames]
