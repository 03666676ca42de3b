"""Tests for placing imported board content beside existing content."""

from __future__ import annotations

import random

from notemap.merge.spatial import (
    CREATED_AT_JITTER_MS,
    Offset,
    apply_offset,
    compute_offset,
    offset_frames,
)
from notemap.models import Frame, Note


class TestComputeOffset:
    def test_aligns_imported_top_with_existing_top(self) -> None:
        existing = [Note(id="e", board_x=100, board_y=50)]
        incoming = [Note(id="i", board_x=0, board_y=30)]

        offset = compute_offset(existing, incoming)

        assert offset == Offset(406, 20)
        moved = apply_offset(incoming, offset, now=0)
        assert moved[0].board_y == 50
        assert moved[0].board_x == 406

    def test_empty_board_uses_default_anchor(self) -> None:
        assert compute_offset([], [Note(id="i", board_x=0, board_y=500)]) == Offset(100, 0)

    def test_compact_notes_are_narrower(self) -> None:
        existing = [Note(id="e", variant="compact", board_x=100, board_y=0)]
        assert compute_offset(existing, []).x == 100 + 180 + 50

    def test_widest_right_edge_wins(self) -> None:
        existing = [
            Note(id="a", board_x=0, board_y=10),
            Note(id="b", variant="compact", board_x=200, board_y=40),
        ]
        offset = compute_offset(existing, [Note(id="i", board_x=0, board_y=0)])
        assert offset == Offset(200 + 180 + 50, 10)


class TestApplyOffset:
    def test_created_at_is_jittered_after_now(self) -> None:
        notes = [Note(id=str(i), board_x=0, board_y=0) for i in range(20)]
        moved = apply_offset(notes, Offset(0, 0), now=1000, rng=random.Random(7))

        stamps = [n.created_at for n in moved]
        assert all(1000 <= s < 1000 + CREATED_AT_JITTER_MS for s in stamps)
        assert len(set(stamps)) == len(stamps)

    def test_originals_untouched(self) -> None:
        notes = [Note(id="n", board_x=1, board_y=2)]
        apply_offset(notes, Offset(10, 10), now=0)
        assert (notes[0].board_x, notes[0].board_y) == (1, 2)


class TestOffsetFrames:
    def test_frames_move_only_when_asked(self) -> None:
        frames = [Frame(id="f", title="F", x=5, y=5)]
        notes = [Note(id="n", board_x=5, board_y=5)]
        offset = Offset(100, -5)

        apply_offset(notes, offset, now=0)
        assert (frames[0].x, frames[0].y) == (5, 5)

        moved = offset_frames(frames, offset)
        assert (moved[0].x, moved[0].y) == (105, 0)
