"""Tests for the entity model: wire format, legacy documents, integrity."""

from __future__ import annotations

import pytest

from notemap.models import (
    COMPACT_WIDTH,
    IMAGE,
    MAP,
    STANDARD_WIDTH,
    TAG_COLORS,
    Connection,
    Coordinates,
    Frame,
    Note,
    Project,
    Resolution,
    make_tag,
    tag_color,
)


# ---------------------------------------------------------------------------
# Note
# ---------------------------------------------------------------------------

class TestNoteFromDict:
    def test_map_note_keeps_only_coords(self) -> None:
        note = Note.from_dict(
            {"id": "n1", "text": "A", "coords": {"lat": 1.5, "lng": 2.5}, "boardX": 10, "boardY": 20},
            MAP,
        )
        assert note.coords == Coordinates(lat=1.5, lng=2.5)
        assert note.board_x is None
        assert note.board_y is None

    def test_board_note_keeps_only_board_position(self) -> None:
        note = Note.from_dict(
            {"id": "n1", "coords": {"lat": 1, "lng": 2}, "boardX": 10, "boardY": 20}, IMAGE
        )
        assert note.coords is None
        assert (note.board_x, note.board_y) == (10, 20)

    def test_legacy_single_group_fields_are_migrated(self) -> None:
        note = Note.from_dict(
            {"id": "n1", "boardX": 0, "boardY": 0, "groupId": "f1", "groupName": "Ideas"}, IMAGE
        )
        assert note.group_ids == ["f1"]
        assert note.group_names == ["Ideas"]
        assert note.group_id == "f1"
        assert note.group_name == "Ideas"

    def test_group_lists_win_over_single_fields(self) -> None:
        note = Note.from_dict(
            {"id": "n1", "groupId": "old", "groupIds": ["f1", "f2"], "boardX": 0, "boardY": 0},
            IMAGE,
        )
        assert note.group_ids == ["f1", "f2"]

    def test_unknown_variant_falls_back_to_standard(self) -> None:
        note = Note.from_dict({"id": "n1", "variant": "huge", "boardX": 0, "boardY": 0}, IMAGE)
        assert note.variant == "standard"

    def test_iso_created_at_is_converted_to_millis(self) -> None:
        note = Note.from_dict(
            {"id": "n1", "createdAt": "2024-01-01T00:00:00Z", "boardX": 0, "boardY": 0}, IMAGE
        )
        assert note.created_at == 1704067200000

    def test_missing_id_gets_one(self) -> None:
        note = Note.from_dict({"text": "x", "boardX": 0, "boardY": 0}, IMAGE)
        assert note.id

    def test_non_list_images_rejected(self) -> None:
        with pytest.raises(ValueError):
            Note.from_dict({"id": "n1", "images": "data:image/png;base64,AA"}, IMAGE)

    def test_round_trip_preserves_wire_keys(self) -> None:
        raw = {
            "id": "n1",
            "text": "Hello",
            "variant": "compact",
            "tags": [{"id": "t1", "label": "red", "color": "#fff"}],
            "createdAt": 5,
            "images": [],
            "emoji": "📍",
            "fontSize": 4,
            "isBold": True,
            "boardX": 1.0,
            "boardY": 2.0,
            "groupId": "f1",
            "groupIds": ["f1"],
            "groupName": "F",
            "groupNames": ["F"],
        }
        assert Note.from_dict(raw, IMAGE).to_dict() == raw


class TestRenderedWidth:
    def test_compact(self) -> None:
        assert Note(id="n", variant="compact").rendered_width == COMPACT_WIDTH

    @pytest.mark.parametrize("variant", ["standard", "text"])
    def test_standard_and_text(self, variant: str) -> None:
        assert Note(id="n", variant=variant).rendered_width == STANDARD_WIDTH


# ---------------------------------------------------------------------------
# Tags
# ---------------------------------------------------------------------------

class TestTags:
    def test_color_is_stable_per_label(self) -> None:
        assert tag_color("urgent") == tag_color("urgent")
        assert tag_color("urgent") in TAG_COLORS

    def test_make_tag_uses_palette(self) -> None:
        tag = make_tag("todo")
        assert tag.label == "todo"
        assert tag.color == tag_color("todo")

    def test_missing_color_is_derived(self) -> None:
        note = Note.from_dict({"id": "n", "tags": [{"label": "x"}], "boardX": 0, "boardY": 0}, IMAGE)
        assert note.tags[0].color == tag_color("x")


# ---------------------------------------------------------------------------
# Project
# ---------------------------------------------------------------------------

class TestProject:
    def test_missing_type_inferred_from_coords(self) -> None:
        project = Project.from_dict(
            {"name": "Old", "notes": [{"id": "n1", "coords": {"lat": 1, "lng": 2}}]}
        )
        assert project.type == MAP

    def test_missing_type_without_coords_is_board(self) -> None:
        project = Project.from_dict({"name": "Old", "notes": [{"id": "n1", "boardX": 1}]})
        assert project.type == IMAGE

    def test_frame_for_ignores_stale_group_ids(self) -> None:
        frame = Frame(id="f1", title="F", x=0, y=0)
        project = Project(id="p", name="P", type=IMAGE, frames=[frame])
        assert project.frame_for(Note(id="n", group_ids=["gone", "f1"])) is frame
        assert project.frame_for(Note(id="n", group_ids=["gone"])) is None

    def test_check_integrity_reports_dangling_references(self) -> None:
        project = Project(
            id="p",
            name="P",
            type=IMAGE,
            notes=[Note(id="n1", group_ids=["missing"])],
            connections=[Connection(id="c1", from_note_id="n1", to_note_id="n2")],
        )
        problems = project.check_integrity()
        assert len(problems) == 2
        assert any("missing frame" in p for p in problems)
        assert any("missing note n2" in p for p in problems)

    def test_with_changes_leaves_original_untouched(self) -> None:
        project = Project(id="p", name="P", type=MAP)
        changed = project.with_changes(notes=[Note(id="n1")])
        assert project.notes == []
        assert len(changed.notes) == 1


class TestResolution:
    def test_unknown_action_rejected(self) -> None:
        with pytest.raises(ValueError):
            Resolution(import_index=0, action="merge")
