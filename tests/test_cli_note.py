"""Tests for the 'note' CLI command group."""

import io

import pytest
from PIL import Image
from typer.testing import CliRunner

from cli.commands.note import note_app
from cli.commands.project import project_app
from cli.context import load_context
from notemap.db import get_connection
from notemap.db.projects import load_project
from tests.fakes import geotagged_jpeg

runner = CliRunner()


@pytest.fixture
def clean_db(tmp_path, monkeypatch):
    monkeypatch.setattr("notemap.config.settings.workspace_dir", tmp_path)
    monkeypatch.setattr("cli.context.settings.cli_config_dir", tmp_path / ".notemap_cli")
    return tmp_path


def _active():
    conn = get_connection()
    try:
        return load_project(conn, load_context().active_project_id, hydrate=True)
    finally:
        conn.close()


def test_add_map_note(clean_db):
    runner.invoke(project_app, ["new", "Trip", "--type", "map"])
    result = runner.invoke(
        note_app, ["add", "Coffee", "--lat", "48.85", "--lng", "2.35", "--tag", "food"]
    )
    assert result.exit_code == 0
    assert "✅ Note added" in result.stdout

    note = _active().notes[0]
    assert note.text == "Coffee"
    assert (note.coords.lat, note.coords.lng) == (48.85, 2.35)
    assert [t.label for t in note.tags] == ["food"]


def test_map_note_without_coordinates_fails(clean_db):
    runner.invoke(project_app, ["new", "Trip", "--type", "map"])
    result = runner.invoke(note_app, ["add", "Lost"])
    assert result.exit_code == 1
    assert "lat and lng" in result.stdout
    assert _active().notes == []


def test_add_note_with_image(clean_db, tmp_path):
    runner.invoke(project_app, ["new", "Board", "--type", "image"])
    path = tmp_path / "pic.png"
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), (0, 0, 255)).save(buf, format="PNG")
    path.write_bytes(buf.getvalue())

    result = runner.invoke(note_app, ["add", "Pic", "--x", "10", "--y", "20", "--image", str(path)])
    assert result.exit_code == 0
    assert _active().notes[0].images[0].startswith("data:image/png;base64,")


def test_frame_and_connect(clean_db):
    runner.invoke(project_app, ["new", "Board", "--type", "image"])
    result = runner.invoke(note_app, ["frame", "Ideas", "--x", "0", "--y", "0"])
    assert result.exit_code == 0
    frame_id = _active().frames[0].id

    runner.invoke(note_app, ["add", "a", "--x", "0", "--y", "0", "--frame", frame_id])
    runner.invoke(note_app, ["add", "b", "--x", "300", "--y", "0"])
    a, b = _active().notes

    result = runner.invoke(note_app, ["connect", a.id, b.id])
    assert result.exit_code == 0

    project = _active()
    assert project.notes[0].group_ids == [frame_id]
    assert len(project.connections) == 1
    assert project.check_integrity() == []


def test_frame_rejected_on_map(clean_db):
    runner.invoke(project_app, ["new", "Trip", "--type", "map"])
    result = runner.invoke(note_app, ["frame", "Ideas", "--x", "0", "--y", "0"])
    assert result.exit_code == 1


def test_delete_note_removes_connections(clean_db):
    runner.invoke(project_app, ["new", "Board", "--type", "image"])
    runner.invoke(note_app, ["add", "a", "--x", "0", "--y", "0"])
    runner.invoke(note_app, ["add", "b", "--x", "300", "--y", "0"])
    a, b = _active().notes
    runner.invoke(note_app, ["connect", a.id, b.id])

    result = runner.invoke(note_app, ["delete", a.id])
    assert result.exit_code == 0
    project = _active()
    assert [n.id for n in project.notes] == [b.id]
    assert project.connections == []

    assert runner.invoke(note_app, ["delete", "missing"]).exit_code == 1


def test_import_photos_pins_and_skips_repeats(clean_db, tmp_path):
    runner.invoke(project_app, ["new", "Trip", "--type", "map"])
    first = tmp_path / "tower.jpg"
    first.write_bytes(geotagged_jpeg())
    again = tmp_path / "tower_again.jpg"
    again.write_bytes(geotagged_jpeg(color=(0, 90, 200)))

    result = runner.invoke(note_app, ["import-photos", str(first), str(again)])
    assert result.exit_code == 0
    assert "Imported 1 photos. Skipped 1 already on the map." in result.stdout

    result = runner.invoke(note_app, ["import-photos", str(first)])
    assert "Imported 0 photos" in result.stdout

    notes = _active().notes
    assert len(notes) == 1
    assert round(notes[0].coords.lat, 6) == 48.858222
    assert notes[0].images[0].startswith("data:image/jpeg;base64,")


def test_import_photos_rejected_on_board(clean_db, tmp_path):
    runner.invoke(project_app, ["new", "Board", "--type", "image"])
    path = tmp_path / "tower.jpg"
    path.write_bytes(geotagged_jpeg())

    result = runner.invoke(note_app, ["import-photos", str(path)])
    assert result.exit_code == 1
    assert "map projects" in result.stdout
