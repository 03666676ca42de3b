"""Tests for the async import orchestrator.

pytest-asyncio is configured with ``asyncio_mode = "auto"`` in pyproject.toml,
so ``async def`` test methods are picked up automatically.
"""

from __future__ import annotations

import asyncio
import json

import pytest

from notemap.errors import AssetCompressionFailure
from notemap.merge import ImportMode, ImportOrchestrator, ImportState
from notemap.models import IMAGE, MAP, Note, Project, Resolution
from tests.fakes import FakeProjectStore

PNG = "data:image/png;base64,AAAA"
SKETCH = "data:image/png;base64,BBBB"


def _identity(data: str) -> str:
    return data


def _board_doc(*notes: dict, name: str = "Board") -> bytes:
    return json.dumps(
        {"version": "1.0", "project": {"name": name, "type": "image", "notes": list(notes)}}
    ).encode("utf-8")


def _map_doc(*notes: dict) -> bytes:
    return json.dumps(
        {"version": "1.0", "project": {"name": "Map", "type": "map", "notes": list(notes)}}
    ).encode("utf-8")


@pytest.fixture()
def board() -> Project:
    return Project(
        id="board",
        name="Mine",
        type=IMAGE,
        notes=[Note(id="e1", text="same", board_x=0, board_y=0)],
    )


# ---------------------------------------------------------------------------
# Happy paths
# ---------------------------------------------------------------------------

class TestCreate:
    async def test_create_saves_and_reloads(self) -> None:
        store = FakeProjectStore()
        orchestrator = ImportOrchestrator(store, compressor=_identity)

        outcome = await orchestrator.run(_board_doc({"id": "a", "text": "x"}), ImportMode.CREATE)

        assert outcome.ok
        assert outcome.state == ImportState.DONE
        assert outcome.reload_source == "by_id"
        assert outcome.project.name == "Board (Imported)"
        assert len(store.saved) == 1
        assert outcome.project.version == store.saved[0].version
        assert outcome.message.startswith("Created 'Board (Imported)': 1 notes")

    async def test_state_transitions_in_order(self) -> None:
        seen: list[ImportState] = []
        orchestrator = ImportOrchestrator(
            FakeProjectStore(), compressor=_identity, on_state=seen.append
        )

        await orchestrator.run(_board_doc(), ImportMode.CREATE)

        assert seen == [
            ImportState.IDLE,
            ImportState.PARSING,
            ImportState.DETECTING,
            ImportState.MERGING,
            ImportState.PERSISTING,
            ImportState.RELOADING,
            ImportState.DONE,
        ]


class TestMerge:
    async def test_resolver_is_consulted(self, board: Project) -> None:
        seen: list[ImportState] = []
        asked = []

        def resolver(duplicates):
            asked.extend(duplicates)
            return [Resolution(d.import_index, "keep_both") for d in duplicates]

        orchestrator = ImportOrchestrator(
            FakeProjectStore(board), compressor=_identity, on_state=seen.append
        )
        outcome = await orchestrator.run(
            _board_doc({"id": "i1", "text": "same", "boardX": -306, "boardY": 0}),
            ImportMode.MERGE,
            active_project=board,
            resolver=resolver,
        )

        assert outcome.ok
        assert ImportState.AWAITING_RESOLUTION in seen
        assert len(asked) == 1
        assert len(outcome.project.notes) == 2

    async def test_async_resolver(self, board: Project) -> None:
        async def resolver(duplicates):
            await asyncio.sleep(0)
            return [Resolution(d.import_index, "skip") for d in duplicates]

        orchestrator = ImportOrchestrator(FakeProjectStore(board), compressor=_identity)
        outcome = await orchestrator.run(
            _board_doc({"id": "i1", "text": "same", "boardX": -306, "boardY": 0}),
            ImportMode.MERGE,
            active_project=board,
            resolver=resolver,
        )

        assert outcome.ok
        assert outcome.summary.notes_skipped == 1
        assert [n.id for n in outcome.project.notes] == ["e1"]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    async def test_type_mismatch_leaves_project_unchanged(self, board: Project) -> None:
        store = FakeProjectStore(board)
        orchestrator = ImportOrchestrator(store, compressor=_identity)

        outcome = await orchestrator.run(
            _map_doc({"id": "m", "text": "A", "coords": {"lat": 1, "lng": 2}}),
            ImportMode.MERGE,
            active_project=board,
        )

        assert not outcome.ok
        assert outcome.state == ImportState.FAILED
        assert outcome.error_kind == "IncompatibleProjectType"
        assert store.saved == []
        assert store.projects["board"].notes == board.notes

    async def test_invalid_format(self) -> None:
        outcome = await ImportOrchestrator(FakeProjectStore()).run(b"{oops", ImportMode.CREATE)
        assert not outcome.ok
        assert outcome.error_kind == "InvalidFormat"

    async def test_merge_without_active_project(self) -> None:
        outcome = await ImportOrchestrator(FakeProjectStore()).run(_board_doc(), ImportMode.MERGE)
        assert outcome.error_kind == "ProjectNotFound"

    async def test_save_failure(self) -> None:
        store = FakeProjectStore()
        store.fail_save = True
        outcome = await ImportOrchestrator(store, compressor=_identity).run(
            _board_doc(), ImportMode.CREATE
        )
        assert not outcome.ok
        assert outcome.error_kind == "PersistenceFailure"
        assert "disk full" in outcome.message

    async def test_unexpected_error_is_reported(self, board: Project) -> None:
        def broken(duplicates):
            raise KeyError("boom")

        orchestrator = ImportOrchestrator(FakeProjectStore(board), compressor=_identity)
        outcome = await orchestrator.run(
            _board_doc({"id": "i1", "text": "same", "boardX": -306, "boardY": 0}),
            ImportMode.MERGE,
            active_project=board,
            resolver=broken,
        )
        assert not outcome.ok
        assert outcome.error_kind == "UnexpectedError"

    async def test_target_deleted_before_merge(self, board: Project) -> None:
        outcome = await ImportOrchestrator(FakeProjectStore(), compressor=_identity).run(
            _board_doc(), ImportMode.MERGE, active_project=board
        )
        assert not outcome.ok
        assert outcome.error_kind == "ProjectNotFound"

    async def test_failing_state_listener_does_not_abort(self) -> None:
        def listener(state: ImportState) -> None:
            raise RuntimeError("listener down")

        outcome = await ImportOrchestrator(
            FakeProjectStore(), compressor=_identity, on_state=listener
        ).run(_board_doc({"id": "a", "text": "x"}), ImportMode.CREATE)

        assert outcome.ok
        assert outcome.state == ImportState.DONE


# ---------------------------------------------------------------------------
# Reload recovery
# ---------------------------------------------------------------------------

class TestReload:
    async def test_falls_back_to_enumeration(self) -> None:
        store = FakeProjectStore()
        store.missing_on_load = True
        outcome = await ImportOrchestrator(store, compressor=_identity).run(
            _board_doc(), ImportMode.CREATE
        )
        assert outcome.ok
        assert outcome.reload_source == "enumeration"

    async def test_falls_back_to_local_copy(self) -> None:
        store = FakeProjectStore()
        store.fail_load = True
        store.fail_enumerate = True
        outcome = await ImportOrchestrator(store, compressor=_identity).run(
            _board_doc({"id": "a", "text": "kept"}), ImportMode.CREATE
        )
        assert outcome.ok
        assert outcome.reload_source == "local"
        assert [n.text for n in outcome.project.notes] == ["kept"]


# ---------------------------------------------------------------------------
# Image compression
# ---------------------------------------------------------------------------

class TestCompression:
    async def test_every_image_and_sketch_compressed(self) -> None:
        calls: list[str] = []

        def compressor(data: str) -> str:
            calls.append(data)
            return data + "=="

        store = FakeProjectStore()
        outcome = await ImportOrchestrator(store, compressor=compressor).run(
            _board_doc(
                {"id": "a", "images": [PNG, "asset:ref"], "sketch": SKETCH},
                {"id": "b", "images": [PNG]},
            ),
            ImportMode.CREATE,
        )

        assert outcome.ok
        assert sorted(calls) == [PNG, PNG, SKETCH]
        saved = store.saved[0]
        assert saved.notes[0].images == [PNG + "==", "asset:ref"]
        assert saved.notes[0].sketch == SKETCH + "=="

    async def test_failed_image_keeps_original(self) -> None:
        def compressor(data: str) -> str:
            if data == SKETCH:
                raise AssetCompressionFailure("bad sketch")
            return data

        store = FakeProjectStore()
        outcome = await ImportOrchestrator(store, compressor=compressor).run(
            _board_doc({"id": "a", "images": [PNG], "sketch": SKETCH}), ImportMode.CREATE
        )

        assert outcome.ok
        assert outcome.summary.images_uncompressed == 1
        assert store.saved[0].notes[0].sketch == SKETCH
        assert "1 images could not be compressed" in outcome.message

    async def test_any_compressor_error_keeps_original(self) -> None:
        def compressor(data: str) -> str:
            raise KeyError("decoder missing")

        store = FakeProjectStore()
        outcome = await ImportOrchestrator(store, compressor=compressor).run(
            _board_doc({"id": "a", "images": [PNG, PNG]}), ImportMode.CREATE
        )

        assert outcome.ok
        assert outcome.summary.images_uncompressed == 2
        assert store.saved[0].notes[0].images == [PNG, PNG]


# ---------------------------------------------------------------------------
# Exclusivity
# ---------------------------------------------------------------------------

class TestExclusivity:
    async def test_concurrent_merge_into_same_project_rejected(self, board: Project) -> None:
        release = asyncio.Event()

        async def slow_resolver(duplicates):
            await release.wait()
            return []

        orchestrator = ImportOrchestrator(FakeProjectStore(board), compressor=_identity)
        doc = _board_doc({"id": "i1", "text": "same", "boardX": -306, "boardY": 0})

        first = asyncio.create_task(
            orchestrator.run(doc, ImportMode.MERGE, active_project=board, resolver=slow_resolver)
        )
        await asyncio.sleep(0.01)
        assert orchestrator.is_busy("board")

        second = await orchestrator.run(doc, ImportMode.MERGE, active_project=board)
        assert not second.ok
        assert second.error_kind == "ImportInProgress"

        release.set()
        assert (await first).ok
        assert not orchestrator.is_busy("board")

    async def test_merges_into_different_projects_may_overlap(self) -> None:
        a = Project(id="a", name="A", type=MAP)
        b = Project(id="b", name="B", type=MAP)
        orchestrator = ImportOrchestrator(FakeProjectStore(a, b), compressor=_identity)
        doc = _map_doc({"id": "m", "text": "x", "coords": {"lat": 1, "lng": 1}})

        results = await asyncio.gather(
            orchestrator.run(doc, ImportMode.MERGE, active_project=a),
            orchestrator.run(doc, ImportMode.MERGE, active_project=b),
        )
        assert all(r.ok for r in results)

    async def test_merge_plans_against_stored_target(self, board: Project) -> None:
        stored = board.with_changes(
            notes=board.notes + [Note(id="e2", text="added elsewhere", board_x=300, board_y=0)],
            version=7,
        )
        store = FakeProjectStore(stored)
        orchestrator = ImportOrchestrator(store, compressor=_identity)

        # The caller still holds the copy read before "e2" was added.
        outcome = await orchestrator.run(
            _board_doc({"id": "i1", "text": "new", "boardX": 0, "boardY": 0}),
            ImportMode.MERGE,
            active_project=board,
        )

        assert outcome.ok
        texts = [n.text for n in store.projects["board"].notes]
        assert texts[:2] == ["same", "added elsewhere"]
        assert "new" in texts

    async def test_write_during_merge_is_not_overwritten(self, board: Project) -> None:
        store = FakeProjectStore(board)

        def resolver(duplicates):
            # Another writer saves the project while this import waits.
            current = store.projects["board"]
            extra = Note(id="w", text="written meanwhile", board_x=900, board_y=0)
            store.save_project(current.with_changes(notes=current.notes + [extra]))
            return [Resolution(d.import_index, "keep_both") for d in duplicates]

        outcome = await ImportOrchestrator(store, compressor=_identity).run(
            _board_doc({"id": "i1", "text": "same", "boardX": -306, "boardY": 0}),
            ImportMode.MERGE,
            active_project=board,
            resolver=resolver,
        )

        assert not outcome.ok
        assert outcome.error_kind == "PersistenceFailure"
        assert [n.text for n in store.projects["board"].notes] == ["same", "written meanwhile"]


class TestMalformedNumbers:
    async def test_infinite_font_size_reported_as_invalid_format(self) -> None:
        raw = b'{"project": {"name": "B", "type": "image", "notes": [{"id": "n", "fontSize": Infinity}]}}'
        outcome = await ImportOrchestrator(FakeProjectStore(), compressor=_identity).run(
            raw, ImportMode.CREATE
        )
        assert not outcome.ok
        assert outcome.error_kind == "InvalidFormat"
