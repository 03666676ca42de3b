"""Async driver for project imports.

:class:`ImportOrchestrator` walks the import state machine::

    idle -> parsing -> detecting -> (awaiting_resolution) -> merging
         -> persisting -> reloading -> done
                                    \\-> failed (from any step)

Planning is delegated to :mod:`notemap.merge.planner`; this module carries
out the planned effects: it compresses inline images concurrently, saves
through a :class:`~notemap.db.store.ProjectStore`, and reloads the saved
project.  ``run`` never raises; every failure becomes a tagged
:class:`ImportOutcome`.
"""

from __future__ import annotations

import asyncio
import inspect
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Optional, Union

from loguru import logger

from notemap.db.store import ProjectStore
from notemap.errors import (
    ImportInProgress,
    NotemapError,
    PersistenceFailure,
    ProjectNotFound,
)
from notemap.images import compress_data_url
from notemap.merge.bundle import parse_bundle
from notemap.merge.planner import (
    ImportMode,
    ImportPlan,
    ImportRequest,
    ImportState,
    ImportSummary,
    ReloadProject,
    SaveProject,
    ShowSummary,
    build_plan,
    prepare,
)
from notemap.models import (
    DuplicateCandidate,
    ImportBundle,
    Note,
    Project,
    Resolution,
    is_inline_image,
)

Resolver = Callable[[list[DuplicateCandidate]], Any]


@dataclass
class ImportOutcome:
    ok: bool
    state: ImportState
    project: Optional[Project] = None
    summary: Optional[ImportSummary] = None
    message: str = ""
    error_kind: Optional[str] = None
    reload_source: Optional[str] = None


@dataclass
class ReloadAttempt:
    project: Optional[Project]
    source: str


# ---------------------------------------------------------------------------
# Reload recovery strategies
# ---------------------------------------------------------------------------

def reload_by_id(store: ProjectStore, local: Project) -> ReloadAttempt:
    return ReloadAttempt(store.load_project(local.id, hydrate=False), "by_id")


def reload_from_enumeration(store: ProjectStore, local: Project) -> ReloadAttempt:
    for project in store.load_all_projects(hydrate=False):
        if project.id == local.id:
            return ReloadAttempt(project, "enumeration")
    return ReloadAttempt(None, "enumeration")


def keep_local(store: ProjectStore, local: Project) -> ReloadAttempt:
    return ReloadAttempt(local, "local")


RELOAD_STRATEGIES = (reload_by_id, reload_from_enumeration, keep_local)


class ImportOrchestrator:
    """Runs imports against a store, one at a time per target project.

    Imports into different projects may overlap; ``state`` then holds the
    latest transition of whichever import moved last.
    """

    def __init__(
        self,
        store: ProjectStore,
        compressor: Callable[[str], str] = compress_data_url,
        on_state: Optional[Callable[[ImportState], None]] = None,
    ) -> None:
        self.store = store
        self.compressor = compressor
        self.on_state = on_state
        self.state = ImportState.IDLE
        self._busy: set[str] = set()
        self._busy_lock = threading.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def run(
        self,
        source: Union[bytes, str, ImportBundle],
        mode: ImportMode,
        active_project: Optional[Project] = None,
        resolver: Optional[Resolver] = None,
    ) -> ImportOutcome:
        """Import *source* (file bytes/text or a parsed bundle).

        In merge mode *active_project* names the target.  The target is read
        again from the store once this import holds it, so the merge is
        planned against the stored version rather than the caller's copy.
        When duplicates are found and *resolver* is given it is called (sync
        or async) with the candidates and must return :class:`Resolution`s.
        Duplicates left unresolved are skipped.
        """
        target_id = active_project.id if mode == ImportMode.MERGE and active_project else None
        if target_id is not None and not self._acquire(target_id):
            logger.warning("Import rejected: project {} already has an import running", target_id)
            err = ImportInProgress(f"An import into '{active_project.name}' is already running")
            return ImportOutcome(
                ok=False,
                state=ImportState.FAILED,
                message=err.message,
                error_kind=err.kind,
            )

        try:
            self._transition(ImportState.IDLE)
            if target_id is not None:
                active_project = await self._load_target(target_id)
            return await self._run(source, mode, active_project, resolver)
        except NotemapError as exc:
            self._transition(ImportState.FAILED)
            logger.warning("Import failed ({}): {}", exc.kind, exc.message)
            return ImportOutcome(
                ok=False, state=ImportState.FAILED, message=exc.message, error_kind=exc.kind
            )
        except Exception as exc:
            self._transition(ImportState.FAILED)
            logger.exception("Unexpected error during import")
            return ImportOutcome(
                ok=False,
                state=ImportState.FAILED,
                message=f"Import failed: {exc}",
                error_kind="UnexpectedError",
            )
        finally:
            if target_id is not None:
                self._release(target_id)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    async def _load_target(self, project_id: str) -> Project:
        try:
            project = await asyncio.to_thread(self.store.load_project, project_id)
        except Exception as exc:
            logger.exception("Loading merge target {} failed", project_id)
            raise PersistenceFailure(f"Could not load project: {exc}") from exc
        if project is None:
            raise ProjectNotFound(f"Project '{project_id}' no longer exists")
        return project

    async def _run(
        self,
        source: Union[bytes, str, ImportBundle],
        mode: ImportMode,
        active_project: Optional[Project],
        resolver: Optional[Resolver],
    ) -> ImportOutcome:
        self._transition(ImportState.PARSING)
        bundle = source if isinstance(source, ImportBundle) else parse_bundle(source)

        self._transition(ImportState.DETECTING)
        prepared = prepare(ImportRequest(mode=mode, bundle=bundle, active_project=active_project))

        resolutions: list[Resolution] = []
        if prepared.duplicates and resolver is not None:
            self._transition(ImportState.AWAITING_RESOLUTION)
            answer = resolver(list(prepared.duplicates))
            if inspect.isawaitable(answer):
                answer = await answer
            resolutions = list(answer or [])

        self._transition(ImportState.MERGING)
        plan = build_plan(prepared, resolutions)
        project, failures = await self._compress_project(plan.project)
        plan = plan.with_project(project)
        plan.summary.images_uncompressed = failures

        return await self._execute(plan)

    async def _execute(self, plan: ImportPlan) -> ImportOutcome:
        """Carry out the plan's effects in order."""
        canonical = plan.project
        reload_source: Optional[str] = None
        for effect in plan.effects:
            if isinstance(effect, SaveProject):
                self._transition(ImportState.PERSISTING)
                try:
                    await asyncio.to_thread(self.store.save_project, effect.project)
                except Exception as exc:
                    logger.exception("Saving project {} failed", effect.project.id)
                    raise PersistenceFailure(f"Could not save project: {exc}") from exc
            elif isinstance(effect, ReloadProject):
                self._transition(ImportState.RELOADING)
                canonical, reload_source = await self._reload(plan.project)
            elif isinstance(effect, ShowSummary):
                logger.info(plan.summary.text())

        self._transition(ImportState.DONE)
        return ImportOutcome(
            ok=True,
            state=ImportState.DONE,
            project=canonical,
            summary=plan.summary,
            message=plan.summary.text(),
            reload_source=reload_source,
        )

    async def _reload(self, local: Project) -> tuple[Project, str]:
        """Try each reload strategy in turn; the last always succeeds."""
        for strategy in RELOAD_STRATEGIES:
            try:
                attempt = await asyncio.to_thread(strategy, self.store, local)
            except Exception as exc:
                logger.warning("Reload via {} failed: {}", strategy.__name__, exc)
                continue
            if attempt.project is None:
                continue
            if attempt.source == "local":
                logger.warning(
                    "Project {} could not be reloaded after saving; "
                    "using the locally merged copy, which may differ from storage",
                    local.id,
                )
            return attempt.project, attempt.source
        return local, "local"

    async def _compress_note(self, note: Note) -> tuple[Note, int]:
        """Compress every inline image and the sketch of *note* concurrently."""
        failures = 0

        async def compress(data: str) -> str:
            nonlocal failures
            if not is_inline_image(data):
                return data
            try:
                return await asyncio.to_thread(self.compressor, data)
            except Exception as exc:
                failures += 1
                logger.warning("Keeping original image for note {}: {}", note.id, exc)
                return data

        images = await asyncio.gather(*(compress(img) for img in note.images))
        sketch = await compress(note.sketch) if note.sketch else None
        return replace(note, images=list(images), sketch=sketch), failures

    async def _compress_project(self, project: Project) -> tuple[Project, int]:
        results = await asyncio.gather(*(self._compress_note(n) for n in project.notes))
        notes = [note for note, _ in results]
        failures = sum(count for _, count in results)
        return project.with_changes(notes=notes), failures

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------
    def _transition(self, state: ImportState) -> None:
        self.state = state
        logger.debug("Import state -> {}", state.value)
        if self.on_state is None:
            return
        try:
            self.on_state(state)
        except Exception:
            logger.exception("State listener failed on {}", state.value)

    def _acquire(self, project_id: str) -> bool:
        with self._busy_lock:
            if project_id in self._busy:
                return False
            self._busy.add(project_id)
            return True

    def _release(self, project_id: str) -> None:
        with self._busy_lock:
            self._busy.discard(project_id)

    def is_busy(self, project_id: str) -> bool:
        with self._busy_lock:
            return project_id in self._busy
