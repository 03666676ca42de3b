"""Error kinds raised by the notemap core.

Library functions raise these; the import orchestrator converts them into
tagged outcomes so nothing propagates to the caller's UI layer.
"""

from __future__ import annotations


class NotemapError(Exception):
    """Base class.  ``kind`` is the stable tag reported to callers."""

    kind = "NotemapError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidFormat(NotemapError):
    """The import file is malformed or structurally incomplete."""

    kind = "InvalidFormat"


class IncompatibleProjectType(NotemapError):
    """A map bundle was merged into a board project, or vice versa."""

    kind = "IncompatibleProjectType"


class PersistenceFailure(NotemapError):
    """The storage layer failed to save or reload a project."""

    kind = "PersistenceFailure"


class AssetCompressionFailure(NotemapError):
    """A single image could not be compressed.  Never fatal to a merge."""

    kind = "AssetCompressionFailure"


class ImportInProgress(NotemapError):
    """Another import is already running against the same project."""

    kind = "ImportInProgress"


class ProjectNotFound(NotemapError):
    kind = "ProjectNotFound"


class StaleProject(PersistenceFailure):
    """The stored project changed since the copy being saved was read."""

    kind = "StaleProject"
