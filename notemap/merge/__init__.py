"""Project import / merge engine.

Public re-exports::

    from notemap.merge import ImportOrchestrator, ImportMode, parse_bundle
"""

from notemap.merge.bundle import parse_bundle, parse_bundle_data
from notemap.merge.duplicates import find_duplicates, is_duplicate, is_duplicate_frame
from notemap.merge.orchestrator import ImportOrchestrator, ImportOutcome
from notemap.merge.planner import (
    ImportMode,
    ImportPlan,
    ImportRequest,
    ImportState,
    ImportSummary,
    build_plan,
    plan_import,
    prepare,
)
from notemap.merge.remap import remap, remap_bundle
from notemap.merge.spatial import Offset, apply_offset, compute_offset, offset_frames

__all__ = [
    "parse_bundle",
    "parse_bundle_data",
    "find_duplicates",
    "is_duplicate",
    "is_duplicate_frame",
    "ImportOrchestrator",
    "ImportOutcome",
    "ImportMode",
    "ImportPlan",
    "ImportRequest",
    "ImportState",
    "ImportSummary",
    "build_plan",
    "plan_import",
    "prepare",
    "remap",
    "remap_bundle",
    "Offset",
    "apply_offset",
    "compute_offset",
    "offset_frames",
]
