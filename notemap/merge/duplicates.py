"""Duplicate detection by declared position and text.

Image bytes are never decoded or compared here; two notes are the same note
when their text matches exactly and their positions agree within a
project-type-specific tolerance.
"""

from __future__ import annotations

from typing import Iterable, Optional

from notemap.models import MAP, DuplicateCandidate, Frame, Note

# Degrees; roughly 11 m at the equator.
MAP_TOLERANCE = 0.0001
# Pixels on the board plane.
BOARD_TOLERANCE = 10


def is_duplicate(candidate: Note, existing: Note, project_type: str) -> bool:
    if candidate.text != existing.text:
        return False

    if project_type == MAP:
        if candidate.coords is None or existing.coords is None:
            return False
        return (
            abs(candidate.coords.lat - existing.coords.lat) < MAP_TOLERANCE
            and abs(candidate.coords.lng - existing.coords.lng) < MAP_TOLERANCE
        )

    if candidate.board_x is None or existing.board_x is None:
        return False
    return (
        abs(candidate.board_x - existing.board_x) < BOARD_TOLERANCE
        and abs(candidate.board_y - existing.board_y) < BOARD_TOLERANCE
    )


def is_duplicate_frame(candidate: Frame, existing: Frame) -> bool:
    return (
        candidate.title == existing.title
        and abs(candidate.x - existing.x) < BOARD_TOLERANCE
        and abs(candidate.y - existing.y) < BOARD_TOLERANCE
    )


def find_match(candidate: Note, existing: Iterable[Note], project_type: str) -> Optional[Note]:
    """Return the first existing note *candidate* duplicates, if any."""
    for note in existing:
        if is_duplicate(candidate, note, project_type):
            return note
    return None


def find_frame_match(candidate: Frame, existing: Iterable[Frame]) -> Optional[Frame]:
    for frame in existing:
        if is_duplicate_frame(candidate, frame):
            return frame
    return None


def classify(note: Note) -> str:
    """Describe which binary payloads a duplicate note carries."""
    has_images = bool(note.images)
    has_sketch = bool(note.sketch)
    if has_images and has_sketch:
        return "both"
    if has_images:
        return "image"
    if has_sketch:
        return "sketch"
    return "none"


def find_duplicates(
    incoming: list[Note],
    existing: list[Note],
    project_type: str,
) -> list[DuplicateCandidate]:
    """Pair every duplicate incoming note (by index) with its existing match."""
    found: list[DuplicateCandidate] = []
    for index, note in enumerate(incoming):
        match = find_match(note, existing, project_type)
        if match is not None:
            found.append(
                DuplicateCandidate(
                    import_index=index,
                    existing_note_id=match.id,
                    duplicate_type=classify(note),
                )
            )
    return found
