"""Dataclass models for projects, notes, frames and connections.

These are plain Python objects – not ORM models.  The storage layer and the
import pipeline serialise / deserialise them to and from the camelCase JSON
shape used by project files.

``from_dict`` is the single boundary where older document shapes are
normalised (single ``groupId``/``groupName`` fields, ISO timestamps, missing
variants), so nothing downstream has to branch on document version.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from time import time
from typing import Any, Optional

MAP = "map"
IMAGE = "image"
PROJECT_TYPES = (MAP, IMAGE)

STANDARD = "standard"
COMPACT = "compact"
TEXT = "text"
VARIANTS = (STANDARD, COMPACT, TEXT)

COMPACT_WIDTH = 180
STANDARD_WIDTH = 256

DUPLICATE_TYPES = ("image", "sketch", "both", "none")
RESOLUTION_ACTIONS = ("skip", "replace", "keep_both")

ASSET_REF_PREFIX = "asset:"

TAG_COLORS = [
    "#f87171",
    "#fb923c",
    "#fbbf24",
    "#a3e635",
    "#4ade80",
    "#34d399",
    "#22d3ee",
    "#60a5fa",
    "#818cf8",
    "#a78bfa",
    "#e879f9",
    "#fb7185",
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def generate_id() -> str:
    return str(uuid.uuid4())


def now_ms() -> int:
    return int(time() * 1000)


def is_inline_image(value: Any) -> bool:
    """True for ``data:image/...`` URLs carried inside the document."""
    return isinstance(value, str) and value.startswith("data:image/")


def is_asset_ref(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(ASSET_REF_PREFIX)


def tag_color(label: str) -> str:
    """Pick a palette color from a 32-bit string hash of *label*."""
    h = 0
    for ch in label:
        h = (ord(ch) + ((h << 5) - h)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return TAG_COLORS[abs(h) % len(TAG_COLORS)]


def _timestamp(value: Any) -> float:
    """Coerce epoch-millis numbers or ISO-8601 strings to epoch millis."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(value)
    if isinstance(value, str):
        try:
            return _finite(float(value))
        except ValueError:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            return int(parsed.timestamp() * 1000)
    raise ValueError(f"Invalid timestamp: {value!r}")


def _finite(value: float) -> float:
    if not math.isfinite(value):
        raise ValueError(f"Expected a finite number, got {value!r}")
    return value


def _number(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    return _finite(float(value))


def _integer(value: Any, default: int = 0) -> int:
    return int(_number(value or None, default))


def _string_list(value: Any) -> list[str]:
    if not value:
        return []
    if not isinstance(value, list):
        raise ValueError(f"Expected a list, got {type(value).__name__}")
    return [v for v in value if isinstance(v, str) and v]


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

@dataclass
class Tag:
    id: str
    label: str
    color: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Tag:
        label = str(data.get("label", ""))
        return cls(
            id=str(data.get("id") or generate_id()),
            label=label,
            color=str(data.get("color") or tag_color(label)),
        )


def make_tag(label: str) -> Tag:
    return Tag(id=generate_id(), label=label, color=tag_color(label))


@dataclass
class Coordinates:
    lat: float
    lng: float


@dataclass
class Note:
    id: str
    text: str = ""
    variant: str = STANDARD
    tags: list[Tag] = field(default_factory=list)
    group_ids: list[str] = field(default_factory=list)
    group_names: list[str] = field(default_factory=list)
    created_at: float = 0
    coords: Optional[Coordinates] = None
    board_x: Optional[float] = None
    board_y: Optional[float] = None
    images: list[str] = field(default_factory=list)
    sketch: Optional[str] = None
    emoji: str = ""
    font_size: int = 3
    is_bold: bool = False
    color: Optional[str] = None

    # ------------------------------------------------------------------
    # Convenience helpers
    # ------------------------------------------------------------------
    @property
    def group_id(self) -> Optional[str]:
        """Primary frame membership (first entry of ``group_ids``)."""
        return self.group_ids[0] if self.group_ids else None

    @property
    def group_name(self) -> Optional[str]:
        return self.group_names[0] if self.group_names else None

    @property
    def rendered_width(self) -> int:
        """Width the board renders this note at; used for layout only."""
        return COMPACT_WIDTH if self.variant == COMPACT else STANDARD_WIDTH

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "text": self.text,
            "variant": self.variant,
            "tags": [t.to_dict() for t in self.tags],
            "createdAt": self.created_at,
            "images": list(self.images),
            "emoji": self.emoji,
            "fontSize": self.font_size,
            "isBold": self.is_bold,
        }
        if self.coords is not None:
            data["coords"] = {"lat": self.coords.lat, "lng": self.coords.lng}
        if self.board_x is not None and self.board_y is not None:
            data["boardX"] = self.board_x
            data["boardY"] = self.board_y
        if self.group_ids:
            data["groupId"] = self.group_ids[0]
            data["groupIds"] = list(self.group_ids)
        if self.group_names:
            data["groupName"] = self.group_names[0]
            data["groupNames"] = list(self.group_names)
        if self.sketch:
            data["sketch"] = self.sketch
        if self.color:
            data["color"] = self.color
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], project_type: str) -> Note:
        """Build a note for a project of *project_type*.

        Only the coordinate system matching *project_type* is kept; a missing
        position defaults to the origin of that system.
        """
        if not isinstance(data, dict):
            raise ValueError("Note entries must be objects")

        variant = data.get("variant") or STANDARD
        if variant not in VARIANTS:
            variant = STANDARD

        # Canonical ordered group lists; fall back to the single-field shape.
        group_ids = _string_list(data.get("groupIds"))
        if not group_ids and data.get("groupId"):
            group_ids = [str(data["groupId"])]
        group_names = _string_list(data.get("groupNames"))
        if not group_names and data.get("groupName"):
            group_names = [str(data["groupName"])]

        coords = None
        board_x = board_y = None
        if project_type == MAP:
            raw = data.get("coords") or {}
            if not isinstance(raw, dict):
                raise ValueError("Note coords must be an object")
            coords = Coordinates(lat=_number(raw.get("lat")), lng=_number(raw.get("lng")))
        else:
            board_x = _number(data.get("boardX"))
            board_y = _number(data.get("boardY"))

        images = data.get("images") or []
        if not isinstance(images, list):
            raise ValueError("Note images must be a list")

        return cls(
            id=str(data.get("id") or generate_id()),
            text=str(data.get("text") or ""),
            variant=variant,
            tags=[Tag.from_dict(t) for t in data.get("tags") or [] if isinstance(t, dict)],
            group_ids=group_ids,
            group_names=group_names,
            created_at=_timestamp(data.get("createdAt")),
            coords=coords,
            board_x=board_x,
            board_y=board_y,
            images=[i for i in images if isinstance(i, str) and i],
            sketch=data.get("sketch") or None,
            emoji=str(data.get("emoji") or ""),
            font_size=_integer(data.get("fontSize"), 3),
            is_bold=bool(data.get("isBold", False)),
            color=data.get("color") or None,
        )


@dataclass
class Frame:
    id: str
    title: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None
    color: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "title": self.title, "x": self.x, "y": self.y}
        if self.width is not None:
            data["width"] = self.width
        if self.height is not None:
            data["height"] = self.height
        if self.color:
            data["color"] = self.color
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Frame:
        if not isinstance(data, dict):
            raise ValueError("Frame entries must be objects")
        width = data.get("width")
        height = data.get("height")
        return cls(
            id=str(data.get("id") or generate_id()),
            title=str(data.get("title") or ""),
            x=_number(data.get("x")),
            y=_number(data.get("y")),
            width=_number(width) if width is not None else None,
            height=_number(height) if height is not None else None,
            color=data.get("color") or None,
        )


@dataclass
class Connection:
    id: str
    from_note_id: str
    to_note_id: str
    from_side: str = "right"
    to_side: str = "left"
    arrow: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "fromNoteId": self.from_note_id,
            "toNoteId": self.to_note_id,
            "fromSide": self.from_side,
            "toSide": self.to_side,
        }
        if self.arrow:
            data["arrow"] = self.arrow
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Connection:
        if not isinstance(data, dict):
            raise ValueError("Connection entries must be objects")
        return cls(
            id=str(data.get("id") or generate_id()),
            from_note_id=str(data.get("fromNoteId") or ""),
            to_note_id=str(data.get("toNoteId") or ""),
            from_side=str(data.get("fromSide") or "right"),
            to_side=str(data.get("toSide") or "left"),
            arrow=data.get("arrow") or None,
        )


@dataclass
class Project:
    id: str
    name: str
    type: str
    created_at: float = 0
    notes: list[Note] = field(default_factory=list)
    frames: list[Frame] = field(default_factory=list)
    connections: list[Connection] = field(default_factory=list)
    background_image: Optional[str] = None
    version: int = 0

    @property
    def is_board(self) -> bool:
        return self.type == IMAGE

    def frame_for(self, note: Note) -> Optional[Frame]:
        """Return the frame *note* belongs to, ignoring stale group ids."""
        frames = {f.id: f for f in self.frames}
        for gid in note.group_ids:
            if gid in frames:
                return frames[gid]
        return None

    def check_integrity(self) -> list[str]:
        """Return a description of every dangling reference in the project."""
        problems: list[str] = []
        frame_ids = {f.id for f in self.frames}
        note_ids = {n.id for n in self.notes}
        for note in self.notes:
            for gid in note.group_ids:
                if gid not in frame_ids:
                    problems.append(f"note {note.id} references missing frame {gid}")
        for conn in self.connections:
            for endpoint in (conn.from_note_id, conn.to_note_id):
                if endpoint not in note_ids:
                    problems.append(f"connection {conn.id} references missing note {endpoint}")
        return problems

    def with_changes(self, **changes: Any) -> Project:
        """Return a copy with *changes* applied; the original is untouched."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "createdAt": self.created_at,
            "notes": [n.to_dict() for n in self.notes],
            "frames": [f.to_dict() for f in self.frames],
            "connections": [c.to_dict() for c in self.connections],
        }
        if self.background_image:
            data["backgroundImage"] = self.background_image
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        if not isinstance(data, dict):
            raise ValueError("Project must be an object")
        raw_notes = data.get("notes") or []
        if not isinstance(raw_notes, list):
            raise ValueError("Project notes must be a list")

        project_type = data.get("type")
        if project_type not in PROJECT_TYPES:
            # Older documents omitted the type; geographic notes imply a map.
            has_coords = any(isinstance(n, dict) and n.get("coords") for n in raw_notes)
            project_type = MAP if has_coords else IMAGE

        return cls(
            id=str(data.get("id") or generate_id()),
            name=str(data.get("name") or ""),
            type=project_type,
            created_at=_timestamp(data.get("createdAt")),
            notes=[Note.from_dict(n, project_type) for n in raw_notes],
            frames=[Frame.from_dict(f) for f in data.get("frames") or []],
            connections=[Connection.from_dict(c) for c in data.get("connections") or []],
            background_image=data.get("backgroundImage") or None,
            version=_integer(data.get("version")),
        )


# ---------------------------------------------------------------------------
# Transient import records
# ---------------------------------------------------------------------------

@dataclass
class ImportBundle:
    """Parsed import file.  Never persisted."""

    version: str
    project: Project


@dataclass(frozen=True)
class DuplicateCandidate:
    import_index: int
    existing_note_id: str
    duplicate_type: str


@dataclass(frozen=True)
class Resolution:
    import_index: int
    action: str

    def __post_init__(self) -> None:
        if self.action not in RESOLUTION_ACTIONS:
            raise ValueError(f"Unknown resolution action {self.action!r}")
