"""Map notes from geotagged photos.

Each photo whose EXIF carries a GPS position becomes one note pinned at that
position with the photo attached.  A photo counts as already imported when a
note with images, or an earlier photo of the same batch, sits at the same
position rounded to six decimals.
"""

from __future__ import annotations

import io
import math
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from loguru import logger
from PIL import Image
from PIL.ExifTags import GPS, IFD

from notemap.editing import add_note
from notemap.errors import AssetCompressionFailure
from notemap.images import compress_data_url, encode_data_url
from notemap.models import MAP, Coordinates, Note, Project


@dataclass
class PhotoImport:
    project: Project
    added: list[Note] = field(default_factory=list)
    duplicates: list[str] = field(default_factory=list)
    without_location: list[str] = field(default_factory=list)
    unreadable: list[str] = field(default_factory=list)

    def text(self) -> str:
        parts = [f"Imported {len(self.added)} photos."]
        if self.duplicates:
            parts.append(f"Skipped {len(self.duplicates)} already on the map.")
        if self.without_location:
            parts.append(f"{len(self.without_location)} had no GPS position.")
        if self.unreadable:
            parts.append(f"{len(self.unreadable)} could not be read.")
        return " ".join(parts)


def _degrees(dms: Any, ref: Any) -> float:
    degrees, minutes, seconds = (float(part) for part in dms)
    value = degrees + minutes / 60 + seconds / 3600
    return -value if str(ref).strip().upper() in ("S", "W") else value


def _gps_position(gps: dict) -> Optional[Coordinates]:
    try:
        lat = _degrees(gps[GPS.GPSLatitude], gps.get(GPS.GPSLatitudeRef, "N"))
        lng = _degrees(gps[GPS.GPSLongitude], gps.get(GPS.GPSLongitudeRef, "E"))
    except (KeyError, TypeError, ValueError, ZeroDivisionError):
        return None
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return None
    # Cameras without a fix write 0/0.
    if lat == 0 and lng == 0:
        return None
    if abs(lat) > 90 or abs(lng) > 180:
        return None
    return Coordinates(lat=lat, lng=lng)


def read_photo(raw: bytes) -> tuple[str, Optional[Coordinates]]:
    """Return the photo's MIME type and its EXIF GPS position, if any.

    Raises:
        OSError: Pillow cannot identify or read the image.
    """
    with Image.open(io.BytesIO(raw)) as img:
        mime = Image.MIME.get(img.format or "", "image/jpeg")
        gps = img.getexif().get_ifd(IFD.GPSInfo)
    return mime, _gps_position(gps)


def position_key(coords: Coordinates) -> str:
    return f"{coords.lat:.6f}_{coords.lng:.6f}"


def _attachment(mime: str, raw: bytes, name: str) -> str:
    data_url = encode_data_url(mime, raw)
    try:
        return compress_data_url(data_url)
    except AssetCompressionFailure as exc:
        logger.warning("Attaching {} uncompressed: {}", name, exc.message)
        return data_url


def import_photos(project: Project, photos: Iterable[tuple[str, bytes]]) -> PhotoImport:
    """Pin one note per geotagged photo in *photos* (``(name, bytes)`` pairs).

    Raises:
        ValueError: *project* is not a map project.
    """
    if project.type != MAP:
        raise ValueError("Photos can only be imported into map projects")

    seen = {position_key(n.coords) for n in project.notes if n.coords is not None and n.images}
    result = PhotoImport(project=project)
    for name, raw in photos:
        try:
            mime, coords = read_photo(raw)
        except (OSError, Image.DecompressionBombError) as exc:
            logger.warning("Skipping unreadable photo {}: {}", name, exc)
            result.unreadable.append(name)
            continue
        if coords is None:
            result.without_location.append(name)
            continue
        key = position_key(coords)
        if key in seen:
            logger.debug("Photo {} duplicates a note at {}", name, key)
            result.duplicates.append(name)
            continue
        seen.add(key)

        image = _attachment(mime, raw, name)
        result.project, note = add_note(
            result.project, "", lat=coords.lat, lng=coords.lng, images=[image]
        )
        result.added.append(note)

    logger.info(result.text())
    return result
