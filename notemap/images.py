"""Data-URL image helpers and Pillow-based compression."""

from __future__ import annotations

import base64
import binascii
import hashlib
import io
import mimetypes
import re
from pathlib import Path
from typing import Optional

from PIL import Image

from notemap.config import settings
from notemap.errors import AssetCompressionFailure

_DATA_URL_RE = re.compile(r"^data:(?P<mime>image/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def decode_data_url(data_url: str) -> tuple[str, bytes]:
    """Split a ``data:image/...;base64,`` URL into its MIME type and bytes.

    Raises:
        ValueError: If *data_url* is not a base64 image data URL.
    """
    match = _DATA_URL_RE.match(data_url)
    if not match:
        raise ValueError("Not a base64 image data URL")
    try:
        raw = base64.b64decode(match.group("data"), validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Invalid base64 payload: {exc}") from exc
    return match.group("mime"), raw


def encode_data_url(mime: str, raw: bytes) -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


def content_hash(data_url: str) -> str:
    return hashlib.sha256(data_url.encode("utf-8")).hexdigest()


def _has_alpha(img: Image.Image) -> bool:
    return img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info)


def compress_data_url(
    data_url: str,
    max_side: Optional[int] = None,
    quality: Optional[int] = None,
) -> str:
    """Downscale and re-encode an inline image.

    Images are bounded to ``max_side`` on their longest edge.  Opaque images
    are written as JPEG at ``quality``; images with transparency (sketches)
    stay PNG.  When re-encoding does not make the payload smaller the
    original is returned.

    Raises:
        AssetCompressionFailure: The payload could not be decoded or encoded.
    """
    max_side = max_side or settings.image_max_side
    quality = quality or settings.jpeg_quality

    try:
        _, raw = decode_data_url(data_url)
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            if max(img.size) > max_side:
                img.thumbnail((max_side, max_side))
            buf = io.BytesIO()
            if _has_alpha(img):
                img.save(buf, format="PNG", optimize=True)
                mime = "image/png"
            else:
                rgb = img if img.mode == "RGB" else img.convert("RGB")
                rgb.save(buf, format="JPEG", quality=quality, optimize=True)
                mime = "image/jpeg"
    except (ValueError, OSError, Image.DecompressionBombError) as exc:
        raise AssetCompressionFailure(f"Could not compress image: {exc}") from exc

    compressed = encode_data_url(mime, buf.getvalue())
    return compressed if len(compressed) < len(data_url) else data_url


def file_to_data_url(path: Path) -> str:
    """Read an image file into a data URL, guessing the MIME type from its suffix.

    Raises:
        ValueError: If the suffix is not a known image type.
    """
    mime, _ = mimetypes.guess_type(str(path))
    if not mime or not mime.startswith("image/"):
        raise ValueError(f"{path.name} is not a recognised image file")
    return encode_data_url(mime, path.read_bytes())
