"""Pillow decode/resize/encode primitives.

All functions take and return encoded bytes so that callers can keep every
filesystem write atomic and outside of the decoding step.
"""

from __future__ import annotations

import io
import mimetypes
from typing import Tuple

from PIL import Image, ImageOps

from metransfer.errors import InvalidImage

JPEG_MEDIA_TYPE = "image/jpeg"


def _decode(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
        image = ImageOps.exif_transpose(image)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise InvalidImage() from exc
    return _to_rgb(image)


def _to_rgb(image: Image.Image) -> Image.Image:
    """Flatten transparency onto white and return an RGB image suitable for JPEG."""
    if image.mode in ("RGBA", "LA", "P"):
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def make_thumbnail(data: bytes, width: int, quality: int) -> bytes:
    """Resize to exactly ``width`` pixels wide, preserving the aspect ratio."""
    image = _decode(data)
    src_width, src_height = image.size
    height = max(1, round(src_height * width / src_width))
    if (src_width, src_height) != (width, height):
        image = image.resize((width, height), Image.Resampling.LANCZOS)
    return _encode_jpeg(image, quality)


def make_social_preview(data: bytes, size: Tuple[int, int], quality: int) -> bytes:
    """Cover-crop to ``size`` (fill, never letterbox)."""
    image = ImageOps.fit(_decode(data), size, method=Image.Resampling.LANCZOS)
    return _encode_jpeg(image, quality)


def normalize_background(data: bytes, max_width: int, quality: int) -> bytes:
    """Re-encode as JPEG no wider than ``max_width``. Smaller images are not upscaled."""
    image = _decode(data)
    src_width, src_height = image.size
    if src_width > max_width:
        height = max(1, round(src_height * max_width / src_width))
        image = image.resize((max_width, height), Image.Resampling.LANCZOS)
    return _encode_jpeg(image, quality)


def guess_media_type(filename: str) -> str:
    media_type, _ = mimetypes.guess_type(filename)
    return media_type or "application/octet-stream"
