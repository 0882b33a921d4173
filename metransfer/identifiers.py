"""Gallery token and filename validation.

Everything that becomes a path component goes through this module first.
"""

from __future__ import annotations

import re
import uuid
from typing import Any

from metransfer.errors import InvalidFilename, InvalidIdentifier

UUID_V4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
    re.IGNORECASE,
)
SAFE_FILENAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")

# Leaves room for the ".jpg" thumbnail suffix and atomic-write temp names
# within the 255-byte filesystem name limit.
MAX_FILENAME_LENGTH = 200
FALLBACK_FILENAME = "upload"


def new_gallery_id() -> str:
    return str(uuid.uuid4())


def is_valid_gallery_id(value: Any) -> bool:
    """Return True if ``value`` is the textual form of a random UUIDv4."""
    # fullmatch rather than match: "$" would accept a trailing newline.
    return isinstance(value, str) and UUID_V4_RE.fullmatch(value) is not None


def require_gallery_id(value: Any) -> str:
    if not is_valid_gallery_id(value):
        raise InvalidIdentifier()
    return value


def is_valid_filename(value: Any) -> bool:
    """Strict check for names arriving on read paths. Nothing is rewritten here."""
    if not isinstance(value, str) or len(value) > MAX_FILENAME_LENGTH:
        return False
    if value.startswith("."):
        return False
    return SAFE_FILENAME_RE.fullmatch(value) is not None


def require_filename(value: Any) -> str:
    if not is_valid_filename(value):
        raise InvalidFilename()
    return value


def sanitize_filename(raw: str | None) -> str:
    """Rewrite a client-supplied upload name into the safe character class.

    Every disallowed character, path separators included, becomes ``_`` and a
    leading dot is replaced so the file stays visible in listings.
    """
    name = _UNSAFE_CHARS_RE.sub("_", raw or "")
    if name.startswith("."):
        name = "_" + name[1:]
    if len(name) > MAX_FILENAME_LENGTH:
        stem, dot, suffix = name.rpartition(".")
        if dot and len(suffix) < 16:
            name = stem[: MAX_FILENAME_LENGTH - len(suffix) - 1] + "." + suffix
        else:
            name = name[:MAX_FILENAME_LENGTH]
    return name or FALLBACK_FILENAME
