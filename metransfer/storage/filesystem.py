from __future__ import annotations

import os
import shutil
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Tuple, Union

from metransfer.errors import GalleryError, NotFound, PayloadTooLarge, StorageFailure, UnsupportedMediaType
from metransfer.identifiers import (
    is_valid_gallery_id,
    new_gallery_id,
    require_filename,
    require_gallery_id,
    sanitize_filename,
)
from metransfer.services import imaging

COPY_CHUNK_SIZE = 1024 * 1024
LOGO_EXTENSIONS = ("png", "jpg", "jpeg", "gif", "webp", "svg")

Payload = Union[bytes, BinaryIO]


@contextmanager
def storage_errors(action: str, *, missing: Optional[str] = None) -> Iterator[None]:
    """Translate OS-level failures into the gallery error taxonomy.

    ``missing`` turns FileNotFoundError into NotFound with that message.
    """
    try:
        yield
    except GalleryError:
        raise
    except FileNotFoundError as exc:
        if missing is not None:
            raise NotFound(missing) from exc
        raise StorageFailure(action) from exc
    except OSError as exc:
        raise StorageFailure(action) from exc


def _unlink_quietly(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


def atomic_write(path: Path, data: bytes) -> None:
    """Write ``data`` to a sibling temp file and rename it over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        _unlink_quietly(Path(tmp_name))
        raise


class ArtifactStore:
    """Filesystem layout for gallery originals and their derived artifacts.

    Layout under ``root``::

        uploads/<id>/<filename>          originals (authoritative)
        thumbnails/<id>/<filename>.jpg   cached thumbnails
        backgrounds/<id>.jpg             normalized background
        og-cache/<id>.jpg                cached social preview
        logo.<ext>                       process-wide logo override

    Every path builder validates its id and filename first, so no path is ever
    formed from an untrusted value.
    """

    def __init__(
        self,
        root: Path,
        *,
        background_max_width: int = 2400,
        background_quality: int = 85,
    ) -> None:
        self.root = root
        self.uploads_dir = root / "uploads"
        self.thumbnails_dir = root / "thumbnails"
        self.backgrounds_dir = root / "backgrounds"
        self.previews_dir = root / "og-cache"
        self.background_max_width = background_max_width
        self.background_quality = background_quality
        with storage_errors("creating data directories"):
            for folder in (self.uploads_dir, self.thumbnails_dir, self.backgrounds_dir, self.previews_dir):
                folder.mkdir(parents=True, exist_ok=True)

    # ---------------------------------------------------------------------
    # Path helpers
    # ---------------------------------------------------------------------
    def originals_dir(self, gallery_id: str) -> Path:
        return self.uploads_dir / require_gallery_id(gallery_id)

    def thumbnail_dir(self, gallery_id: str) -> Path:
        return self.thumbnails_dir / require_gallery_id(gallery_id)

    def original_location(self, gallery_id: str, filename: str) -> Path:
        return self.originals_dir(gallery_id) / require_filename(filename)

    def thumbnail_location(self, gallery_id: str, filename: str) -> Path:
        return self.thumbnail_dir(gallery_id) / f"{require_filename(filename)}.jpg"

    def background_location(self, gallery_id: str) -> Path:
        return self.backgrounds_dir / f"{require_gallery_id(gallery_id)}.jpg"

    def preview_location(self, gallery_id: str) -> Path:
        return self.previews_dir / f"{require_gallery_id(gallery_id)}.jpg"

    # ---------------------------------------------------------------------
    # Galleries and originals
    # ---------------------------------------------------------------------
    def create_gallery(self) -> str:
        """Allocate a token with no originals directory. Nothing is created on disk."""
        while True:
            gallery_id = new_gallery_id()
            if not self.originals_dir(gallery_id).exists():
                return gallery_id

    def has_gallery(self, gallery_id: str) -> bool:
        return self.originals_dir(gallery_id).is_dir()

    def gallery_ids(self) -> List[str]:
        """Valid-token directory names under ``uploads/``. Anything else is ignored."""
        with storage_errors("listing galleries"):
            return sorted(
                entry.name
                for entry in self.uploads_dir.iterdir()
                if is_valid_gallery_id(entry.name) and entry.is_dir()
            )

    def gallery_created_at(self, gallery_id: str) -> datetime:
        with storage_errors("reading gallery timestamps", missing="Gallery not found"):
            stats = self.originals_dir(gallery_id).stat()
        created = getattr(stats, "st_birthtime", None) or stats.st_ctime
        return datetime.fromtimestamp(created, tz=timezone.utc)

    def write_original(
        self,
        gallery_id: str,
        raw_filename: Optional[str],
        data: Payload,
        *,
        max_bytes: Optional[int] = None,
    ) -> str:
        """Store an uploaded file under its sanitized name and return that name.

        The metadata index is not touched. A payload over ``max_bytes`` is
        removed again and reported as PayloadTooLarge.
        """
        folder = self.originals_dir(gallery_id)
        stored_name = sanitize_filename(raw_filename)
        with storage_errors("writing original"):
            folder.mkdir(parents=True, exist_ok=True)
            # Dot-prefixed temp names are invisible to list_originals.
            fd, tmp_name = tempfile.mkstemp(dir=folder, prefix=".upload-", suffix=".tmp")
            try:
                written = 0
                with os.fdopen(fd, "wb") as handle:
                    for chunk in _iter_payload(data):
                        written += len(chunk)
                        if max_bytes is not None and written > max_bytes:
                            raise PayloadTooLarge()
                        handle.write(chunk)
                os.replace(tmp_name, folder / stored_name)
            except BaseException:
                _unlink_quietly(Path(tmp_name))
                raise
            self.evict_thumbnail(gallery_id, stored_name)
        return stored_name

    def list_originals(self, gallery_id: str) -> List[str]:
        """Return what is physically present, which is authoritative over the index."""
        folder = self.originals_dir(gallery_id)
        with storage_errors("listing originals", missing="Gallery not found"):
            return sorted(
                entry.name for entry in folder.iterdir() if not entry.name.startswith(".") and entry.is_file()
            )

    def original_entries(self, gallery_id: str) -> List[Tuple[str, Path]]:
        """The listing paired with full paths.

        Names come from the directory itself and are not re-validated, so files
        placed there out-of-band are still reachable for archives and previews.
        """
        folder = self.originals_dir(gallery_id)
        return [(name, folder / name) for name in self.list_originals(gallery_id)]

    def original_path(self, gallery_id: str, filename: str) -> Path:
        path = self.original_location(gallery_id, filename)
        if not path.is_file():
            raise NotFound("Photo not found")
        return path

    def read_original(self, gallery_id: str, filename: str) -> bytes:
        path = self.original_location(gallery_id, filename)
        with storage_errors("reading original", missing="Photo not found"):
            return path.read_bytes()

    def delete_gallery(self, gallery_id: str) -> None:
        """Remove originals, thumbnails, preview cache and background for ``gallery_id``."""
        with storage_errors("deleting gallery"):
            _rmtree_quietly(self.originals_dir(gallery_id))
            _rmtree_quietly(self.thumbnail_dir(gallery_id))
            _unlink_quietly(self.preview_location(gallery_id))
            _unlink_quietly(self.background_location(gallery_id))

    # ---------------------------------------------------------------------
    # Background
    # ---------------------------------------------------------------------
    def write_background(self, gallery_id: str, data: bytes) -> None:
        """Normalize and replace the background, then evict the cached preview.

        Decoding happens before any file is touched, so an undecodable upload
        leaves the previous background and preview in place.
        """
        destination = self.background_location(gallery_id)
        normalized = imaging.normalize_background(data, self.background_max_width, self.background_quality)
        with storage_errors("writing background"):
            atomic_write(destination, normalized)
            self.evict_preview(gallery_id)

    def has_background(self, gallery_id: str) -> bool:
        return self.background_location(gallery_id).is_file()

    def read_background(self, gallery_id: str) -> bytes:
        path = self.background_location(gallery_id)
        with storage_errors("reading background", missing="Background not found"):
            return path.read_bytes()

    # ---------------------------------------------------------------------
    # Derivative caches
    # ---------------------------------------------------------------------
    def read_thumbnail(self, gallery_id: str, filename: str) -> Optional[bytes]:
        path = self.thumbnail_location(gallery_id, filename)
        with storage_errors("reading thumbnail"):
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

    def write_thumbnail(self, gallery_id: str, filename: str, data: bytes) -> None:
        with storage_errors("writing thumbnail"):
            atomic_write(self.thumbnail_location(gallery_id, filename), data)

    def evict_thumbnail(self, gallery_id: str, filename: str) -> None:
        with storage_errors("evicting thumbnail"):
            _unlink_quietly(self.thumbnail_location(gallery_id, filename))

    def read_preview(self, gallery_id: str) -> Optional[bytes]:
        path = self.preview_location(gallery_id)
        with storage_errors("reading preview"):
            try:
                return path.read_bytes()
            except FileNotFoundError:
                return None

    def write_preview(self, gallery_id: str, data: bytes) -> None:
        with storage_errors("writing preview"):
            atomic_write(self.preview_location(gallery_id), data)

    def evict_preview(self, gallery_id: str) -> None:
        with storage_errors("evicting preview"):
            _unlink_quietly(self.preview_location(gallery_id))

    # ---------------------------------------------------------------------
    # Logo override
    # ---------------------------------------------------------------------
    def _logo_candidates(self) -> List[Path]:
        return [self.root / f"logo.{ext}" for ext in LOGO_EXTENSIONS]

    def write_logo_override(self, data: bytes, extension: str) -> None:
        extension = extension.lower().lstrip(".")
        if extension not in LOGO_EXTENSIONS:
            raise UnsupportedMediaType("Logo must be one of: " + ", ".join(LOGO_EXTENSIONS))
        destination = self.root / f"logo.{extension}"
        with storage_errors("writing logo"):
            atomic_write(destination, data)
            for candidate in self._logo_candidates():
                if candidate != destination:
                    _unlink_quietly(candidate)

    def read_logo(self) -> Tuple[bytes, str]:
        """Return the override and its extension, or raise NotFound if there is none."""
        with storage_errors("reading logo"):
            for candidate in self._logo_candidates():
                if candidate.is_file():
                    return candidate.read_bytes(), candidate.suffix.lstrip(".")
        raise NotFound("No logo override")

    def clear_logo_override(self) -> None:
        with storage_errors("clearing logo"):
            for candidate in self._logo_candidates():
                _unlink_quietly(candidate)


def _iter_payload(data: Payload) -> Iterator[bytes]:
    if isinstance(data, (bytes, bytearray, memoryview)):
        yield bytes(data)
        return
    while True:
        chunk = data.read(COPY_CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


def _rmtree_quietly(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
