from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, List, Optional, Set, Tuple

from metransfer.errors import EmptyUpload, NotFound, PayloadTooLarge, UnsupportedMediaType
from metransfer.identifiers import require_filename, require_gallery_id
from metransfer.models.schemas import (
    PUBLIC_DISPLAY_NAME,
    GalleryRecord,
    clean_display_name,
)
from metransfer.repositories.galleries import GalleryIndex
from metransfer.services import imaging
from metransfer.services.archive import ArchiveStreamer, archive_filename
from metransfer.services.derivatives import DerivativeGenerator, ImagePayload
from metransfer.services.reconciler import Reconciler
from metransfer.storage.filesystem import ArtifactStore, storage_errors

logger = logging.getLogger(__name__)

PHOTO_EXTENSIONS = frozenset(
    {"jpeg", "jpg", "png", "gif", "webp", "tiff", "tif", "bmp", "raw", "cr2", "nef", "arw"}
)
BACKGROUND_EXTENSIONS = frozenset({"jpeg", "jpg", "png", "gif", "webp"})


@dataclass
class UploadedFile:
    """A file received from a client, independent of the web framework."""

    filename: Optional[str]
    stream: BinaryIO
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        name = self.filename or ""
        return name.rsplit(".", 1)[-1].lower() if "." in name else ""


@dataclass(frozen=True)
class PendingGallery:
    """An allocated id whose upload has not produced any stored file yet.

    Pending galleries never enter the metadata index; ``commit`` is the only
    way to obtain a record for one.
    """

    id: str

    def commit(self, file_names: List[str], display_name: Optional[str]) -> GalleryRecord:
        if not file_names:
            raise EmptyUpload()
        record = GalleryRecord(id=self.id, display_name=clean_display_name(display_name))
        record.add_files(file_names)
        return record


@dataclass
class StoredFiles:
    record: GalleryRecord
    stored: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GalleryDetails:
    gallery_id: str
    display_name: str
    has_background: bool
    file_count: int


@dataclass(frozen=True)
class GalleryListing:
    record: GalleryRecord
    file_count: int
    has_background: bool


@dataclass(frozen=True)
class ArchiveDownload:
    filename: str
    chunks: Iterator[bytes]


class GalleryService:
    """The logical gallery operations, composed from store, index and generators."""

    def __init__(
        self,
        store: ArtifactStore,
        index: GalleryIndex,
        reconciler: Reconciler,
        derivatives: DerivativeGenerator,
        archives: ArchiveStreamer,
        *,
        max_upload_bytes: Optional[int] = None,
        max_background_bytes: Optional[int] = None,
        default_logo_path: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.index = index
        self.reconciler = reconciler
        self.derivatives = derivatives
        self.archives = archives
        self.max_upload_bytes = max_upload_bytes
        self.max_background_bytes = max_background_bytes
        self.default_logo_path = default_logo_path
        self._pending: Set[str] = set()
        self._pending_lock = threading.Lock()

    # ---------------------------------------------------------------------
    # Uploads
    # ---------------------------------------------------------------------
    def begin_gallery(self) -> PendingGallery:
        pending = PendingGallery(self.store.create_gallery())
        with self._pending_lock:
            self._pending.add(pending.id)
        return pending

    def discard(self, pending: PendingGallery) -> None:
        """Roll back a pending gallery, removing anything already written for it."""
        try:
            self.store.delete_gallery(pending.id)
        finally:
            with self._pending_lock:
                self._pending.discard(pending.id)

    def create_gallery(self, uploads: Iterable[UploadedFile], display_name: Optional[str] = None) -> StoredFiles:
        """Allocate a gallery and store ``uploads`` in it.

        Fails with EmptyUpload, leaving nothing behind, when no file was stored.
        """
        pending = self.begin_gallery()
        try:
            stored = self._write_uploads(pending.id, uploads, [])
            record = pending.commit(stored, display_name)
            self.index.put(record)
        except BaseException:
            self.discard(pending)
            raise
        with self._pending_lock:
            self._pending.discard(pending.id)
        logger.info("Created gallery %s with %d files", record.id, len(stored))
        return StoredFiles(record=record, stored=stored)

    def add_photos(self, gallery_id: str, uploads: Iterable[UploadedFile]) -> StoredFiles:
        """Store more files in an existing gallery.

        Files stored before a failing upload are still recorded.
        """
        record = self._require_record(gallery_id)
        stored: List[str] = []
        try:
            self._write_uploads(gallery_id, uploads, stored)
        finally:
            if stored:
                record.add_files(stored)
                self.index.put(record)
        logger.info("Added %d files to gallery %s", len(stored), gallery_id)
        return StoredFiles(record=record, stored=stored)

    def _write_uploads(self, gallery_id: str, uploads: Iterable[UploadedFile], stored: List[str]) -> List[str]:
        for upload in uploads:
            if not self._is_photo(upload):
                raise UnsupportedMediaType()
            name = self.store.write_original(
                gallery_id, upload.filename, upload.stream, max_bytes=self.max_upload_bytes
            )
            if name not in stored:
                stored.append(name)
        return stored

    @staticmethod
    def _is_photo(upload: UploadedFile) -> bool:
        content_type = (upload.content_type or "").lower()
        return upload.extension in PHOTO_EXTENSIONS or content_type.startswith("image/")

    # ---------------------------------------------------------------------
    # Gallery metadata
    # ---------------------------------------------------------------------
    def set_background(self, gallery_id: str, upload: UploadedFile) -> str:
        self._require_record(gallery_id)
        if upload.extension not in BACKGROUND_EXTENSIONS:
            raise UnsupportedMediaType("Only JPEG, PNG, GIF, or WebP files are allowed for backgrounds")
        data = _read_limited(upload.stream, self.max_background_bytes)
        self.store.write_background(gallery_id, data)
        logger.info("Replaced background for gallery %s", gallery_id)
        return f"{gallery_id}.jpg"

    def background(self, gallery_id: str) -> bytes:
        return self.store.read_background(gallery_id)

    def rename(self, gallery_id: str, display_name: Optional[str]) -> GalleryRecord:
        record = self._require_record(gallery_id)
        record.display_name = clean_display_name(display_name)
        self.index.put(record)
        return record

    def info(self, gallery_id: str) -> GalleryDetails:
        require_gallery_id(gallery_id)
        record = self.index.get(gallery_id)
        try:
            file_count = len(self.store.list_originals(gallery_id))
        except NotFound:
            file_count = 0
        return GalleryDetails(
            gallery_id=gallery_id,
            display_name=record.display_name if record else PUBLIC_DISPLAY_NAME,
            has_background=self.store.has_background(gallery_id),
            file_count=file_count,
        )

    def list_galleries(self) -> List[GalleryListing]:
        """Every gallery, newest first, after reconciling the index with disk."""
        with self._pending_lock:
            pending = set(self._pending)
        self.reconciler.reconcile(exclude=pending)
        listings = []
        for record in self.index.list_all():
            try:
                file_count = len(self.store.list_originals(record.id))
            except NotFound:
                continue
            listings.append(
                GalleryListing(
                    record=record,
                    file_count=file_count,
                    has_background=self.store.has_background(record.id),
                )
            )
        listings.sort(key=lambda item: _sort_key(item.record.created_at), reverse=True)
        return listings

    def delete_gallery(self, gallery_id: str) -> None:
        """Remove every artifact and the index entry. NotFound if nothing existed."""
        existed = self.store.has_gallery(gallery_id) or gallery_id in self.index
        if not existed and not self.store.has_background(gallery_id):
            raise NotFound("Gallery not found")
        self.store.delete_gallery(gallery_id)
        self.index.remove(gallery_id)
        logger.info("Deleted gallery %s", gallery_id)

    def _require_record(self, gallery_id: str) -> GalleryRecord:
        record = self.index.get(require_gallery_id(gallery_id))
        if record is None:
            raise NotFound("Gallery not found")
        return record

    # ---------------------------------------------------------------------
    # Public delivery
    # ---------------------------------------------------------------------
    def list_photos(self, gallery_id: str) -> List[str]:
        return self.store.list_originals(gallery_id)

    def original_path(self, gallery_id: str, filename: str) -> Path:
        return self.store.original_path(gallery_id, filename)

    def photo(self, gallery_id: str, filename: str, *, thumbnail: bool = False) -> ImagePayload:
        if thumbnail:
            return self.derivatives.thumbnail(gallery_id, filename)
        data = self.store.read_original(gallery_id, filename)
        return ImagePayload(data, imaging.guess_media_type(filename), derived=False)

    def social_preview(self, gallery_id: str) -> ImagePayload:
        return self.derivatives.social_preview(gallery_id)

    def open_archive(self, gallery_id: str) -> ArchiveDownload:
        chunks = self.archives.open_stream(gallery_id)
        record = self.index.get(gallery_id)
        return ArchiveDownload(
            filename=archive_filename(record.display_name if record else None),
            chunks=chunks,
        )

    def warm_thumbnails(self, gallery_id: str, filenames: Iterable[str]) -> int:
        return self.derivatives.warm_thumbnails(gallery_id, [require_filename(name) for name in filenames])

    # ---------------------------------------------------------------------
    # Logo
    # ---------------------------------------------------------------------
    def logo(self) -> Tuple[bytes, str]:
        """The uploaded override, else the bundled default, as ``(bytes, media_type)``."""
        try:
            data, extension = self.store.read_logo()
        except NotFound:
            if self.default_logo_path is None:
                raise
            with storage_errors("reading default logo", missing="No logo available"):
                data = self.default_logo_path.read_bytes()
            return data, imaging.guess_media_type(self.default_logo_path.name)
        return data, imaging.guess_media_type(f"logo.{extension}")

    def set_logo(self, upload: UploadedFile) -> None:
        data = _read_limited(upload.stream, self.max_background_bytes)
        self.store.write_logo_override(data, upload.extension)

    def clear_logo(self) -> None:
        self.store.clear_logo_override()


def _read_limited(stream: BinaryIO, limit: Optional[int]) -> bytes:
    with storage_errors("reading upload"):
        data = stream.read() if limit is None else stream.read(limit + 1)
    if limit is not None and len(data) > limit:
        raise PayloadTooLarge()
    return data


def _sort_key(created: datetime) -> float:
    return created.timestamp()
