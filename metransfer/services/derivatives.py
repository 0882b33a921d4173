from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from metransfer.errors import InvalidImage, NotFound, PreviewUnavailable, StorageFailure
from metransfer.services import imaging
from metransfer.storage.filesystem import ArtifactStore, storage_errors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImagePayload:
    content: bytes
    media_type: str
    derived: bool = True


class DerivativeGenerator:
    """Generates and caches thumbnails and social-preview images.

    Both derivatives are best-effort: a source that cannot be decoded never
    turns into a server error. Cached files are returned as-is, so a second
    request for the same output performs no decoding or encoding.
    """

    def __init__(
        self,
        store: ArtifactStore,
        *,
        thumbnail_width: int = 400,
        thumbnail_quality: int = 80,
        preview_size: Tuple[int, int] = (1200, 630),
        preview_quality: int = 80,
    ) -> None:
        self.store = store
        self.thumbnail_width = thumbnail_width
        self.thumbnail_quality = thumbnail_quality
        self.preview_size = preview_size
        self.preview_quality = preview_quality

    # ---------------------------------------------------------------------
    # Thumbnails
    # ---------------------------------------------------------------------
    def thumbnail(self, gallery_id: str, filename: str) -> ImagePayload:
        """Return the thumbnail, or the original bytes if it cannot be made."""
        cached = self.store.read_thumbnail(gallery_id, filename)
        if cached is not None:
            return ImagePayload(cached, imaging.JPEG_MEDIA_TYPE)

        original = self.store.read_original(gallery_id, filename)
        generated = self._render_thumbnail(gallery_id, filename, original)
        if generated is None:
            return ImagePayload(original, imaging.guess_media_type(filename), derived=False)
        return ImagePayload(generated, imaging.JPEG_MEDIA_TYPE)

    def ensure_thumbnail(self, gallery_id: str, filename: str) -> bool:
        """Make sure a cached thumbnail exists. Returns False if none could be made."""
        if self.store.read_thumbnail(gallery_id, filename) is not None:
            return True
        original = self.store.read_original(gallery_id, filename)
        return self._render_thumbnail(gallery_id, filename, original) is not None

    def warm_thumbnails(self, gallery_id: str, filenames: Iterable[str]) -> int:
        """Pre-generate thumbnails after an upload. Failures are logged, never raised."""
        generated = 0
        for filename in filenames:
            try:
                if self.ensure_thumbnail(gallery_id, filename):
                    generated += 1
            except NotFound:
                logger.info("Skipping thumbnail for vanished file %s/%s", gallery_id, filename)
            except StorageFailure as exc:
                logger.warning(
                    "Thumbnail warm-up failed for %s/%s", gallery_id, filename, exc_info=exc.__cause__ or exc
                )
        return generated

    def _render_thumbnail(self, gallery_id: str, filename: str, original: bytes) -> Optional[bytes]:
        try:
            data = imaging.make_thumbnail(original, self.thumbnail_width, self.thumbnail_quality)
        except InvalidImage:
            logger.info("Not thumbnailing %s/%s: not a decodable image", gallery_id, filename)
            return None
        try:
            self.store.write_thumbnail(gallery_id, filename, data)
        except StorageFailure as exc:
            logger.warning("Could not cache thumbnail %s/%s", gallery_id, filename, exc_info=exc.__cause__ or exc)
        return data

    # ---------------------------------------------------------------------
    # Social preview
    # ---------------------------------------------------------------------
    def social_preview(self, gallery_id: str) -> ImagePayload:
        """Return the cached preview, generating it from the background or first photo."""
        cached = self.store.read_preview(gallery_id)
        if cached is not None:
            return ImagePayload(cached, imaging.JPEG_MEDIA_TYPE)

        source = self._preview_source(gallery_id)
        try:
            data = imaging.make_social_preview(source, self.preview_size, self.preview_quality)
        except InvalidImage as exc:
            logger.warning("Could not generate preview image for %s", gallery_id)
            raise PreviewUnavailable() from exc
        try:
            self.store.write_preview(gallery_id, data)
        except StorageFailure as exc:
            logger.warning("Could not cache preview image %s", gallery_id, exc_info=exc.__cause__ or exc)
        return ImagePayload(data, imaging.JPEG_MEDIA_TYPE)

    def _preview_source(self, gallery_id: str) -> bytes:
        if self.store.has_background(gallery_id):
            try:
                return self.store.read_background(gallery_id)
            except NotFound:
                pass
        entries = self.store.original_entries(gallery_id)
        if not entries:
            raise NotFound("No photos")
        _, path = entries[0]
        with storage_errors("reading preview source", missing="No photos"):
            return path.read_bytes()
