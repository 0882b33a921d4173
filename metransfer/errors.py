"""Error taxonomy shared by the storage, index and derivative layers.

Callers above the storage layer only ever see these exceptions; raw ``OSError``
instances are translated at the filesystem boundary and chained as ``__cause__``.
"""

from __future__ import annotations


class GalleryError(Exception):
    """Base class for every expected failure raised by the gallery subsystem."""

    default_message = "Gallery operation failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class InvalidIdentifier(GalleryError):
    default_message = "Invalid gallery ID"


class InvalidFilename(GalleryError):
    default_message = "Invalid filename"


class NotFound(GalleryError):
    default_message = "Not found"


class PreviewUnavailable(NotFound):
    default_message = "Preview image unavailable"


class PayloadTooLarge(GalleryError):
    default_message = "Upload exceeds the configured size limit"


class UnsupportedMediaType(GalleryError):
    default_message = "Only image files are allowed"


class InvalidImage(UnsupportedMediaType):
    default_message = "File could not be decoded as an image"


class EmptyUpload(GalleryError):
    default_message = "No photos were uploaded. Please select at least one image."


class StorageFailure(GalleryError):
    """An I/O failure that is not otherwise classified.

    ``action`` describes what was being attempted and is meant for server-side
    logs only.
    """

    default_message = "Internal storage error"

    def __init__(self, action: str = "", message: str | None = None) -> None:
        super().__init__(message)
        self.action = action


class ArchiveStreamError(StorageFailure):
    default_message = "Archive stream aborted"
