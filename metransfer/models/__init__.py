"""Pydantic models for the metadata index and the HTTP API."""

from .schemas import (  # noqa: F401
    DEFAULT_DISPLAY_NAME,
    BackgroundResult,
    GalleryCreated,
    GalleryInfo,
    GalleryRecord,
    GallerySummary,
    PasswordCheck,
    PhotoEntry,
    RenameRequest,
    RenameResult,
    SuccessResponse,
    UploadResult,
)
