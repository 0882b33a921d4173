from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

DEFAULT_DISPLAY_NAME = "Untitled Event"
PUBLIC_DISPLAY_NAME = "Your Photos"
MAX_DISPLAY_NAME_LENGTH = 200


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def clean_display_name(value: Optional[str]) -> str:
    """Trim and cap a user-supplied gallery name, falling back to the placeholder."""
    cleaned = str(value or "").strip()[:MAX_DISPLAY_NAME_LENGTH]
    return cleaned or DEFAULT_DISPLAY_NAME


class GalleryRecord(BaseModel):
    """One entry of the persisted metadata index.

    Field aliases match the keys of ``galleries.json``.
    """

    id: str
    display_name: str = Field(DEFAULT_DISPLAY_NAME, alias="eventName")
    created_at: datetime = Field(default_factory=_utcnow, alias="created")
    file_names: List[str] = Field(default_factory=list, alias="files")

    class Config:
        populate_by_name = True

    def add_files(self, names: List[str]) -> List[str]:
        """Append names not already recorded, keeping order. Returns the ones added."""
        added = [name for name in dict.fromkeys(names) if name not in self.file_names]
        self.file_names.extend(added)
        return added


class GalleryCreated(BaseModel):
    success: bool = True
    gallery_id: str = Field(..., alias="galleryId")
    download_url: str = Field(..., alias="downloadUrl", description="Absolute URL of the gallery ZIP archive.")
    file_count: int = Field(..., alias="fileCount")

    class Config:
        populate_by_name = True


class UploadResult(BaseModel):
    success: bool = True
    file_count: int = Field(..., alias="fileCount")

    class Config:
        populate_by_name = True


class RenameRequest(BaseModel):
    event_name: Optional[str] = Field(None, alias="eventName")

    class Config:
        populate_by_name = True


class RenameResult(BaseModel):
    success: bool = True
    event_name: str = Field(..., alias="eventName")

    class Config:
        populate_by_name = True


class BackgroundResult(BaseModel):
    success: bool = True
    background: str


class PhotoEntry(BaseModel):
    filename: str
    url: str
    thumbnail_url: str = Field(..., alias="thumbnailUrl")
    download_url: str = Field(..., alias="downloadUrl")

    class Config:
        populate_by_name = True


class GalleryInfo(BaseModel):
    gallery_id: str = Field(..., alias="galleryId")
    event_name: str = Field(..., alias="eventName")
    background: Optional[str] = None
    file_count: int = Field(..., alias="fileCount")

    class Config:
        populate_by_name = True


class GallerySummary(BaseModel):
    id: str
    event_name: str = Field(..., alias="eventName")
    created: datetime
    file_count: int = Field(..., alias="fileCount")
    has_background: bool = Field(..., alias="hasBackground")
    download_url: str = Field(..., alias="downloadUrl", description="Absolute URL of the gallery ZIP archive.")

    class Config:
        populate_by_name = True


class PasswordCheck(BaseModel):
    password: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True
