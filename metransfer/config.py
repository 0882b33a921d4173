from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated, List, Optional

from pydantic import AnyUrl, Field, validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Central application configuration parsed from environment variables."""

    api_host: str = Field("0.0.0.0", description="Host interface for the API server.")
    api_port: int = Field(3000, description="Port for the API server.")
    admin_password: str = Field(
        "", description="Shared secret required for admin operations. Empty rejects every admin call."
    )
    cors_origins: List[str] = Field(default_factory=list, description="Origins allowed to call the API.")

    data_root: Path = Field(Path("./data"), description="Base path for uploads, caches and galleries.json.")
    default_logo_path: Optional[Path] = Field(
        None, description="Bundled logo served when no override has been uploaded."
    )

    max_upload_mb: Annotated[int, Field(ge=1)] = Field(200, description="Per-photo upload ceiling in MiB.")
    max_background_mb: Annotated[int, Field(ge=1)] = Field(20, description="Background upload ceiling in MiB.")

    thumbnail_width: Annotated[int, Field(ge=1)] = Field(400, description="Width of generated thumbnails.")
    thumbnail_quality: Annotated[int, Field(ge=1, le=100)] = Field(80, description="JPEG quality of thumbnails.")
    preview_width: Annotated[int, Field(ge=1)] = Field(1200, description="Width of social-preview images.")
    preview_height: Annotated[int, Field(ge=1)] = Field(630, description="Height of social-preview images.")
    preview_quality: Annotated[int, Field(ge=1, le=100)] = Field(80, description="JPEG quality of previews.")
    background_max_width: Annotated[int, Field(ge=1)] = Field(
        2400, description="Backgrounds wider than this are downscaled on upload."
    )
    background_quality: Annotated[int, Field(ge=1, le=100)] = Field(
        85, description="JPEG quality of normalized backgrounds."
    )
    zip_compression_level: Annotated[int, Field(ge=0, le=9)] = Field(
        5, description="DEFLATE level for gallery archives. Photos are already compressed."
    )

    redis_url: Optional[AnyUrl] = Field(
        None, description="Redis connection for the RQ thumbnail queue. Unset runs jobs in-process."
    )
    log_level: str = Field("INFO", description="Root logging level.")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "METRANSFER_"

    @validator("data_root", "default_logo_path", pre=True)
    def expand_paths(cls, value: Optional[Path]) -> Optional[Path]:
        """Expand user and environment variables for configured paths."""
        if value in (None, ""):
            return None
        return Path(value).expanduser().resolve()

    @validator("log_level")
    def normalize_log_level(cls, value: str) -> str:
        return value.upper()

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def max_background_bytes(self) -> int:
        return self.max_background_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance to avoid reparsing the environment."""
    return Settings()
