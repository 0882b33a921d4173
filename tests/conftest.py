import io
from pathlib import Path
from typing import Tuple

import pytest
from PIL import Image

from metransfer.config import Settings
from metransfer.services.context import GalleryContext, build_context
from metransfer.services.galleries import UploadedFile


def make_image(size: Tuple[int, int] = (800, 600), color: str = "red", fmt: str = "JPEG") -> bytes:
    """Encode a solid-colour test image."""
    buf = io.BytesIO()
    mode = "RGBA" if fmt == "PNG" else "RGB"
    Image.new(mode, size, color=color).save(buf, format=fmt)
    return buf.getvalue()


def image_size(data: bytes) -> Tuple[int, int]:
    with Image.open(io.BytesIO(data)) as image:
        return image.size


def upload(filename: str, data: bytes, content_type: str = "image/jpeg") -> UploadedFile:
    return UploadedFile(filename=filename, stream=io.BytesIO(data), content_type=content_type)


def tree(root: Path) -> set:
    """Snapshot of every path below ``root``."""
    return {str(path.relative_to(root)) for path in root.rglob("*")}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(data_root=tmp_path / "data", admin_password="secret", _env_file=None)


@pytest.fixture
def context(settings: Settings) -> GalleryContext:
    return build_context(settings)


@pytest.fixture
def store(context):
    return context.store


@pytest.fixture
def index(context):
    return context.index


@pytest.fixture
def galleries(context):
    return context.galleries


@pytest.fixture
def gallery_id(galleries) -> str:
    """A committed gallery holding two JPEGs, ``a.jpg`` and ``b.jpg``."""
    result = galleries.create_gallery(
        [upload("a.jpg", make_image(color="red")), upload("b.jpg", make_image(color="blue"))],
        "Summer Party",
    )
    return result.record.id
