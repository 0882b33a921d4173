from __future__ import annotations

import logging
import re
import zipfile
from contextlib import closing
from pathlib import Path
from typing import Callable, Iterator, List, Tuple

from metransfer.errors import ArchiveStreamError, NotFound
from metransfer.storage.filesystem import ArtifactStore

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 1024 * 1024
_NAME_STRIP_RE = re.compile(r"[^a-zA-Z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")


class _ChunkSink:
    """Write-only, non-seekable file object collecting whatever ZipFile emits.

    With no ``tell``/``seek`` ZipFile falls back to streaming mode and writes
    sizes and CRCs in data descriptors after each entry.
    """

    def __init__(self) -> None:
        self._chunks: List[bytes] = []

    def write(self, data: bytes) -> int:
        if data:
            self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _set_compress_level(info: zipfile.ZipInfo, level: int) -> None:
    """Per-entry DEFLATE level, the only one ``ZipFile.open(info, "w")`` reads.

    Python 3.13 made it public as ``compress_level``; older releases only have
    ``_compresslevel``.
    """
    if hasattr(info, "compress_level"):
        info.compress_level = level
    else:
        info._compresslevel = level


def archive_filename(display_name: str | None) -> str:
    """Download name for a gallery archive, e.g. ``Summer-Party.zip``."""
    stem = _NAME_STRIP_RE.sub("", display_name or "")
    stem = _WHITESPACE_RE.sub("-", stem)[:50]
    return f"{stem or 'photos'}.zip"


class ArchiveStreamer:
    """Streams a gallery's originals as a ZIP without materializing the archive."""

    def __init__(self, store: ArtifactStore, *, compression_level: int = 5, chunk_size: int = READ_CHUNK_SIZE) -> None:
        self.store = store
        self.compression_level = compression_level
        self.chunk_size = chunk_size

    def open_stream(self, gallery_id: str) -> Iterator[bytes]:
        """Resolve the file list now and return a generator of archive bytes.

        Raises NotFound up front for a missing or empty gallery, so callers can
        still answer with a 404 before any bytes are sent.
        """
        entries = self.store.original_entries(gallery_id)
        if not entries:
            raise NotFound("No files in gallery")
        return self._generate(gallery_id, entries)

    def stream_zip(self, gallery_id: str, consumer: Callable[[bytes], object]) -> int:
        """Feed the archive into ``consumer`` chunk by chunk; returns bytes delivered.

        If reading fails mid-stream the ArchiveStreamError propagates to the
        caller after whatever was already delivered; the archive is then
        missing its central directory.
        """
        delivered = 0
        with closing(self.open_stream(gallery_id)) as chunks:
            for chunk in chunks:
                consumer(chunk)
                delivered += len(chunk)
        return delivered

    def _generate(self, gallery_id: str, entries: List[Tuple[str, Path]]) -> Iterator[bytes]:
        sink = _ChunkSink()
        archive = zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED, allowZip64=True)
        try:
            for name, path in entries:
                try:
                    info = zipfile.ZipInfo.from_file(path, arcname=name, strict_timestamps=False)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    _set_compress_level(info, self.compression_level)
                    force_zip64 = info.file_size >= zipfile.ZIP64_LIMIT
                    with path.open("rb") as source, archive.open(info, mode="w", force_zip64=force_zip64) as target:
                        while True:
                            block = source.read(self.chunk_size)
                            if not block:
                                break
                            target.write(block)
                            data = sink.drain()
                            if data:
                                yield data
                except OSError as exc:
                    logger.error("Aborting archive for gallery %s at %s", gallery_id, name, exc_info=exc)
                    raise ArchiveStreamError(f"reading {name} for archive") from exc
                data = sink.drain()
                if data:
                    yield data
            archive.close()
            data = sink.drain()
            if data:
                yield data
        finally:
            # On abort or early close the central directory is discarded with the sink.
            sink.drain()
