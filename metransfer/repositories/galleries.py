from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from pydantic import TypeAdapter, ValidationError

from metransfer.identifiers import is_valid_gallery_id
from metransfer.models.schemas import GalleryRecord
from metransfer.storage.filesystem import atomic_write, storage_errors

logger = logging.getLogger(__name__)

_records_adapter = TypeAdapter(List[GalleryRecord])


class GalleryIndex:
    """In-memory table of gallery records persisted to a single JSON file.

    The table is a cache of what exists under ``uploads/``; the reconciler
    rebuilds it from disk, never the other way round.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._records: Dict[str, GalleryRecord] = {}
        self._lock = threading.RLock()

    # ---------------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------------
    def load(self) -> None:
        """Replace the table with the file contents. Never raises."""
        records: Dict[str, GalleryRecord] = {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(raw, list):
                raise ValueError("gallery index must be a JSON array")
        except FileNotFoundError:
            raw = []
        except (OSError, ValueError) as exc:
            logger.error("Gallery index %s is unreadable, starting empty: %s", self.path, exc)
            self._set_aside()
            raw = []

        for entry in raw:
            try:
                record = GalleryRecord.model_validate(entry)
            except ValidationError as exc:
                logger.warning("Skipping malformed gallery record: %s", exc)
                continue
            if not is_valid_gallery_id(record.id):
                logger.warning("Skipping gallery record with invalid id %r", record.id)
                continue
            records[record.id] = record

        with self._lock:
            self._records = records
        logger.info("Loaded %d gallery records from %s", len(records), self.path)

    def save(self) -> None:
        """Atomically rewrite the persisted file from the current table."""
        with self._lock:
            payload = _records_adapter.dump_json(list(self._records.values()), by_alias=True, indent=2)
            with storage_errors("saving gallery index"):
                atomic_write(self.path, payload)

    def _set_aside(self) -> None:
        corrupt = self.path.with_name(self.path.name + ".corrupt")
        try:
            os.replace(self.path, corrupt)
        except OSError as exc:
            logger.warning("Could not move corrupt gallery index aside: %s", exc)
        else:
            logger.warning("Moved corrupt gallery index to %s", corrupt)

    # ---------------------------------------------------------------------
    # Table access
    # ---------------------------------------------------------------------
    def get(self, gallery_id: str) -> Optional[GalleryRecord]:
        with self._lock:
            return self._records.get(gallery_id)

    def put(self, record: GalleryRecord, *, persist: bool = True) -> None:
        with self._lock:
            self._records[record.id] = record
            if persist:
                self.save()

    def remove(self, gallery_id: str, *, persist: bool = True) -> Optional[GalleryRecord]:
        with self._lock:
            record = self._records.pop(gallery_id, None)
            if record is not None and persist:
                self.save()
            return record

    def list_all(self) -> List[GalleryRecord]:
        with self._lock:
            return list(self._records.values())

    def ids(self) -> List[str]:
        with self._lock:
            return list(self._records)

    def __contains__(self, gallery_id: object) -> bool:
        with self._lock:
            return gallery_id in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[GalleryRecord]:
        return iter(self.list_all())
