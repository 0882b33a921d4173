from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from metransfer.errors import NotFound
from metransfer.models.schemas import DEFAULT_DISPLAY_NAME, GalleryRecord
from metransfer.repositories.galleries import GalleryIndex
from metransfer.storage.filesystem import ArtifactStore

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    removed: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed or self.added)


class Reconciler:
    """Bring the metadata index in line with the galleries present on disk."""

    def __init__(self, store: ArtifactStore, index: GalleryIndex) -> None:
        self.store = store
        self.index = index

    def reconcile(self, *, exclude: Iterable[str] = ()) -> ReconcileReport:
        """Drop stale entries, recover un-indexed directories, then save once.

        ``exclude`` names galleries whose upload is still in flight; their
        directories exist before their records do and must not be synthesized.
        """
        report = ReconcileReport()
        pending = set(exclude)
        on_disk = set(self.store.gallery_ids())

        for gallery_id in self.index.ids():
            if gallery_id not in on_disk:
                self.index.remove(gallery_id, persist=False)
                report.removed.append(gallery_id)

        for gallery_id in sorted(on_disk - pending):
            if gallery_id in self.index:
                continue
            try:
                record = GalleryRecord(
                    id=gallery_id,
                    display_name=DEFAULT_DISPLAY_NAME,
                    created_at=self.store.gallery_created_at(gallery_id),
                    file_names=self.store.list_originals(gallery_id),
                )
            except NotFound:
                # Removed between the directory scan and now.
                continue
            self.index.put(record, persist=False)
            report.added.append(gallery_id)

        if report.changed:
            self.index.save()
            logger.info(
                "Reconciled gallery index: %d stale removed, %d recovered from disk",
                len(report.removed),
                len(report.added),
            )
        return report
