from __future__ import annotations

from dataclasses import dataclass

from metransfer.config import Settings
from metransfer.repositories.galleries import GalleryIndex
from metransfer.services.archive import ArchiveStreamer
from metransfer.services.derivatives import DerivativeGenerator
from metransfer.services.galleries import GalleryService
from metransfer.services.reconciler import Reconciler
from metransfer.storage.filesystem import ArtifactStore

INDEX_FILENAME = "galleries.json"


@dataclass
class GalleryContext:
    """Owns the mutable gallery state for one process.

    Built once per process and handed explicitly to the API and the worker.
    """

    settings: Settings
    store: ArtifactStore
    index: GalleryIndex
    reconciler: Reconciler
    derivatives: DerivativeGenerator
    archives: ArchiveStreamer
    galleries: GalleryService


def build_context(settings: Settings, *, reconcile: bool = True) -> GalleryContext:
    """Wire the components from ``settings``, load the index and reconcile it with disk."""
    store = ArtifactStore(
        settings.data_root,
        background_max_width=settings.background_max_width,
        background_quality=settings.background_quality,
    )
    index = GalleryIndex(settings.data_root / INDEX_FILENAME)
    reconciler = Reconciler(store, index)
    derivatives = DerivativeGenerator(
        store,
        thumbnail_width=settings.thumbnail_width,
        thumbnail_quality=settings.thumbnail_quality,
        preview_size=(settings.preview_width, settings.preview_height),
        preview_quality=settings.preview_quality,
    )
    archives = ArchiveStreamer(store, compression_level=settings.zip_compression_level)
    galleries = GalleryService(
        store,
        index,
        reconciler,
        derivatives,
        archives,
        max_upload_bytes=settings.max_upload_bytes,
        max_background_bytes=settings.max_background_bytes,
        default_logo_path=settings.default_logo_path,
    )

    index.load()
    if reconcile:
        reconciler.reconcile()

    return GalleryContext(
        settings=settings,
        store=store,
        index=index,
        reconciler=reconciler,
        derivatives=derivatives,
        archives=archives,
        galleries=galleries,
    )
