from __future__ import annotations

import logging
import os
from typing import Iterable, List, Optional

from rq import SimpleWorker, Worker

from metransfer.config import get_settings
from metransfer.queue import get_queue
from metransfer.services.context import GalleryContext, build_context

logger = logging.getLogger(__name__)

_context: Optional[GalleryContext] = None


def _get_context() -> GalleryContext:
    """Build the worker's own context on first use; the index is only read here."""
    global _context
    if _context is None:
        _context = build_context(get_settings(), reconcile=False)
    return _context


def warm_thumbnails(*, gallery_id: str, filenames: Iterable[str]) -> int:
    """RQ job: pre-generate thumbnails for freshly uploaded files."""
    names: List[str] = list(filenames)
    generated = _get_context().galleries.warm_thumbnails(gallery_id, names)
    logger.info("Warmed %d/%d thumbnails for gallery %s", generated, len(names), gallery_id)
    return generated


def run_worker() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    queue = get_queue(settings)
    if queue is None:
        raise SystemExit("METRANSFER_REDIS_URL must be set to run the thumbnail worker")
    if os.name == "nt":
        worker = SimpleWorker([queue], connection=queue.connection)
    else:
        worker = Worker([queue], connection=queue.connection)
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    run_worker()
