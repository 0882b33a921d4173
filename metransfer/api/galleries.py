from typing import AsyncIterator, Iterator, List, Optional
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, Response, UploadFile
from fastapi.responses import FileResponse, StreamingResponse
from starlette.concurrency import iterate_in_threadpool

from metransfer.api.security import require_admin
from metransfer.models import (
    BackgroundResult,
    GalleryCreated,
    GalleryInfo,
    GallerySummary,
    PhotoEntry,
    RenameRequest,
    RenameResult,
    SuccessResponse,
    UploadResult,
)
from metransfer.queue import get_queue
from metransfer.services.context import GalleryContext
from metransfer.services.galleries import GalleryService, UploadedFile

router = APIRouter()


def get_context(request: Request) -> GalleryContext:
    return request.app.state.context


def get_galleries(context: GalleryContext = Depends(get_context)) -> GalleryService:
    return context.galleries


def _base_url(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _uploads(files: Optional[List[UploadFile]]) -> List[UploadedFile]:
    return [
        UploadedFile(filename=item.filename, stream=item.file, content_type=item.content_type)
        for item in files or []
        if item.filename
    ]


def schedule_thumbnails(
    context: GalleryContext, background_tasks: BackgroundTasks, gallery_id: str, filenames: List[str]
) -> None:
    """Warm thumbnails after the response: on the RQ queue when configured, else in-process."""
    if not filenames:
        return
    queue = get_queue(context.settings)
    if queue is None:
        background_tasks.add_task(context.galleries.warm_thumbnails, gallery_id, filenames)
        return
    queue.enqueue("metransfer.worker.warm_thumbnails", gallery_id=gallery_id, filenames=filenames)


async def _close_after(chunks: Iterator[bytes]) -> AsyncIterator[bytes]:
    """Relay a blocking generator and close it however the response ends."""
    try:
        async for chunk in iterate_in_threadpool(chunks):
            yield chunk
    finally:
        close = getattr(chunks, "close", None)
        if close is not None:
            close()


# -------------------------------------------------------------------------
# Admin operations
# -------------------------------------------------------------------------
@router.post("/gallery/create", response_model=GalleryCreated, dependencies=[Depends(require_admin)])
def create_gallery(
    request: Request,
    background_tasks: BackgroundTasks,
    photos: Optional[List[UploadFile]] = File(None),
    event_name: Optional[str] = Form(None, alias="eventName"),
    context: GalleryContext = Depends(get_context),
) -> GalleryCreated:
    result = context.galleries.create_gallery(_uploads(photos), event_name)
    schedule_thumbnails(context, background_tasks, result.record.id, result.stored)
    return GalleryCreated(
        gallery_id=result.record.id,
        download_url=f"{_base_url(request)}/api/gallery/{result.record.id}/download",
        file_count=len(result.stored),
    )


@router.post("/gallery/{gallery_id}/upload", response_model=UploadResult, dependencies=[Depends(require_admin)])
def add_photos(
    gallery_id: str,
    background_tasks: BackgroundTasks,
    photos: Optional[List[UploadFile]] = File(None),
    context: GalleryContext = Depends(get_context),
) -> UploadResult:
    result = context.galleries.add_photos(gallery_id, _uploads(photos))
    schedule_thumbnails(context, background_tasks, gallery_id, result.stored)
    return UploadResult(file_count=len(result.record.file_names))


@router.post(
    "/gallery/{gallery_id}/background", response_model=BackgroundResult, dependencies=[Depends(require_admin)]
)
def set_background(
    gallery_id: str,
    background: UploadFile = File(...),
    galleries: GalleryService = Depends(get_galleries),
) -> BackgroundResult:
    upload = UploadedFile(filename=background.filename, stream=background.file, content_type=background.content_type)
    return BackgroundResult(background=galleries.set_background(gallery_id, upload))


@router.post("/gallery/{gallery_id}/rename", response_model=RenameResult, dependencies=[Depends(require_admin)])
def rename_gallery(
    gallery_id: str,
    payload: RenameRequest,
    galleries: GalleryService = Depends(get_galleries),
) -> RenameResult:
    record = galleries.rename(gallery_id, payload.event_name)
    return RenameResult(event_name=record.display_name)


@router.get("/galleries", response_model=List[GallerySummary], dependencies=[Depends(require_admin)])
def list_galleries(request: Request, galleries: GalleryService = Depends(get_galleries)) -> List[GallerySummary]:
    base_url = _base_url(request)
    return [
        GallerySummary(
            id=item.record.id,
            event_name=item.record.display_name,
            created=item.record.created_at,
            file_count=item.file_count,
            has_background=item.has_background,
            download_url=f"{base_url}/api/gallery/{item.record.id}/download",
        )
        for item in galleries.list_galleries()
    ]


@router.delete("/gallery/{gallery_id}", response_model=SuccessResponse, dependencies=[Depends(require_admin)])
def delete_gallery(gallery_id: str, galleries: GalleryService = Depends(get_galleries)) -> SuccessResponse:
    galleries.delete_gallery(gallery_id)
    return SuccessResponse()


# -------------------------------------------------------------------------
# Public delivery
# -------------------------------------------------------------------------
@router.get("/gallery/{gallery_id}/background")
def get_background(gallery_id: str, galleries: GalleryService = Depends(get_galleries)) -> Response:
    return Response(galleries.background(gallery_id), media_type="image/jpeg")


@router.get("/gallery/{gallery_id}/photos", response_model=List[PhotoEntry])
def list_photos(gallery_id: str, galleries: GalleryService = Depends(get_galleries)) -> List[PhotoEntry]:
    entries = []
    for filename in galleries.list_photos(gallery_id):
        quoted = quote(filename, safe="")
        entries.append(
            PhotoEntry(
                filename=filename,
                url=f"/api/gallery/{gallery_id}/photo/{quoted}",
                thumbnail_url=f"/api/gallery/{gallery_id}/photo/{quoted}?thumb=1",
                download_url=f"/api/gallery/{gallery_id}/download/{quoted}",
            )
        )
    return entries


@router.get("/gallery/{gallery_id}/photo/{filename}")
def get_photo(
    gallery_id: str,
    filename: str,
    thumb: Optional[str] = Query(None, description="Set to 1 for a 400px-wide JPEG thumbnail."),
    galleries: GalleryService = Depends(get_galleries),
) -> Response:
    if thumb == "1":
        payload = galleries.photo(gallery_id, filename, thumbnail=True)
        return Response(payload.content, media_type=payload.media_type)
    return FileResponse(galleries.original_path(gallery_id, filename))


@router.get("/gallery/{gallery_id}/download/{filename}")
def download_photo(gallery_id: str, filename: str, galleries: GalleryService = Depends(get_galleries)) -> Response:
    return FileResponse(galleries.original_path(gallery_id, filename), filename=filename)


@router.get("/gallery/{gallery_id}/og-image")
def get_social_preview(gallery_id: str, galleries: GalleryService = Depends(get_galleries)) -> Response:
    payload = galleries.social_preview(gallery_id)
    return Response(payload.content, media_type=payload.media_type)


@router.get("/gallery/{gallery_id}/info", response_model=GalleryInfo)
def get_info(gallery_id: str, galleries: GalleryService = Depends(get_galleries)) -> GalleryInfo:
    details = galleries.info(gallery_id)
    return GalleryInfo(
        gallery_id=details.gallery_id,
        event_name=details.display_name,
        background=f"/api/gallery/{gallery_id}/background" if details.has_background else None,
        file_count=details.file_count,
    )


@router.get("/gallery/{gallery_id}/download")
def download_all(gallery_id: str, galleries: GalleryService = Depends(get_galleries)) -> StreamingResponse:
    download = galleries.open_archive(gallery_id)
    return StreamingResponse(
        _close_after(download.chunks),
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{download.filename}"'},
    )
