import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException

from metransfer.errors import (
    EmptyUpload,
    GalleryError,
    InvalidFilename,
    InvalidIdentifier,
    NotFound,
    PayloadTooLarge,
    StorageFailure,
    UnsupportedMediaType,
)

logger = logging.getLogger(__name__)

STATUS_CODES = (
    (InvalidIdentifier, status.HTTP_400_BAD_REQUEST),
    (InvalidFilename, status.HTTP_400_BAD_REQUEST),
    (EmptyUpload, status.HTTP_400_BAD_REQUEST),
    (NotFound, status.HTTP_404_NOT_FOUND),
    (PayloadTooLarge, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (UnsupportedMediaType, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE),
)


def status_for(exc: GalleryError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def gallery_error_handler(request: Request, exc: GalleryError) -> JSONResponse:
    code = status_for(exc)
    if isinstance(exc, StorageFailure) or code >= 500:
        logger.error(
            "Storage failure on %s %s while %s",
            request.method,
            request.url.path,
            getattr(exc, "action", "") or "handling request",
            exc_info=exc.__cause__ or exc,
        )
        return JSONResponse({"error": StorageFailure.default_message}, status_code=code)
    return JSONResponse({"error": exc.message}, status_code=code)


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse({"error": exc.detail}, status_code=exc.status_code, headers=getattr(exc, "headers", None))


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(GalleryError, gallery_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
