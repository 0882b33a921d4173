from fastapi import APIRouter, Depends, File, HTTPException, Response, UploadFile
from starlette import status

from metransfer.api.galleries import get_context, get_galleries
from metransfer.api.security import password_matches, require_admin
from metransfer.models import PasswordCheck, SuccessResponse
from metransfer.services.context import GalleryContext
from metransfer.services.galleries import GalleryService, UploadedFile

router = APIRouter()


@router.post("/auth/verify", response_model=SuccessResponse)
async def verify_password(payload: PasswordCheck, context: GalleryContext = Depends(get_context)) -> SuccessResponse:
    if not password_matches(context.settings.admin_password, payload.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid password")
    return SuccessResponse()


@router.get("/logo")
def get_logo(galleries: GalleryService = Depends(get_galleries)) -> Response:
    data, media_type = galleries.logo()
    return Response(data, media_type=media_type, headers={"Cache-Control": "no-cache"})


@router.post("/logo", response_model=SuccessResponse, dependencies=[Depends(require_admin)])
def upload_logo(logo: UploadFile = File(...), galleries: GalleryService = Depends(get_galleries)) -> SuccessResponse:
    galleries.set_logo(UploadedFile(filename=logo.filename, stream=logo.file, content_type=logo.content_type))
    return SuccessResponse()


@router.delete("/logo", response_model=SuccessResponse, dependencies=[Depends(require_admin)])
def clear_logo(galleries: GalleryService = Depends(get_galleries)) -> SuccessResponse:
    galleries.clear_logo()
    return SuccessResponse()
