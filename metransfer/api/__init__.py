"""FastAPI routers for the MeTransfer gallery service."""

from fastapi import APIRouter

from .admin import router as admin_router
from .galleries import router as galleries_router

api_router = APIRouter(prefix="/api")
api_router.include_router(galleries_router, tags=["galleries"])
api_router.include_router(admin_router, tags=["admin"])
