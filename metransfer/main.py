import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from metransfer.api import api_router
from metransfer.api.errors import register_error_handlers
from metransfer.config import Settings, get_settings
from metransfer.services.context import build_context

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    context = build_context(settings)
    logger.info("Serving %d galleries from %s", len(context.index), settings.data_root)

    app = FastAPI(
        title="MeTransfer",
        version="0.1.0",
        description="Photo gallery uploads with thumbnail, preview and ZIP delivery.",
    )
    app.state.context = context

    @app.get("/healthz", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(api_router)
    register_error_handlers(app)

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    return app


def run() -> None:
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    uvicorn.run(
        "metransfer.main:create_app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
        factory=True,
    )


if __name__ == "__main__":
    run()
