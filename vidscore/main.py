"""
FastAPI application entry point.

This module creates and configures the FastAPI application using an
application factory (create_app), so tests can build fresh instances.

For local development:
    uvicorn vidscore.main:app --reload

For production:
    gunicorn vidscore.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.dependencies import get_video_store
from .api.routes import health, rag, videos
from .config.settings import get_settings
from .core.analysis.errors import ConfigurationError
from .core.analysis.pipeline import recover_stale_videos
from .infrastructure.http.downloader import close_shared_http_client

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    On startup, validates configuration and fails any video left in
    PROCESSING by a previous process. On shutdown, closes the shared
    HTTP client.
    """
    settings = get_settings()

    logger.info(
        "VidScore API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "r2": settings.r2_mock_mode,
                "video_processor": settings.video_processor_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        # Log and continue so health endpoints can report what is missing
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    try:
        await asyncio.to_thread(
            recover_stale_videos,
            get_video_store(),
            timedelta(minutes=settings.stale_processing_minutes),
        )
    except Exception as e:
        logger.error(
            "Stale video recovery failed",
            extra={"error": str(e)},
            exc_info=e,
        )

    yield

    await close_shared_http_client()
    logger.info("VidScore API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Marketing performance scoring for short-form video.

        ## Workflow

        1. **Start an upload**: `POST /videos/init-upload`
           - Receive a video id and a presigned upload URL
           - PUT the video bytes to the upload URL

        2. **Confirm**: `POST /videos/{id}/confirm`
           - Analysis starts in the background

        3. **Poll**: `GET /videos/{id}`
           - Status moves from PROCESSING to COMPLETED or FAILED
           - Completed videos include the score and per-dimension feedback

        Knowledge base search is available at `POST /rag/search`.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        videos.router,
        prefix="/videos",
        tags=["Videos"],
    )

    app.include_router(
        rag.router,
        prefix="/rag",
        tags=["RAG"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "VidScore AI API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        """
        The analysis backend can't be built (e.g. no API key).

        Raised while resolving dependencies, so the request made no changes.
        """
        logger.error(
            "Analysis backend not configured",
            extra={"path": request.url.path, "error": str(exc)}
        )

        return JSONResponse(
            status_code=503,
            content={"detail": "Video analysis is not configured on this server."}
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message, so
        stack traces never reach clients.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# This is what uvicorn/gunicorn will import
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "vidscore.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
