"""
FastAPI application entry point for the access engine.

School context is read from request headers on every route; there is no
ambient tenant state.
"""

import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from access_engine.api.routes import access, downloads, quizzes
from access_engine.config.settings import get_engine_settings
from access_engine.database.session import create_schema
from access_engine.errors import AccessEngineError
from access_engine.platform.side_effects import get_side_effect_runner

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting access engine API")

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL is not set. Store-backed endpoints will return 503.")
        app.state.database_configured = False
    else:
        masked = database_url.split("@")[-1] if "@" in database_url else "(local)"
        logger.info("DATABASE_URL configured", extra={"host_db": masked})
        create_schema()
        app.state.database_configured = True

    settings = get_engine_settings()
    logger.info(
        "Access engine settings loaded",
        extra={
            "drip_unknown_enrollment": settings.drip_unknown_enrollment,
            "normalized_questions": settings.normalized_questions,
        },
    )

    yield

    # Let pending audit and attempt writes finish before the loop closes
    runner = get_side_effect_runner()
    if runner.pending_count:
        logger.info("Draining side effects", extra={"pending": runner.pending_count})
    await runner.drain()
    logger.info("Shutting down access engine API")


app = FastAPI(
    title="LMS Access Engine",
    description="Per-school access resolution for courses, lessons, quizzes and downloads",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(access.router)
app.include_router(quizzes.router)
app.include_router(downloads.router)


@app.exception_handler(AccessEngineError)
async def access_engine_error_handler(request: Request, exc: AccessEngineError):
    logger.warning(
        "Access engine error",
        extra={
            "error_code": exc.error_code,
            "error": str(exc),
            "path": request.url.path,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unhandled exceptions with proper logging."""
    logger.error(
        "Unhandled exception",
        extra={
            "error": str(exc),
            "error_type": type(exc).__name__,
            "path": request.url.path,
        },
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": "An unexpected error occurred",
        },
    )


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "access_engine.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "development",
    )
