"""
FastAPI application for the story-playing service
"""

import time
import uuid
from typing import Callable

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storyplay import __version__
from storyplay.api.playing import db as playing_db
from storyplay.api.playing import router as playing_router
from storyplay.api.stories import router as stories_router
from storyplay.config import settings
from storyplay.db.seed import seed_demo_story
from storyplay.errors import StoryPlayError
from storyplay.utils.logger import get_logger, setup_logging

setup_logging(
    level=settings.log_level,
    log_file=settings.log_file,
    enable_colors=True,
    include_timestamp=True,
)

logger = get_logger(__name__)

# Create FastAPI app
app = FastAPI(
    title="StoryPlay",
    description="Play interactive quiz stories",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

logger.info("FastAPI application initialized")
logger.info(f"Log level: {settings.log_level}")

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next: Callable) -> Response:
    """Log every request with a short correlation id and its duration"""
    request_id = str(uuid.uuid4())[:8]
    start_time = time.time()
    request.state.request_id = request_id

    logger.info(
        f"[API] Request started: {request.method} {request.url.path}",
        extra={
            "component": "API",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params) if request.query_params else None,
        },
    )

    try:
        response = await call_next(request)
    except Exception as e:
        duration_ms = (time.time() - start_time) * 1000
        logger.error(
            f"[API] Request failed: {request.method} {request.url.path} -> ERROR ({duration_ms:.2f}ms): {str(e)}",
            extra={"component": "API", "request_id": request_id, "error_type": type(e).__name__},
            exc_info=True,
        )
        raise

    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        f"[API] Request completed: {request.method} {request.url.path} -> {response.status_code} ({duration_ms:.2f}ms)",
        extra={
            "component": "API",
            "request_id": request_id,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response


@app.exception_handler(StoryPlayError)
async def story_play_error_handler(request: Request, exc: StoryPlayError) -> JSONResponse:
    """Map engine errors onto their HTTP status and a user-safe body"""
    if exc.status_code >= 500:
        logger.error(f"[API] {type(exc).__name__}: {exc.message}", exc_info=exc)
    else:
        logger.info(f"[API] {request.method} {request.url.path} -> {exc.category}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"[API] Unhandled error on {request.method} {request.url.path}: {exc}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_error",
            "detail": "Something went wrong. Please try again later.",
        },
    )


# Include routers
app.include_router(stories_router, prefix="/stories", tags=["stories"])
app.include_router(playing_router, prefix="/play", tags=["play"])


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("=" * 60)
    logger.info("APPLICATION STARTUP")
    logger.info("=" * 60)
    logger.info(f"Database initialized: {settings.database_path}")

    if settings.seed_demo_content:
        seed_demo_story(playing_db)

    logger.info("Configuration:")
    logger.info(f"  - Database: {settings.database_path}")
    logger.info(f"  - Starting level: {settings.starting_level}")
    logger.info(f"  - Points per question: {settings.points_per_question}")
    logger.info(
        f"  - Ending thresholds: good>={settings.good_ending_threshold}% "
        f"neutral>={settings.neutral_ending_threshold}%"
    )
    logger.info(f"  - Debug: {settings.debug}")
    logger.info("=" * 60)


@app.get("/")
async def root():
    """Root endpoint"""
    logger.debug("Root endpoint called")
    return {
        "message": "StoryPlay",
        "version": __version__,
        "status": "running",
        "log_level": settings.log_level,
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    logger.debug("Health check endpoint called")
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on {settings.host}:{settings.port}")
    logger.info(f"Debug mode: {settings.debug}")
    uvicorn.run(
        "storyplay.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
