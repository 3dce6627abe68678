"""
Main FastAPI application for the Courtside stats pipeline.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from courtside.core.config import settings
from courtside.core.database import init_db
from courtside.core.leagues import LEAGUE_KEYS
from courtside.core.logging import configure_logging, get_logger
from courtside.core.middleware import CorrelationIdMiddleware
from courtside.api.routes import sync

# Configure structured logging (colored console output when LOG_JSON=false)
configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    init_db()

    from courtside.core.scheduler import start_scheduler
    await start_scheduler()
    logger.info("Automation scheduler started")

    logger.info("Application started")

    yield

    # Shutdown
    from courtside.core.scheduler import stop_scheduler
    await stop_scheduler()
    logger.info("Automation scheduler stopped")
    logger.info("Shutting down application")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Live game ingestion, box scores, season averages and league ranks for NBA, WNBA and G League",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIdMiddleware)

# API v1
app.include_router(sync.router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "leagues": list(LEAGUE_KEYS),
        "endpoints": {
            "api_version": "v1",
            "sync_game": "/api/v1/sync/{league}/games/{game_id}",
            "sync_visible_games": "/api/v1/sync/{league}/games",
            "discover": "/api/v1/sync/{league}/discover",
            "recalculate": "/api/v1/sync/{league}/recalculate",
            "scheduler_status": "/api/v1/sync/scheduler/status",
            "docs": "/docs",
            "health": "/health",
        },
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "courtside.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG
    )
