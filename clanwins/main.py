"""
ClanWins - community win leaderboards

FastAPI application entry point.
"""
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Import observability modules
from clanwins.config import settings
from clanwins.database import get_db
from clanwins.logging_config import configure_logging
from clanwins.sentry_config import configure_sentry
from clanwins.middleware.logging import LoggingMiddleware
from clanwins.routes.metrics import router as metrics_router

# Import route modules
from clanwins.routes.scan_jobs import router as scan_jobs_router
from clanwins.routes.leaderboard import router as leaderboard_router
from clanwins.routes.players import router as players_router
from clanwins.services.stats_api import StatsApiClient
from clanwins.worker import build_scheduler

# Initialize logging first
configure_logging()

# Initialize Sentry (if SENTRY_DSN is set)
configure_sentry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Share one HTTP client between the stats API client and the scheduler."""
    async with httpx.AsyncClient(timeout=settings.STATS_API_TIMEOUT_SECONDS) as http_client:
        app.state.stats_api = StatsApiClient(client=http_client)
        app.state.scheduler = build_scheduler(http_client)
        yield


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Backfills community match wins from the game-stats API and serves leaderboards",
    lifespan=lifespan,
)

# Add logging middleware
app.add_middleware(LoggingMiddleware)

# Include metrics endpoint FIRST (so it's always available)
app.include_router(metrics_router)

# Include scan job routes
app.include_router(scan_jobs_router)

# Include leaderboard routes
app.include_router(leaderboard_router)

# Include player registration routes
app.include_router(players_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    """Detailed health check."""
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except Exception as e:
        database = f"error: {type(e).__name__}"
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "database": database
    }
