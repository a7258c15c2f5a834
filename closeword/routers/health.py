"""Health check endpoints."""
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text
from closeword.database import engine
from closeword.utils import change_feed
from closeword.config import get_settings
from closeword.version import APP_VERSION
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    try:
        async with engine.begin() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "detail": "Database connection failed"},
        )

    return {
        "status": "ok",
        "database": db_status,
        "change_feed": change_feed.backend,
    }


@router.get("/status")
async def game_status():
    """Version, environment and ranking configuration for display on the frontend."""
    settings = get_settings()

    return {
        "version": APP_VERSION,
        "environment": settings.environment,
        "ranking": {
            "default_game_mode": settings.default_game_mode,
            "remote_service": settings.remote_ranking_url,
            "remote_game_days": [settings.remote_min_game_day, settings.remote_max_game_day],
        },
    }
