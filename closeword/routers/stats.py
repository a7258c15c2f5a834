"""Platform statistics router."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from closeword.database import get_db
from closeword.schemas.stats import PlatformTotalsResponse
from closeword.services import StatisticsService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/stats", response_model=PlatformTotalsResponse)
async def get_platform_totals(db: AsyncSession = Depends(get_db)):
    """Rooms created and distinct players across the platform."""
    try:
        return await StatisticsService(db).platform_totals()
    except Exception as e:
        logger.error(f"Error fetching platform stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to fetch stats")
