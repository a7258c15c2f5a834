"""Cleanup service for idle rooms."""
import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from closeword.config import get_settings
from closeword.models.base import RoomStatus
from closeword.models.room import Room
from closeword.models.room_player import RoomPlayer
from closeword.utils.datetime_helpers import utc_now

logger = logging.getLogger(__name__)


class CleanupService:
    """Service for periodic database cleanup tasks.

    Only rooms that never started are removed. They hold players but no
    guesses, so no guess is ever deleted; playing and finished rooms are
    kept as history.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    def _idle_waiting_rooms(self, older_than_hours: Optional[int] = None):
        hours = older_than_hours or self.settings.waiting_room_ttl_hours
        cutoff = utc_now() - timedelta(hours=hours)
        return select(Room.room_id).where(
            Room.status == RoomStatus.WAITING.value,
            Room.last_activity_at < cutoff,
        )

    async def count_idle_waiting_rooms(self, older_than_hours: Optional[int] = None) -> int:
        result = await self.db.execute(self._idle_waiting_rooms(older_than_hours))
        return len(result.scalars().all())

    async def cleanup_idle_waiting_rooms(self, older_than_hours: Optional[int] = None) -> int:
        """Delete waiting rooms idle for longer than the retention window."""
        idle_rooms = self._idle_waiting_rooms(older_than_hours)

        try:
            await self.db.execute(
                delete(RoomPlayer)
                .where(RoomPlayer.room_id.in_(idle_rooms))
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(
                delete(Room)
                .where(Room.room_id.in_(idle_rooms))
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        deleted_count = result.rowcount or 0
        if deleted_count > 0:
            logger.info(f"Cleaned up {deleted_count} idle waiting room(s)")
        else:
            logger.debug("No idle waiting rooms found")
        return deleted_count

    async def run_all_cleanup_tasks(self) -> dict[str, int]:
        """Run all cleanup tasks and return counts per task."""
        logger.info("Starting scheduled cleanup tasks")

        results = {
            "idle_waiting_rooms": await self.cleanup_idle_waiting_rooms(),
        }

        logger.info(f"Cleanup tasks completed. Total items cleaned: {sum(results.values())}")
        return results
