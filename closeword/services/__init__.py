"""Service layer."""
from closeword.services.room_service import RoomService, RoomSnapshot
from closeword.services.guess_service import GuessService, GuessResult
from closeword.services.statistics_service import StatisticsService
from closeword.services.cleanup_service import CleanupService
from closeword.services.room_events import RoomEventManager, get_room_event_manager
from closeword.services.ranking import RankingRegistry, get_ranking_registry

__all__ = [
    "RoomService",
    "RoomSnapshot",
    "GuessService",
    "GuessResult",
    "StatisticsService",
    "CleanupService",
    "RoomEventManager",
    "get_room_event_manager",
    "RankingRegistry",
    "get_ranking_registry",
]
