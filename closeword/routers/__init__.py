"""API routers."""
from closeword.routers import rooms, health, stats

__all__ = ["rooms", "health", "stats"]
