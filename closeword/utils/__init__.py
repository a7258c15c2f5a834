"""Utilities module - change feed and helpers."""
from closeword.config import get_settings
from closeword.utils.change_feed import ChangeFeed, room_channel
from closeword.utils.datetime_helpers import ensure_utc, utc_now

settings = get_settings()

# Create singleton instances
change_feed = ChangeFeed(settings.redis_url if settings.redis_url else None)

# Registers the commit hooks that feed change_feed
from closeword.utils import change_capture  # noqa: E402,F401

__all__ = ["change_feed", "room_channel", "ensure_utc", "utc_now"]
