"""Simple in-memory cache for derived ranking data."""
import time
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)


class SimpleCache:
    """
    A simple in-memory cache with TTL (time-to-live) support.

    Used for values that are expensive to compute and never change for a
    given key, like the rank table of a secret word.
    """

    def __init__(self, default_ttl: float = 30.0, max_entries: Optional[int] = None):
        self.default_ttl = default_ttl
        self.max_entries = max_entries
        self._cache: Dict[str, tuple[Any, float]] = {}
        self._last_cleanup = time.time()
        self._cleanup_interval = 60.0  # Clean up every 60 seconds

    def __len__(self) -> int:
        return len(self._cache)

    def _cleanup_expired(self, force: bool = False):
        """Remove expired entries from cache."""
        current_time = time.time()
        if not force and current_time - self._last_cleanup < self._cleanup_interval:
            return

        expired_keys = [
            key for key, (_, expires_at) in self._cache.items()
            if current_time > expires_at
        ]

        for key in expired_keys:
            self._cache.pop(key, None)

        self._last_cleanup = current_time

        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired."""
        self._cleanup_expired()

        if key not in self._cache:
            return None

        value, expires_at = self._cache[key]
        if time.time() > expires_at:
            self._cache.pop(key, None)
            return None

        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Set value in cache with TTL."""
        if ttl is None:
            ttl = self.default_ttl

        if self.max_entries is not None and key not in self._cache and len(self._cache) >= self.max_entries:
            self._cleanup_expired(force=True)
            while len(self._cache) >= self.max_entries:
                # Evict the entry closest to expiry
                oldest = min(self._cache, key=lambda k: self._cache[k][1])
                self._cache.pop(oldest, None)

        expires_at = time.time() + ttl
        self._cache[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        """Remove key from cache."""
        self._cache.pop(key, None)

    def clear(self) -> None:
        """Clear all cache entries."""
        self._cache.clear()

    def invalidate_prefix(self, prefix: str) -> None:
        """Invalidate all cached entries whose key starts with ``prefix``."""
        keys_to_delete = [key for key in self._cache if key.startswith(prefix)]

        for key in keys_to_delete:
            self._cache.pop(key, None)

        if keys_to_delete:
            logger.debug(f"Invalidated {len(keys_to_delete)} cache entries for {prefix=}")
