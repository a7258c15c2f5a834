"""Ranking sources and the per-mode registry."""
import logging
from typing import Optional

from closeword.models.base import GameMode
from closeword.services.ranking.base import RankingProvider
from closeword.services.ranking.local import DictionaryIndex, LocalRankingProvider
from closeword.services.ranking.remote import RemoteRanking, RemoteRankingProvider
from closeword.utils.exceptions import InvalidGameModeError

logger = logging.getLogger(__name__)


class RankingRegistry:
    """Maps each game mode to the provider that ranks its rooms."""

    def __init__(self, providers: dict[GameMode, RankingProvider]):
        self._providers = {GameMode(mode): provider for mode, provider in providers.items()}

    def provider_for(self, game_mode) -> RankingProvider:
        try:
            return self._providers[GameMode(game_mode)]
        except (KeyError, ValueError):
            raise InvalidGameModeError(f"No ranking provider for game mode {game_mode!r}")

    def resolve(self, room) -> tuple[RankingProvider, object]:
        """Provider and fixed target for a started room."""
        provider = self.provider_for(room.game_mode)
        return provider, provider.target_for(room)

    async def close(self) -> None:
        for mode, provider in self._providers.items():
            try:
                await provider.close()
            except Exception as e:
                logger.error(f"Failed to close {mode.value} ranking provider: {e}")


_registry: Optional[RankingRegistry] = None


def get_ranking_registry() -> RankingRegistry:
    """Process-wide registry; also the FastAPI dependency."""
    global _registry
    if _registry is None:
        from closeword.database import AsyncSessionLocal

        _registry = RankingRegistry({
            GameMode.LOCAL: LocalRankingProvider(AsyncSessionLocal),
            GameMode.REMOTE: RemoteRankingProvider(),
        })
    return _registry


async def close_ranking_registry() -> None:
    global _registry
    if _registry is not None:
        await _registry.close()
        _registry = None


__all__ = [
    "RankingProvider",
    "DictionaryIndex",
    "LocalRankingProvider",
    "RemoteRanking",
    "RemoteRankingProvider",
    "RankingRegistry",
    "get_ranking_registry",
    "close_ranking_registry",
]
