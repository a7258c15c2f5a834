"""Client for the external contexto-style ranking service."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote

import aiohttp
from aiohttp import ClientTimeout, ClientError

from closeword.config import get_settings
from closeword.models.base import GameMode
from closeword.services.ranking.base import RankingProvider
from closeword.utils.exceptions import RankingUnavailableError, WordNotAcceptedError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteRanking:
    """Parsed answer of the ranking service for one word."""
    distance: int
    lemma: Optional[str] = None
    word: Optional[str] = None

    @property
    def rank(self) -> int:
        return self.distance + 1


class RemoteRankingProvider(RankingProvider):
    """
    Ranks guesses by asking the remote service for the word's distance on a
    given game day.

    Manages HTTP session lifecycle properly to prevent resource leaks.
    Session is created lazily on first use and should be closed on shutdown.
    Every call is a fresh request; nothing is cached.
    """

    mode = GameMode.REMOTE

    def __init__(self):
        self.settings = get_settings()
        self.base_url = self.settings.remote_ranking_url.rstrip('/')
        self.namespace = self.settings.remote_ranking_namespace
        self.locale = self.settings.remote_ranking_locale
        self.timeout = ClientTimeout(total=self.settings.remote_ranking_timeout_seconds)
        self.headers = {
            "Accept": "application/json",
            "User-Agent": self.settings.remote_ranking_user_agent,
        }
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self):
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _ensure_session(self):
        """Ensure session exists and is not closed."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            logger.debug("Created new aiohttp session for remote ranking provider")

    async def close(self):
        """Close the underlying aiohttp client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Closed aiohttp session for remote ranking provider")
        self._session = None

    def target_attribute(self) -> str:
        return "game_day"

    def build_url(self, game_day: int, word: str) -> str:
        return f"{self.base_url}/{self.namespace}/{self.locale}/game/{int(game_day)}/{quote(word, safe='')}"

    @staticmethod
    def parse_body(data) -> RemoteRanking:
        """Validate a success body; anything unusable means the service misbehaved."""
        if not isinstance(data, dict):
            raise RankingUnavailableError("Ranking service returned a malformed body")

        distance = data.get("distance")
        if isinstance(distance, float) and distance.is_integer():
            distance = int(distance)
        if isinstance(distance, bool) or not isinstance(distance, int) or distance < 0:
            raise RankingUnavailableError(f"Ranking service returned an invalid distance: {distance!r}")

        return RemoteRanking(distance=distance, lemma=data.get("lemma"), word=data.get("word"))

    async def lookup(self, game_day: int, word: str) -> RemoteRanking:
        """Ask the service for ``word`` on ``game_day``."""
        await self._ensure_session()
        url = self.build_url(game_day, word)

        try:
            async with self._session.get(url, headers=self.headers) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    data = None

                if response.status >= 500:
                    logger.error(f"Ranking service error {response.status} for day {game_day}")
                    raise RankingUnavailableError(f"Ranking service error: {response.status}")

                if isinstance(data, dict) and data.get("error"):
                    logger.info(f"Ranking service rejected '{word}' for day {game_day}: {data['error']}")
                    raise WordNotAcceptedError(service_error=str(data["error"]))

                if response.status != 200:
                    logger.error(f"Ranking service error {response.status} for day {game_day}")
                    raise RankingUnavailableError(f"Ranking service error: {response.status}")

        except asyncio.TimeoutError:
            logger.error(f"Ranking service timeout for day {game_day}")
            raise RankingUnavailableError("Ranking service timeout - please try again")
        except ClientError as e:
            logger.error(f"Ranking service client error for day {game_day}: {e}")
            raise RankingUnavailableError("Ranking service unavailable - please try again") from e

        return self.parse_body(data)

    async def rank(self, word: str, target) -> int:
        ranking = await self.lookup(target, word)
        return ranking.rank
