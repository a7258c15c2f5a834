"""Common interface of the ranking sources."""
from abc import ABC, abstractmethod

from closeword.models.base import GameMode
from closeword.utils.exceptions import RankingUnavailableError


class RankingProvider(ABC):
    """Turns a normalized word into a 1-based rank against a fixed target."""

    mode: GameMode

    @abstractmethod
    def target_attribute(self) -> str:
        """Name of the room column holding this provider's target."""

    def target_for(self, room):
        target = getattr(room, self.target_attribute())
        if target is None:
            raise RankingUnavailableError(f"Room {room.room_id} has no {self.target_attribute()}")
        return target

    @abstractmethod
    async def rank(self, word: str, target) -> int:
        """Rank ``word`` against ``target``.

        Raises:
            InvalidWordError: the source does not know or accept the word
            RankingUnavailableError: the source cannot answer right now
        """

    async def close(self) -> None:
        """Release held resources."""
