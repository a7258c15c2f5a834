"""Statistics service for end-of-game summaries and platform totals."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, distinct
from sqlalchemy.orm import selectinload
from uuid import UUID
import logging

from closeword.models.room import Room
from closeword.models.room_player import RoomPlayer
from closeword.schemas.stats import (
    PlayerGameStats,
    Highlight,
    GameHighlights,
    GameSummaryResponse,
    PlatformTotalsResponse,
)
from closeword.utils.exceptions import RoomNotFoundError
from closeword.utils.ranks import rank_tier

logger = logging.getLogger(__name__)


class StatisticsService:
    """Service for calculating game and platform statistics."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def game_summary(self, room_id: UUID) -> GameSummaryResponse:
        """
        Summarize one room: per-player numbers plus highlights.

        Players who never guessed are left out of the per-player list but
        still counted in ``total_players``.

        Args:
            room_id: Room UUID

        Returns:
            GameSummaryResponse with player stats, highlights and room totals
        """
        result = await self.db.execute(
            select(Room)
            .where(Room.room_id == room_id)
            .options(selectinload(Room.players), selectinload(Room.guesses))
        )
        room = result.scalar_one_or_none()
        if not room:
            raise RoomNotFoundError(f"Room {room_id} not found")

        nicknames = {player.user_id: player.nickname for player in room.players}
        order = {player.user_id: index for index, player in enumerate(room.players)}

        ranks_by_user: dict[str, list[int]] = {}
        collisions_by_user: dict[str, int] = {}
        for guess in sorted(room.guesses, key=lambda g: g.created_at):
            ranks_by_user.setdefault(guess.user_id, []).append(guess.rank)
            if guess.is_revealed:
                collisions_by_user[guess.user_id] = collisions_by_user.get(guess.user_id, 0) + 1

        players = []
        for user_id in sorted(ranks_by_user, key=lambda u: order.get(u, len(order))):
            ranks = ranks_by_user[user_id]
            best = min(ranks)
            players.append(
                PlayerGameStats(
                    user_id=user_id,
                    nickname=nicknames.get(user_id, "Player"),
                    total_guesses=len(ranks),
                    best_rank=best,
                    average_rank=round(sum(ranks) / len(ranks), 1),
                    first_guess_rank=ranks[0],
                    collisions=collisions_by_user.get(user_id, 0),
                    tier=rank_tier(best),
                    is_winner=room.winner_id == user_id,
                )
            )

        return GameSummaryResponse(
            room_id=room.room_id,
            status=room.status,
            winner_id=room.winner_id,
            total_guesses=len(room.guesses),
            total_players=len(room.players),
            revealed_guesses=sum(1 for guess in room.guesses if guess.is_revealed),
            players=players,
            highlights=self._highlights(players),
        )

    @staticmethod
    def _highlights(players: list[PlayerGameStats]) -> GameHighlights:
        if not players:
            return GameHighlights()

        def pick(key, value, reverse=False):
            # sorted() is stable, so ties go to the earliest joiner
            best = sorted(players, key=key, reverse=reverse)[0]
            return Highlight(user_id=best.user_id, nickname=best.nickname, value=value(best))

        most_collisions = pick(lambda p: p.collisions, lambda p: p.collisions, reverse=True)
        return GameHighlights(
            most_guesses=pick(lambda p: p.total_guesses, lambda p: p.total_guesses, reverse=True),
            best_average=pick(lambda p: p.average_rank, lambda p: p.average_rank),
            best_first_guess=pick(lambda p: p.first_guess_rank, lambda p: p.first_guess_rank),
            most_collisions=most_collisions if most_collisions.value > 0 else None,
        )

    async def platform_totals(self) -> PlatformTotalsResponse:
        """Rooms ever created and distinct players ever seen."""
        rooms = await self.db.execute(select(func.count()).select_from(Room))
        players = await self.db.execute(select(func.count(distinct(RoomPlayer.user_id))))
        return PlatformTotalsResponse(
            total_rooms=rooms.scalar_one(),
            total_players=players.scalar_one(),
        )
