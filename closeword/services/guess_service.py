"""Guess validation, ranking and recording."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID
import logging

from closeword.config import get_settings
from closeword.models.base import RoomStatus
from closeword.models.guess import Guess
from closeword.models.room import Room
from closeword.models.room_player import RoomPlayer
from closeword.services.ranking import RankingRegistry
from closeword.utils.change_capture import record_change, INSERT, UPDATE
from closeword.utils.datetime_helpers import utc_now
from closeword.utils.exceptions import (
    RoomNotFoundError,
    GameNotActiveError,
    NotInRoomError,
    AlreadyGuessedError,
)
from closeword.utils.words import normalize_word, normalize_user_id

logger = logging.getLogger(__name__)


@dataclass
class GuessResult:
    guess: Guess
    rank: int
    revealed: bool
    is_winner: bool


class GuessService:
    """Records ranked guesses for a room.

    Ranking happens before any write. The write itself runs as one
    transaction that holds the room lock, so collision reveals and the
    finish compare-and-swap see every earlier guess of the room.
    """

    def __init__(self, db: AsyncSession, ranking: RankingRegistry):
        self.db = db
        self.ranking = ranking
        self.settings = get_settings()

    async def submit_guess(self, room_id: UUID, user_id: str, raw_word: str) -> GuessResult:
        """Validate, rank and persist one guess.

        Raises:
            InvalidWordError: empty, malformed or unrankable word
            RoomNotFoundError: no such room
            GameNotActiveError: room is not accepting guesses
            NotInRoomError: caller never joined the room
            AlreadyGuessedError: caller already guessed this word
            RankingUnavailableError: ranking source failed; nothing is written
        """
        user_id = normalize_user_id(user_id)
        word = normalize_word(raw_word)

        room = await self._get_room(room_id)
        if not room:
            raise RoomNotFoundError(f"Room {room_id} not found")
        self._ensure_accepting_guesses(room)

        if not await self._is_member(room_id, user_id):
            raise NotInRoomError("Join the room before guessing")
        if await self._has_guessed(room_id, user_id, word):
            raise AlreadyGuessedError(f"'{word}' was already guessed")

        provider, target = self.ranking.resolve(room)

        # Return the connection to the pool while the provider works
        await self.db.commit()
        rank = await provider.rank(word, target)

        return await self._record_guess(room, user_id, word, rank)

    async def _record_guess(self, room: Room, user_id: str, word: str, rank: int) -> GuessResult:
        try:
            now = utc_now()
            locked = await self.db.execute(
                update(Room)
                .where(Room.room_id == room.room_id)
                .values(last_activity_at=now)
                .execution_options(synchronize_session=False)
            )
            if locked.rowcount != 1:
                raise RoomNotFoundError(f"Room {room.room_id} not found")

            # State may have moved while the word was being ranked
            await self.db.refresh(room)
            self._ensure_accepting_guesses(room)
            if await self._has_guessed(room.room_id, user_id, word):
                raise AlreadyGuessedError(f"'{word}' was already guessed")

            guess = Guess(
                room_id=room.room_id,
                user_id=user_id,
                word=word,
                rank=rank,
                is_revealed=False,
                created_at=now,
            )
            self.db.add(guess)

            newly_revealed = await self._reveal_collisions(guess)
            await self.db.flush()

            record_change(self.db, "guesses", INSERT, guess, room_status=room.status)
            for other in newly_revealed:
                record_change(self.db, "guesses", UPDATE, other, room_status=room.status)

            is_winner = False
            if rank == 1:
                is_winner = await self._finish_room(room, user_id, word, now)

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Recorded guess in room {room.room_id}: {user_id=} {rank=} "
            f"revealed={guess.is_revealed} {is_winner=}"
        )
        return GuessResult(guess=guess, rank=rank, revealed=guess.is_revealed, is_winner=is_winner)

    async def _reveal_collisions(self, guess: Guess) -> list[Guess]:
        """Reveal ``guess`` and every same-word guess by someone else.

        Returns the earlier guesses whose flag flipped.
        """
        result = await self.db.execute(
            select(Guess).where(
                Guess.room_id == guess.room_id,
                Guess.word == guess.word,
                Guess.user_id != guess.user_id,
            )
            .execution_options(populate_existing=True)
        )
        others = list(result.scalars().all())
        if not others:
            return []

        guess.is_revealed = True
        newly_revealed = []
        for other in others:
            if not other.is_revealed:
                other.is_revealed = True
                newly_revealed.append(other)

        logger.info(f"Collision on a word in room {guess.room_id}: {len(others) + 1} guesses revealed")
        return newly_revealed

    async def _finish_room(self, room: Room, user_id: str, word: str, now: datetime) -> bool:
        """Compare-and-swap playing -> finished. Only one caller ever wins."""
        result = await self.db.execute(
            update(Room)
            .where(Room.room_id == room.room_id, Room.status == RoomStatus.PLAYING.value)
            .values(
                status=RoomStatus.FINISHED.value,
                winner_id=user_id,
                revealed_word=word,
                finished_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info(f"Room {room.room_id} was already finished; {user_id=} is not the winner")
            return False

        await self.db.refresh(room)
        record_change(self.db, "rooms", UPDATE, room)
        logger.info(f"Room {room.room_id} finished, winner {user_id=}")
        return True

    def _ensure_accepting_guesses(self, room: Room) -> None:
        if room.status == RoomStatus.PLAYING.value:
            return
        if room.status == RoomStatus.FINISHED.value and self.settings.accept_guesses_after_finish:
            return
        raise GameNotActiveError(f"Room {room.room_id} is {room.status}")

    async def _get_room(self, room_id: UUID) -> Room | None:
        result = await self.db.execute(select(Room).where(Room.room_id == room_id))
        return result.scalar_one_or_none()

    async def _is_member(self, room_id: UUID, user_id: str) -> bool:
        result = await self.db.execute(
            select(RoomPlayer.user_id).where(
                RoomPlayer.room_id == room_id,
                RoomPlayer.user_id == user_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def _has_guessed(self, room_id: UUID, user_id: str, word: str) -> bool:
        result = await self.db.execute(
            select(Guess.guess_id).where(
                Guess.room_id == room_id,
                Guess.user_id == user_id,
                Guess.word == word,
            ).limit(1)
        )
        return result.scalar_one_or_none() is not None
