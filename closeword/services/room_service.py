"""Room lifecycle: create, join, start, rematch and snapshots."""
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import selectinload
from dataclasses import dataclass, field
from typing import Optional
from uuid import UUID
import uuid
import logging
import random

from closeword.config import get_settings
from closeword.models.base import RoomStatus, GameMode
from closeword.models.dictionary import DictionaryEntry
from closeword.models.room import Room
from closeword.models.room_player import RoomPlayer
from closeword.utils.change_capture import record_change, row_to_dict, INSERT, UPDATE
from closeword.utils.datetime_helpers import utc_now
from closeword.utils.exceptions import (
    RoomNotFoundError,
    GameAlreadyStartedError,
    NotHostError,
    NotEnoughPlayersError,
    DictionaryEmptyError,
    InvalidGameModeError,
)
from closeword.utils.words import normalize_nickname, normalize_user_id

logger = logging.getLogger(__name__)


# Views shared by snapshots and realtime events. Rows are column dicts as
# produced by row_to_dict.

def public_room(row: dict) -> dict:
    """Room fields a player may see; the target only once the room is finished."""
    finished = row.get("status") == RoomStatus.FINISHED.value
    return {
        "room_id": row["room_id"],
        "status": row["status"],
        "game_mode": row["game_mode"],
        "winner_id": row.get("winner_id"),
        "secret_word": row.get("revealed_word") if finished else None,
        "game_day": row.get("game_day") if finished else None,
        "parent_room_id": row.get("parent_room_id"),
        "created_at": row.get("created_at"),
        "started_at": row.get("started_at"),
        "finished_at": row.get("finished_at"),
    }


def public_player(row: dict) -> dict:
    return {
        "user_id": row["user_id"],
        "nickname": row["nickname"],
        "is_host": bool(row.get("is_host")),
        "joined_at": row.get("joined_at"),
    }


def can_see_word(row: dict, viewer_id: Optional[str], room_finished: bool = False) -> bool:
    """Own words, revealed collisions and every word of a finished room are visible."""
    return room_finished or bool(row.get("is_revealed")) or row.get("user_id") == viewer_id


def public_guess(row: dict, viewer_id: Optional[str], room_finished: bool = False) -> dict:
    return {
        "guess_id": row["guess_id"],
        "user_id": row["user_id"],
        "word": row["word"] if can_see_word(row, viewer_id, room_finished) else None,
        "rank": row["rank"],
        "is_revealed": bool(row.get("is_revealed")),
        "created_at": row.get("created_at"),
    }


@dataclass
class RoomSnapshot:
    """Room, players and guesses as one viewer may see them."""
    room: dict
    players: list[dict] = field(default_factory=list)
    guesses: list[dict] = field(default_factory=list)


class RoomService:
    """Service for room state transitions.

    Every mutating method commits on success and rolls back on any error,
    so a failed call never leaves rows behind.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.settings = get_settings()

    async def get_room(self, room_id: UUID) -> Optional[Room]:
        result = await self.db.execute(
            select(Room).where(Room.room_id == room_id)
        )
        return result.scalar_one_or_none()

    async def require_room(self, room_id: UUID) -> Room:
        room = await self.get_room(room_id)
        if not room:
            raise RoomNotFoundError(f"Room {room_id} not found")
        return room

    async def get_player(self, room_id: UUID, user_id: str) -> Optional[RoomPlayer]:
        result = await self.db.execute(
            select(RoomPlayer).where(
                RoomPlayer.room_id == room_id,
                RoomPlayer.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def count_players(self, room_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count()).select_from(RoomPlayer).where(RoomPlayer.room_id == room_id)
        )
        return result.scalar_one()

    async def lock_room(self, room_id: UUID, status: Optional[RoomStatus] = None) -> bool:
        """Take the room's write lock by bumping last_activity_at.

        Returns False when the room is gone or not in ``status``.
        """
        stmt = (
            update(Room)
            .where(Room.room_id == room_id)
            .values(last_activity_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if status is not None:
            stmt = stmt.where(Room.status == status.value)
        result = await self.db.execute(stmt)
        return result.rowcount == 1

    async def create_room(self, user_id: str, nickname: str, game_mode: Optional[str] = None) -> Room:
        """Create a waiting room with the creator as its host.

        No target is chosen until the host starts the game.
        """
        user_id = normalize_user_id(user_id)
        nickname = normalize_nickname(nickname)
        mode = self._resolve_game_mode(game_mode)

        now = utc_now()
        room = Room(
            room_id=uuid.uuid4(),
            status=RoomStatus.WAITING.value,
            game_mode=mode.value,
            created_at=now,
            last_activity_at=now,
        )
        host = RoomPlayer(
            room_id=room.room_id,
            user_id=user_id,
            nickname=nickname,
            is_host=True,
            joined_at=now,
        )

        try:
            self.db.add(room)
            self.db.add(host)
            await self.db.flush()
            record_change(self.db, "rooms", INSERT, room)
            record_change(self.db, "room_players", INSERT, host)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Created {mode.value} room {room.room_id} for host {user_id=}")
        return room

    async def join_room(self, room_id: UUID, user_id: str, nickname: str) -> Room:
        """Add a player to a waiting room.

        Joining again is a no-op. In a rematch room the host of the parent
        room takes the host seat when they join.
        """
        user_id = normalize_user_id(user_id)
        nickname = normalize_nickname(nickname)

        try:
            room = await self.require_room(room_id)
            if room.status != RoomStatus.WAITING.value:
                raise GameAlreadyStartedError("Cannot join a room that has already started")

            existing = await self.get_player(room_id, user_id)
            if existing:
                logger.debug(f"{user_id=} already in room {room_id}")
                return room

            if not await self.lock_room(room_id, RoomStatus.WAITING):
                raise GameAlreadyStartedError("Cannot join a room that has already started")

            # A concurrent join by the same user may have committed while we waited for the lock
            if await self.get_player(room_id, user_id):
                await self.db.commit()
                logger.debug(f"{user_id=} joined room {room_id} concurrently")
                return room

            player = RoomPlayer(
                room_id=room_id,
                user_id=user_id,
                nickname=nickname,
                is_host=await self._takes_host_seat(room, user_id),
                joined_at=utc_now(),
            )
            self.db.add(player)
            await self.db.flush()
            record_change(self.db, "room_players", INSERT, player)
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if await self.get_player(room_id, user_id):
                logger.debug(f"{user_id=} joined room {room_id} concurrently")
                return await self.require_room(room_id)
            raise
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"{user_id=} joined room {room_id} (host={player.is_host})")
        return room

    async def _takes_host_seat(self, room: Room, user_id: str) -> bool:
        if room.parent_room_id is None:
            return False

        result = await self.db.execute(
            select(func.count()).select_from(RoomPlayer).where(
                RoomPlayer.room_id == room.room_id,
                RoomPlayer.is_host.is_(True),
            )
        )
        if result.scalar_one() > 0:
            return False

        parent_player = await self.get_player(room.parent_room_id, user_id)
        return bool(parent_player and parent_player.is_host)

    async def start_game(self, room_id: UUID, user_id: str) -> Room:
        """Host-only: fix the target and move the room to playing."""
        user_id = normalize_user_id(user_id)

        try:
            room = await self.require_room(room_id)

            player = await self.get_player(room_id, user_id)
            if not player or not player.is_host:
                raise NotHostError("Only the host can start the game")

            if room.status != RoomStatus.WAITING.value:
                raise GameAlreadyStartedError("Game has already started")

            if await self.count_players(room_id) < 1:
                raise NotEnoughPlayersError("Need at least one player to start")

            values = {
                "status": RoomStatus.PLAYING.value,
                "started_at": utc_now(),
                "last_activity_at": utc_now(),
            }
            if room.game_mode == GameMode.LOCAL.value:
                secret_word_id = await self._pick_secret_word_id()
                if secret_word_id is None:
                    raise DictionaryEmptyError("Dictionary has no words to pick from")
                values["secret_word_id"] = secret_word_id
            else:
                values["game_day"] = self._pick_game_day()

            result = await self.db.execute(
                update(Room)
                .where(Room.room_id == room_id, Room.status == RoomStatus.WAITING.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise GameAlreadyStartedError("Game has already started")

            await self.db.refresh(room)
            record_change(self.db, "rooms", UPDATE, room)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Started room {room_id} in {room.game_mode} mode")
        return room

    async def create_rematch(self, parent_room_id: UUID, user_id: str) -> Room:
        """Host-only: open a fresh waiting room with the parent's game mode.

        Players and guesses are not copied; everyone joins again.
        """
        user_id = normalize_user_id(user_id)

        try:
            parent = await self.require_room(parent_room_id)

            player = await self.get_player(parent_room_id, user_id)
            if not player or not player.is_host:
                raise NotHostError("Only the host can create a rematch")

            now = utc_now()
            room = Room(
                room_id=uuid.uuid4(),
                status=RoomStatus.WAITING.value,
                game_mode=parent.game_mode,
                parent_room_id=parent.room_id,
                created_at=now,
                last_activity_at=now,
            )
            self.db.add(room)
            await self.db.flush()
            record_change(self.db, "rooms", INSERT, room)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Created rematch room {room.room_id} from {parent_room_id}")
        return room

    async def get_snapshot(self, room_id: UUID, viewer_id: Optional[str]) -> RoomSnapshot:
        """Read the room with its players and guesses for one viewer.

        The three SELECTs share one read transaction so that no commit lands
        between them.
        """
        if self.db.in_transaction():
            await self.db.commit()

        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            await self.db.connection(execution_options={"isolation_level": "REPEATABLE READ"})
        elif dialect == "sqlite":
            # pysqlite does not open a transaction for plain SELECTs
            await self.db.execute(text("BEGIN"))

        try:
            result = await self.db.execute(
                select(Room)
                .where(Room.room_id == room_id)
                .options(selectinload(Room.players), selectinload(Room.guesses))
                .execution_options(populate_existing=True)
            )
            room = result.scalar_one_or_none()
            if not room:
                raise RoomNotFoundError(f"Room {room_id} not found")

            finished = room.is_finished
            snapshot = RoomSnapshot(
                room=public_room(row_to_dict(room)),
                players=[public_player(row_to_dict(p)) for p in room.players],
                guesses=[public_guess(row_to_dict(g), viewer_id, finished) for g in room.guesses],
            )
        finally:
            await self.db.commit()
        return snapshot

    def _resolve_game_mode(self, game_mode: Optional[str]) -> GameMode:
        try:
            return GameMode(game_mode or self.settings.default_game_mode)
        except ValueError:
            raise InvalidGameModeError(f"Unknown game mode {game_mode!r}")

    async def _pick_secret_word_id(self) -> Optional[int]:
        result = await self.db.execute(
            select(DictionaryEntry.entry_id).order_by(func.random()).limit(1)
        )
        return result.scalar_one_or_none()

    def _pick_game_day(self) -> int:
        return random.randint(self.settings.remote_min_game_day, self.settings.remote_max_game_day)
