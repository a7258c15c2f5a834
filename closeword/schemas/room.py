"""Room and guess Pydantic schemas."""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Literal
from uuid import UUID

from closeword.schemas.base import BaseSchema


# Request schemas
class CreateRoomRequest(BaseModel):
    """Request to create a new room."""
    nickname: str = Field(..., min_length=1, max_length=64, description="Host nickname")
    game_mode: Optional[Literal["local", "remote"]] = Field(
        default=None, description="Ranking source; server default when omitted"
    )


class JoinRoomRequest(BaseModel):
    """Request to join a waiting room."""
    nickname: str = Field(..., min_length=1, max_length=64)


class SubmitGuessRequest(BaseModel):
    """Request to submit one guess."""
    word: str = Field(..., min_length=1, max_length=128)


# Response schemas
class CreateRoomResponse(BaseSchema):
    room_id: UUID
    game_mode: str


class JoinRoomResponse(BaseSchema):
    room_id: UUID
    status: str


class StartGameResponse(BaseSchema):
    room_id: UUID
    status: str
    game_mode: str


class SubmitGuessResponse(BaseSchema):
    """Outcome of a guess."""
    rank: int
    revealed: bool
    is_winner: bool


class RematchResponse(BaseSchema):
    room_id: UUID
    game_mode: str


class RoomView(BaseSchema):
    """Room as seen by players. The target stays hidden until the room finishes."""
    room_id: UUID
    status: str
    game_mode: str
    winner_id: Optional[str] = None
    secret_word: Optional[str] = None
    game_day: Optional[int] = None
    parent_room_id: Optional[UUID] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


class PlayerView(BaseSchema):
    user_id: str
    nickname: str
    is_host: bool
    joined_at: datetime


class GuessView(BaseSchema):
    """A guess; ``word`` is null when the viewer may not see it."""
    guess_id: UUID
    user_id: str
    word: Optional[str] = None
    rank: int
    is_revealed: bool
    created_at: datetime


class RoomSnapshotResponse(BaseSchema):
    """One consistent read of a room with its players and guesses."""
    room: RoomView
    players: List[PlayerView]
    guesses: List[GuessView]


class RoomEventMessage(BaseSchema):
    """Realtime event delivered over the room WebSocket."""
    type: Literal["guess_inserted", "guess_updated", "room_updated", "player_joined"]
    id: str
    room_id: UUID
    data: dict
