"""Statistics schemas."""
from typing import Optional, List
from uuid import UUID

from closeword.schemas.base import BaseSchema


class PlayerGameStats(BaseSchema):
    """Per-player numbers for one room."""
    user_id: str
    nickname: str
    total_guesses: int
    best_rank: Optional[int] = None
    average_rank: Optional[float] = None
    first_guess_rank: Optional[int] = None
    collisions: int
    tier: Optional[str] = None
    is_winner: bool


class Highlight(BaseSchema):
    user_id: str
    nickname: str
    value: float


class GameHighlights(BaseSchema):
    most_guesses: Optional[Highlight] = None
    best_average: Optional[Highlight] = None
    best_first_guess: Optional[Highlight] = None
    most_collisions: Optional[Highlight] = None


class GameSummaryResponse(BaseSchema):
    room_id: UUID
    status: str
    winner_id: Optional[str] = None
    total_guesses: int
    total_players: int
    revealed_guesses: int
    players: List[PlayerGameStats]
    highlights: GameHighlights


class PlatformTotalsResponse(BaseSchema):
    total_rooms: int
    total_players: int
