"""Database models."""
from closeword.models.base import RoomStatus, GameMode
from closeword.models.dictionary import DictionaryEntry
from closeword.models.room import Room
from closeword.models.room_player import RoomPlayer
from closeword.models.guess import Guess

__all__ = [
    "RoomStatus",
    "GameMode",
    "DictionaryEntry",
    "Room",
    "RoomPlayer",
    "Guess",
]
