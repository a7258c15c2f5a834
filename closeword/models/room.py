"""Room model."""
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Integer,
    Index,
)
from sqlalchemy.orm import relationship
from datetime import datetime, UTC
import uuid

from closeword.database import Base
from closeword.models.base import get_uuid_column, RoomStatus, GameMode


class Room(Base):
    """A game room.

    Status moves waiting -> playing -> finished and never backward. The
    target (secret word or game day) is fixed when the host starts the game.
    """
    __tablename__ = "rooms"

    room_id = get_uuid_column(primary_key=True, default=uuid.uuid4)

    status = Column(String(20), nullable=False, default=RoomStatus.WAITING.value)
    game_mode = Column(String(20), nullable=False, default=GameMode.LOCAL.value)

    # Target, set at start: secret_word_id for local rooms, game_day for remote rooms
    secret_word_id = Column(
        Integer,
        ForeignKey("dictionary.entry_id", ondelete="RESTRICT"),
        nullable=True,
    )
    game_day = Column(Integer, nullable=True)

    # Outcome, set once when a guess earns rank 1
    winner_id = Column(String(64), nullable=True)
    revealed_word = Column(String(64), nullable=True)

    parent_room_id = get_uuid_column(
        ForeignKey("rooms.room_id", ondelete="SET NULL"),
        nullable=True,
    )

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))
    started_at = Column(DateTime(timezone=True), nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=True)
    last_activity_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    __table_args__ = (
        Index("ix_rooms_status_last_activity", "status", "last_activity_at"),
    )

    # Relationships
    secret_word = relationship("DictionaryEntry", foreign_keys=[secret_word_id])
    players = relationship(
        "RoomPlayer",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="RoomPlayer.joined_at",
    )
    guesses = relationship(
        "Guess",
        back_populates="room",
        cascade="all, delete-orphan",
        order_by="Guess.created_at",
    )

    @property
    def is_finished(self) -> bool:
        return self.status == RoomStatus.FINISHED.value

    def __repr__(self):
        return f"<Room(id={self.room_id}, mode={self.game_mode}, status={self.status})>"
