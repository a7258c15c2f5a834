"""Guess model."""
import uuid
from sqlalchemy import Column, ForeignKey, String, Integer, DateTime, Boolean, Index, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, UTC

from closeword.database import Base
from closeword.models.base import get_uuid_column


class Guess(Base):
    """A ranked guess submitted by one player in one room.

    Immutable except is_revealed, which flips false -> true once a second
    player in the same room submits the same word.
    """

    __tablename__ = "guesses"

    guess_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
    room_id = get_uuid_column(
        ForeignKey("rooms.room_id", ondelete="CASCADE"),
        nullable=False
    )
    user_id = Column(String(64), nullable=False)
    word = Column(String(64), nullable=False)
    rank = Column(Integer, nullable=False)
    is_revealed = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        CheckConstraint("rank >= 1", name="ck_guesses_rank_positive"),
        Index("ix_guesses_room_word", "room_id", "word"),
        Index("ix_guesses_room_created", "room_id", "created_at"),
    )

    room = relationship("Room", back_populates="guesses")

    def __repr__(self):
        return f"<Guess(id={self.guess_id}, room_id={self.room_id}, rank={self.rank}, revealed={self.is_revealed})>"
