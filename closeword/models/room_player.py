"""Room player model."""
from sqlalchemy import (
    Column,
    String,
    DateTime,
    ForeignKey,
    Boolean,
)
from sqlalchemy.orm import relationship
from datetime import datetime, UTC

from closeword.database import Base
from closeword.models.base import get_uuid_column


class RoomPlayer(Base):
    """Membership of a client-identified player in a room.

    user_id is generated by the client; a player joins a room at most once.
    """
    __tablename__ = "room_players"

    room_id = get_uuid_column(
        ForeignKey("rooms.room_id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(String(64), primary_key=True)

    nickname = Column(String(32), nullable=False)
    is_host = Column(Boolean, nullable=False, default=False)

    joined_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC))

    # Relationships
    room = relationship("Room", back_populates="players")

    def __repr__(self):
        return f"<RoomPlayer(room_id={self.room_id}, user_id={self.user_id}, host={self.is_host})>"
