"""Base utilities for SQLAlchemy models."""
from enum import Enum
import uuid
from sqlalchemy import Column, String
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.sql import sqltypes


class RoomStatus(str, Enum):
    """Room status enumeration for type safety."""
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


class GameMode(str, Enum):
    """Where a room's ranks come from."""
    LOCAL = "local"
    REMOTE = "remote"


class AdaptiveUUID(sqltypes.TypeDecorator):
    """UUID stored natively on PostgreSQL and as 32-char hex text elsewhere."""

    impl = sqltypes.String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PGUUID(as_uuid=True))
        return dialect.type_descriptor(String(32))

    @staticmethod
    def _coerce_uuid(value):
        if value is None or isinstance(value, uuid.UUID):
            return value
        return uuid.UUID(str(value))

    def process_bind_param(self, value, dialect):
        value = self._coerce_uuid(value)
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return value.hex

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self._coerce_uuid(value)


def get_uuid_column(*args, **kwargs):
    """Get UUID column type based on database dialect.

    Example:
        room_id = get_uuid_column(primary_key=True, default=uuid.uuid4)
        parent_id = get_uuid_column(ForeignKey("rooms.room_id"), nullable=True)
    """
    return Column(
        AdaptiveUUID(),
        *args,
        **kwargs
    )
