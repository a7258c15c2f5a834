"""Dictionary entry model for local-mode ranking."""
from datetime import datetime, UTC

from sqlalchemy import Column, Integer, String, DateTime, JSON

from closeword.database import Base


class DictionaryEntry(Base):
    """A playable word and its embedding vector.

    Rows are written by an offline seeding job and only read at request time.
    """

    __tablename__ = "dictionary"

    entry_id = Column(Integer, primary_key=True, autoincrement=True)
    word = Column(String(64), nullable=False, unique=True)
    embedding = Column(JSON, nullable=False)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )

    def __repr__(self):
        return f"<DictionaryEntry(id={self.entry_id}, word={self.word!r})>"
