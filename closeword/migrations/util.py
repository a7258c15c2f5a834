"""Utility functions for Alembic migrations."""
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from alembic import op


def get_uuid_type():
    """Get the UUID column type for the current database dialect.

    Matches ``AdaptiveUUID`` in the models:
        - PostgreSQL: native UUID
        - SQLite/other: String(32) holding the hex form
    """
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        return UUID(as_uuid=True)
    return sa.String(length=32)


def get_json_type():
    """JSONB on PostgreSQL, generic JSON elsewhere."""
    bind = op.get_bind()
    if bind.dialect.name == 'postgresql':
        from sqlalchemy.dialects.postgresql import JSONB
        return JSONB()
    return sa.JSON()
