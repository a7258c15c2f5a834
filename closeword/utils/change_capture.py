"""Announce committed row changes on the change feed.

Services call :func:`record_change` next to every write to rooms, players
and guesses. The changes sit on the session until it commits; a rollback
drops them, so subscribers only ever hear about durable state.
"""
import logging
import uuid
from datetime import datetime

from sqlalchemy import event
from sqlalchemy.orm import Session

from closeword.schemas.base import serialize_datetime_utc
from closeword.utils.change_feed import room_channel

logger = logging.getLogger(__name__)

PENDING_CHANGES_KEY = "pending_changes"

INSERT = "INSERT"
UPDATE = "UPDATE"


def _jsonable(value):
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return serialize_datetime_utc(value)
    return value


def row_to_dict(instance) -> dict:
    """Column values of an ORM instance as JSON-friendly data."""
    return {
        column.key: _jsonable(getattr(instance, column.key))
        for column in instance.__table__.columns
    }


def record_change(session, table: str, op: str, instance, room_status: str | None = None) -> None:
    """Queue a change to be published once ``session`` commits.

    Accepts either a plain or an async session; both share ``info``.
    ``room_status`` travels with guess changes so viewers of a finished
    room see every word.
    """
    change = {"table": table, "op": op, "row": row_to_dict(instance)}
    if room_status is not None:
        change["room_status"] = room_status
    session.info.setdefault(PENDING_CHANGES_KEY, []).append(change)


@event.listens_for(Session, "after_commit")
def _publish_committed_changes(session):
    changes = session.info.pop(PENDING_CHANGES_KEY, None)
    if not changes:
        return

    from closeword.utils import change_feed

    for change in changes:
        room_id = change["row"].get("room_id")
        if room_id is None:
            logger.warning(f"Skipping {change['table']} change without room_id")
            continue
        change_feed.publish(room_channel(room_id), change)
    logger.debug(f"Published {len(changes)} committed changes")


@event.listens_for(Session, "after_rollback")
def _discard_rolled_back_changes(session):
    dropped = session.info.pop(PENDING_CHANGES_KEY, None)
    if dropped:
        logger.debug(f"Discarded {len(dropped)} changes after rollback")
