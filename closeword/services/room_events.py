"""Realtime room events over WebSocket.

Connections are grouped per room. The first connection of a room opens one
change-feed subscription and a pump task that turns committed row changes
into per-viewer events; the last disconnect tears both down.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Dict, Optional

from closeword.models.base import RoomStatus
from closeword.services.room_service import public_guess, public_player, public_room
from closeword.utils.change_capture import INSERT, UPDATE
from closeword.utils.change_feed import ChangeFeed, room_channel

logger = logging.getLogger(__name__)

GUESS_INSERTED = "guess_inserted"
GUESS_UPDATED = "guess_updated"
ROOM_UPDATED = "room_updated"
PLAYER_JOINED = "player_joined"


def build_client_event(change: dict, viewer_id: Optional[str]) -> Optional[dict]:
    """Turn one committed change into the event a given viewer receives.

    Returns None for changes clients do not subscribe to (room inserts).
    """
    table = change.get("table")
    op = change.get("op")
    row = change.get("row") or {}

    if table == "guesses" and op in (INSERT, UPDATE):
        event_type = GUESS_INSERTED if op == INSERT else GUESS_UPDATED
        room_finished = change.get("room_status") == RoomStatus.FINISHED.value
        return {
            "type": event_type,
            "id": row["guess_id"],
            "room_id": row["room_id"],
            "data": public_guess(row, viewer_id, room_finished),
        }
    if table == "rooms" and op == UPDATE:
        return {
            "type": ROOM_UPDATED,
            "id": row["room_id"],
            "room_id": row["room_id"],
            "data": public_room(row),
        }
    if table == "room_players" and op == INSERT:
        return {
            "type": PLAYER_JOINED,
            "id": f"{row['room_id']}:{row['user_id']}",
            "room_id": row["room_id"],
            "data": public_player(row),
        }
    return None


@dataclass
class RoomConnection:
    """A viewer's WebSocket in one room."""

    websocket: "WebSocket"
    user_id: str


class RoomEventManager:
    """Fan committed room changes out to connected WebSockets."""

    def __init__(self, feed: ChangeFeed | None = None) -> None:
        if feed is None:
            from closeword.utils import change_feed as feed
        self._feed = feed
        # Map room_id (str) → connection_id (str) → RoomConnection
        self._rooms: Dict[str, Dict[str, RoomConnection]] = {}
        self._pumps: Dict[str, asyncio.Task] = {}
        self._ready: Dict[str, asyncio.Event] = {}

    def get_connection_count(self, room_id) -> int:
        return len(self._rooms.get(str(room_id), {}))

    def has_subscription(self, room_id) -> bool:
        task = self._pumps.get(str(room_id))
        return task is not None and not task.done()

    async def connect(self, room_id, user_id: str, websocket: "WebSocket") -> str:
        """Accept a WebSocket and return its connection id.

        Events committed after this returns are delivered to the socket.
        """
        room_key = str(room_id)

        # Subscribe before accepting so nothing the client does afterwards is missed
        if not self.has_subscription(room_key):
            self._ready[room_key] = asyncio.Event()
            self._pumps[room_key] = asyncio.create_task(self._pump(room_key, self._ready[room_key]))
        await self._ready[room_key].wait()

        try:
            await websocket.accept()
        except Exception:
            if room_key not in self._rooms:
                await self._stop_pump(room_key)
            raise

        connection_id = uuid.uuid4().hex
        self._rooms.setdefault(room_key, {})[connection_id] = RoomConnection(
            websocket=websocket, user_id=user_id
        )

        logger.info(
            f"WebSocket connected for {user_id=} in room {room_key} "
            f"(connections={self.get_connection_count(room_key)})"
        )
        return connection_id

    async def disconnect(self, room_id, connection_id: str) -> Optional[RoomConnection]:
        room_key = str(room_id)
        connection = self._drop(room_key, connection_id)
        if connection:
            logger.info(f"WebSocket disconnected for user_id={connection.user_id!r} in room {room_key}")

        if room_key not in self._rooms:
            await self._stop_pump(room_key)
        return connection

    async def _stop_pump(self, room_key: str) -> None:
        self._ready.pop(room_key, None)
        task = self._pumps.pop(room_key, None)
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Stopped change pump for room {room_key}")

    def _drop(self, room_key: str, connection_id: str) -> Optional[RoomConnection]:
        connections = self._rooms.get(room_key)
        if not connections:
            return None
        connection = connections.pop(connection_id, None)
        if not connections:
            self._rooms.pop(room_key, None)
        return connection

    async def _pump(self, room_key: str, ready: asyncio.Event) -> None:
        try:
            async with self._feed.subscribe(room_channel(room_key)) as subscription:
                ready.set()
                logger.debug(f"Started change pump for room {room_key}")
                async for change in subscription:
                    await self.dispatch(room_key, change)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Change pump for room {room_key} failed: {e}", exc_info=True)
        finally:
            ready.set()

    async def dispatch(self, room_id, change: dict) -> None:
        """Send one change to every connection of a room, masked per viewer."""
        room_key = str(room_id)
        connections = self._rooms.get(room_key)
        if not connections:
            logger.debug(f"Room {room_key} has no connections, skipping change")
            return

        disconnected: list[str] = []
        for connection_id, connection in list(connections.items()):
            event = build_client_event(change, connection.user_id)
            if event is None:
                continue
            try:
                await connection.websocket.send_json(event)
            except Exception as exc:  # pragma: no cover - network stack
                logger.warning(
                    f"Failed to send room event to user_id={connection.user_id!r} in room {room_key}: {exc}"
                )
                disconnected.append(connection_id)

        for connection_id in disconnected:
            self._drop(room_key, connection_id)

        if room_key not in self._rooms:
            # Everyone dropped; ending the pump releases the subscription
            self._ready.pop(room_key, None)
            task = self._pumps.pop(room_key, None)
            if task is not None:
                task.cancel()

    async def close(self) -> None:
        """Cancel every pump; used at shutdown."""
        tasks = list(self._pumps.values())
        self._pumps.clear()
        self._ready.clear()
        self._rooms.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass


_room_event_manager: Optional[RoomEventManager] = None


def get_room_event_manager() -> RoomEventManager:
    global _room_event_manager
    if _room_event_manager is None:
        _room_event_manager = RoomEventManager()
    return _room_event_manager
