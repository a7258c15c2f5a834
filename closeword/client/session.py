"""Room session controller: snapshot plus live updates for one player."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator, Callable, Optional, Protocol
from urllib.parse import urlencode

import aiohttp
from aiohttp import WSMsgType

from closeword.client.api_client import RoomApiClient
from closeword.client.results import Err, Ok, Result, ROOM_NOT_FOUND
from closeword.client.state import RoomState

logger = logging.getLogger(__name__)

EVENT = "event"
RECONNECTED = "reconnected"
CLOSED = "closed"

# Close codes after which reconnecting is pointless
TERMINAL_CLOSE_CODES = {4001, 4003, 4004}


class EventStream(Protocol):
    """Source of ``(kind, payload)`` pairs for one room."""

    async def open(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[tuple[str, object]]: ...

    async def close(self) -> None: ...


def room_stream_url(base_url: str, room_id: str, user_id: str) -> str:
    """WebSocket URL of a room for an HTTP API base URL."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/rooms/{room_id}/ws?{urlencode({'user_id': user_id})}"


class WebSocketEventStream:
    """aiohttp WebSocket reader that reconnects with exponential back-off.

    Yields ``(EVENT, dict)`` for each message, ``(RECONNECTED, None)`` after
    each successful reconnect and a final ``(CLOSED, code)`` when the server
    refuses the room for good.
    """

    def __init__(
        self,
        url: str,
        *,
        initial_backoff: float = 0.5,
        max_backoff: float = 30.0,
        heartbeat: float = 30.0,
    ) -> None:
        self.url = url
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.heartbeat = heartbeat
        self._session: Optional[aiohttp.ClientSession] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._closed = False

    async def _ensure_session(self) -> None:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()

    async def open(self) -> None:
        """Connect once; raises if the first connection fails."""
        await self._ensure_session()
        self._ws = await self._session.ws_connect(self.url, heartbeat=self.heartbeat)
        logger.debug(f"Room stream connected to {self.url}")

    async def _reconnect(self) -> bool:
        delay = self.initial_backoff
        while not self._closed:
            await asyncio.sleep(delay)
            try:
                await self.open()
                return True
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                logger.warning(f"Room stream reconnect failed: {exc} (retrying in {delay:.1f}s)")
                delay = min(delay * 2, self.max_backoff)
        return False

    def __aiter__(self) -> AsyncIterator[tuple[str, object]]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[tuple[str, object]]:
        while not self._closed:
            if self._ws is None or self._ws.closed:
                if not await self._reconnect():
                    return
                yield RECONNECTED, None

            msg = await self._ws.receive()
            if msg.type == WSMsgType.TEXT:
                try:
                    yield EVENT, json.loads(msg.data)
                except ValueError:
                    logger.warning("Dropping malformed room event")
                continue

            if msg.type in (WSMsgType.CLOSE, WSMsgType.CLOSING, WSMsgType.CLOSED, WSMsgType.ERROR):
                code = self._ws.close_code
                self._ws = None
                if code in TERMINAL_CLOSE_CODES:
                    logger.info(f"Room stream closed by server with code {code}")
                    yield CLOSED, code
                    return
                logger.info(f"Room stream dropped (code {code}), reconnecting")

    async def close(self) -> None:
        self._closed = True
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        self._ws = None
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class RoomSession:
    """Keeps a :class:`RoomState` in sync with the server for one player.

    The stream is opened before the snapshot is read, and events that arrive
    while the snapshot is in flight are buffered and merged afterwards.
    Duplicates are harmless because every merge is idempotent.
    """

    def __init__(
        self,
        api: RoomApiClient,
        stream_factory: Callable[[str, str], EventStream],
        on_update: Optional[Callable[[RoomState], None]] = None,
    ) -> None:
        self.api = api
        self.stream_factory = stream_factory
        self.on_update = on_update
        self.state: Optional[RoomState] = None
        self.terminal = False
        self.last_error: Optional[Err] = None
        self._stream: Optional[EventStream] = None
        self._consumer: Optional[asyncio.Task] = None
        self._buffer: list[dict] = []
        self._synced = False
        self._resync_lock = asyncio.Lock()

    @property
    def room_id(self) -> Optional[str]:
        return self.state.room_id if self.state else None

    async def attach(self, room_id: str) -> Result:
        """Open the live stream, load the snapshot, then keep merging events."""
        room_id = str(room_id)
        self.state = RoomState(room_id, self.api.user_id)
        self.terminal = False

        self._stream = self.stream_factory(room_id, self.api.user_id)
        try:
            await self._stream.open()
        except Exception as exc:
            logger.warning(f"Could not open room stream for {room_id}: {exc}")
            await self._close_stream()
            return Err.from_code("network_error")

        self._consumer = asyncio.create_task(self._consume())

        result = await self.resync()
        if not result.ok:
            await self.detach()
            return result
        return Ok(self.state)

    async def resync(self) -> Result:
        """Fetch a fresh snapshot and merge anything buffered meanwhile."""
        async with self._resync_lock:
            self._synced = False
            result = await self.api.get_snapshot(self.state.room_id)
            if not result.ok:
                self._record_error(result)
                # Keep streaming; the next reconnect or ambiguity retries
                self._synced = True
                self._flush_buffer()
                return result

            self.state.load_snapshot(result.value)
            self._synced = True
            self._flush_buffer()
            self._notify()
            return Ok(self.state)

    def _flush_buffer(self) -> None:
        buffered, self._buffer = self._buffer, []
        for event in buffered:
            self.state.apply_event(event)

    async def _consume(self) -> None:
        try:
            async for kind, payload in self._stream:
                if kind == RECONNECTED:
                    # Nothing is replayed across a gap
                    await self.resync()
                    continue
                if kind == CLOSED:
                    if payload == 4004:
                        self.terminal = True
                        self._record_error(Err.from_code(ROOM_NOT_FOUND))
                    return
                if not self._synced:
                    self._buffer.append(payload)
                    continue

                if self.state.apply_event(payload):
                    self._notify()
                if self.state.take_resync_request():
                    await self.resync()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error(f"Room stream consumer failed: {exc}", exc_info=True)

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.state)

    def _record_error(self, error: Err) -> None:
        self.last_error = error
        if error.terminal:
            self.terminal = True

    async def submit_guess(self, word: str) -> Result:
        """Submit a guess; the guess itself shows up through the stream."""
        if self.state is None or self.terminal:
            return Err.from_code(ROOM_NOT_FOUND)
        result = await self.api.submit_guess(self.state.room_id, word)
        if not result.ok:
            self._record_error(result)
        return result

    async def start_game(self) -> Result:
        if self.state is None or self.terminal:
            return Err.from_code(ROOM_NOT_FOUND)
        result = await self.api.start_game(self.state.room_id)
        if not result.ok:
            self._record_error(result)
        return result

    async def detach(self) -> None:
        """Stop consuming and release the stream."""
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None
        await self._close_stream()

    async def _close_stream(self) -> None:
        if self._stream is not None:
            await self._stream.close()
            self._stream = None
