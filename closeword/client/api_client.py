"""Async client for the room HTTP API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from closeword.client.results import Err, Ok, Result, NETWORK_ERROR

logger = logging.getLogger(__name__)


class RoomApiClient:
    """HTTP client for the room endpoints.

    Every call returns ``Ok(body)`` or ``Err(kind, code, message)``; nothing
    raises for API or transport errors.
    """

    def __init__(
        self,
        base_url: str,
        user_id: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self.user_id = user_id
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "RoomApiClient":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    async def startup(self) -> None:
        """Initialize the underlying HTTP client."""
        async with self._lock:
            if self._client is None:
                logger.debug(f"Connecting to room API at {self._base_url}")
                self._client = httpx.AsyncClient(
                    base_url=self._base_url,
                    timeout=self._timeout,
                    headers={"X-User-Id": self.user_id},
                    transport=self._transport,
                )

    async def shutdown(self) -> None:
        """Close the underlying HTTP client."""
        async with self._lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            await self.startup()
        assert self._client is not None
        return self._client

    async def _request(self, method: str, path: str, payload: Optional[dict[str, Any]] = None) -> Result:
        client = await self._ensure_client()
        try:
            response = await client.request(method, path, json=payload)
        except httpx.HTTPError as exc:
            logger.warning(f"Room API {method} {path} failed: {exc}")
            return Err.from_code(NETWORK_ERROR)

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.is_success:
            return Ok(body)

        error = Err.from_response(response.status_code, body)
        logger.info(f"Room API {method} {path} returned {response.status_code} ({error.code})")
        return error

    async def create_room(self, nickname: str, game_mode: str | None = None) -> Result:
        payload: dict[str, Any] = {"nickname": nickname}
        if game_mode is not None:
            payload["game_mode"] = game_mode
        return await self._request("POST", "/rooms", payload)

    async def join_room(self, room_id: str, nickname: str) -> Result:
        return await self._request("POST", f"/rooms/{room_id}/join", {"nickname": nickname})

    async def start_game(self, room_id: str) -> Result:
        return await self._request("POST", f"/rooms/{room_id}/start")

    async def submit_guess(self, room_id: str, word: str) -> Result:
        return await self._request("POST", f"/rooms/{room_id}/guesses", {"word": word})

    async def create_rematch(self, room_id: str) -> Result:
        return await self._request("POST", f"/rooms/{room_id}/rematch")

    async def get_snapshot(self, room_id: str) -> Result:
        return await self._request("GET", f"/rooms/{room_id}")

    async def get_game_summary(self, room_id: str) -> Result:
        return await self._request("GET", f"/rooms/{room_id}/stats")
