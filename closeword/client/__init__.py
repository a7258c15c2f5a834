"""Client-side room session controller."""
from closeword.client.api_client import RoomApiClient
from closeword.client.results import Ok, Err, Result, message_for
from closeword.client.state import RoomState, NicknameCache
from closeword.client.session import (
    RoomSession,
    WebSocketEventStream,
    room_stream_url,
)

__all__ = [
    "RoomApiClient",
    "Ok",
    "Err",
    "Result",
    "message_for",
    "RoomState",
    "NicknameCache",
    "RoomSession",
    "WebSocketEventStream",
    "room_stream_url",
]
