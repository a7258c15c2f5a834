"""Tagged results returned by the room API client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar, Union

from closeword.utils.exceptions import ClosewordError, ErrorKind

T = TypeVar("T")

ROOM_NOT_FOUND = "room_not_found"
NETWORK_ERROR = "network_error"
SERVER_ERROR = "server_error"

# Short user-facing text per error code
MESSAGES: dict[str, str] = {
    "room_not_found": "This room no longer exists.",
    "game_not_active": "The game is not accepting guesses right now.",
    "game_already_started": "This game has already started.",
    "not_host": "Only the host can do that.",
    "not_in_room": "Join the room first.",
    "not_enough_players": "Not enough players to start.",
    "dictionary_empty": "No secret word is available.",
    "invalid_input": "Please check what you typed.",
    "invalid_nickname": "Pick a nickname.",
    "invalid_user_id": "Your session is invalid. Reload and try again.",
    "invalid_game_mode": "Unknown game mode.",
    "invalid_word": "Type a single word.",
    "unknown_word": "We don't know that word.",
    "word_not_accepted": "That word is not accepted.",
    "already_guessed": "You already tried that word.",
    "ranking_unavailable": "Ranking is unavailable. Try again.",
    NETWORK_ERROR: "Connection problem. Try again.",
    SERVER_ERROR: "Something went wrong. Try again.",
}

_KIND_BY_STATUS = {
    400: ErrorKind.INVALID_INPUT,
    403: ErrorKind.INVALID_STATE,
    404: ErrorKind.NOT_FOUND,
    409: ErrorKind.INVALID_STATE,
    422: ErrorKind.INVALID_INPUT,
    503: ErrorKind.PROVIDER_UNAVAILABLE,
}


def _error_classes(cls=ClosewordError):
    for subclass in cls.__subclasses__():
        yield subclass
        yield from _error_classes(subclass)


_KIND_BY_CODE = {error_cls.code: error_cls.kind for error_cls in _error_classes()}


def message_for(code: str) -> str:
    return MESSAGES.get(code, MESSAGES[SERVER_ERROR])


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    code: str
    message: str
    status: Optional[int] = None

    @property
    def ok(self) -> bool:
        return False

    @property
    def terminal(self) -> bool:
        """The room is gone; retrying cannot help."""
        return self.code == ROOM_NOT_FOUND

    @classmethod
    def from_code(cls, code: str, status: Optional[int] = None) -> "Err":
        kind = _KIND_BY_CODE.get(code) or _KIND_BY_STATUS.get(status) or ErrorKind.PROVIDER_UNAVAILABLE
        return cls(kind=kind, code=code, message=message_for(code), status=status)

    @classmethod
    def from_response(cls, status: int, body: Any) -> "Err":
        detail = body.get("detail") if isinstance(body, dict) else None
        if isinstance(detail, str) and detail in MESSAGES:
            return cls.from_code(detail, status)
        if status in (400, 422):
            return cls.from_code("invalid_input", status)
        if status == 404:
            return cls.from_code(ROOM_NOT_FOUND, status)
        return cls.from_code(SERVER_ERROR, status)


Result = Union[Ok[T], Err]
