"""Domain exceptions shared by services, routers and the client."""
from enum import Enum


class ErrorKind(str, Enum):
    """Coarse error categories surfaced to callers."""
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    INVALID_INPUT = "invalid_input"
    PROVIDER_UNAVAILABLE = "provider_unavailable"


_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.INVALID_INPUT: 400,
    ErrorKind.PROVIDER_UNAVAILABLE: 503,
}


class ClosewordError(Exception):
    """Base exception for all game errors."""

    kind: ErrorKind = ErrorKind.INVALID_STATE
    code: str = "error"
    status_code: int | None = None

    @property
    def http_status(self) -> int:
        return self.status_code or _STATUS_BY_KIND[self.kind]


# Not found

class RoomNotFoundError(ClosewordError):
    """Raised when a room does not exist."""
    kind = ErrorKind.NOT_FOUND
    code = "room_not_found"


# Invalid state

class GameNotActiveError(ClosewordError):
    """Raised when guessing in a room that is not accepting guesses."""
    kind = ErrorKind.INVALID_STATE
    code = "game_not_active"


class GameAlreadyStartedError(ClosewordError):
    """Raised when joining or starting a room that already left waiting."""
    kind = ErrorKind.INVALID_STATE
    code = "game_already_started"


class NotHostError(ClosewordError):
    """Raised when a non-host tries to perform a host-only action."""
    kind = ErrorKind.INVALID_STATE
    code = "not_host"
    status_code = 403


class NotInRoomError(ClosewordError):
    """Raised when a user acts in a room they never joined."""
    kind = ErrorKind.INVALID_STATE
    code = "not_in_room"
    status_code = 403


class NotEnoughPlayersError(ClosewordError):
    """Raised when starting a room with no players."""
    kind = ErrorKind.INVALID_STATE
    code = "not_enough_players"


class DictionaryEmptyError(ClosewordError):
    """Raised when a local room cannot pick a secret word."""
    kind = ErrorKind.INVALID_STATE
    code = "dictionary_empty"


# Invalid input

class InvalidInputError(ClosewordError):
    """Raised for malformed request values."""
    kind = ErrorKind.INVALID_INPUT
    code = "invalid_input"


class InvalidNicknameError(InvalidInputError):
    code = "invalid_nickname"


class InvalidUserIdError(InvalidInputError):
    code = "invalid_user_id"


class InvalidGameModeError(InvalidInputError):
    code = "invalid_game_mode"


class InvalidWordError(InvalidInputError):
    """Raised when a guess cannot be ranked as a word."""
    code = "invalid_word"


class UnknownWordError(InvalidWordError):
    """Raised when a word is not part of the local dictionary."""
    code = "unknown_word"


class WordNotAcceptedError(InvalidWordError):
    """Raised when the remote ranking service refuses a word."""
    code = "word_not_accepted"

    def __init__(self, message: str = "", *, service_error: str | None = None):
        super().__init__(message or service_error or "word not accepted")
        self.service_error = service_error


class AlreadyGuessedError(InvalidInputError):
    """Raised when a player repeats one of their own words."""
    code = "already_guessed"


# Provider unavailable

class RankingUnavailableError(ClosewordError):
    """Raised when the ranking source cannot produce a rank right now."""
    kind = ErrorKind.PROVIDER_UNAVAILABLE
    code = "ranking_unavailable"
