"""Normalization of player-supplied words and nicknames."""
import unicodedata

from closeword.config import get_settings
from closeword.utils.exceptions import InvalidWordError, InvalidNicknameError, InvalidUserIdError


def normalize_word(raw_word: str | None, max_length: int | None = None) -> str:
    """Return the canonical form of a guess: NFC, trimmed, lowercase.

    Guesses are single words, so any whitespace left after trimming is
    rejected along with empty and over-long input.
    """
    if max_length is None:
        max_length = get_settings().max_word_length

    if raw_word is None:
        raise InvalidWordError("word is required")

    word = unicodedata.normalize("NFC", raw_word).strip().lower()
    if not word:
        raise InvalidWordError("word is empty")
    if any(ch.isspace() for ch in word):
        raise InvalidWordError("word must not contain spaces")
    if len(word) > max_length:
        raise InvalidWordError(f"word longer than {max_length} characters")
    return word


def normalize_nickname(raw_nickname: str | None, max_length: int | None = None) -> str:
    if max_length is None:
        max_length = get_settings().max_nickname_length

    nickname = " ".join((raw_nickname or "").split())
    if not nickname:
        raise InvalidNicknameError("nickname is empty")
    if len(nickname) > max_length:
        raise InvalidNicknameError(f"nickname longer than {max_length} characters")
    return nickname


def normalize_user_id(raw_user_id: str | None) -> str:
    """Client-generated ids are opaque; only require something short and non-blank."""
    user_id = (raw_user_id or "").strip()
    if not user_id:
        raise InvalidUserIdError("user id is required")
    if len(user_id) > 64 or any(ch.isspace() for ch in user_id):
        raise InvalidUserIdError("user id is malformed")
    return user_id
