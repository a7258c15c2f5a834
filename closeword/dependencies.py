"""FastAPI dependencies."""
import logging

from fastapi import Header, HTTPException

from closeword.utils.exceptions import InvalidUserIdError
from closeword.utils.words import normalize_user_id

logger = logging.getLogger(__name__)


def _mask_identifier(identifier: str) -> str:
    """Mask a client identifier for logging."""
    if not identifier:
        return "<missing>"
    if len(identifier) <= 8:
        return f"{identifier[:2]}...{identifier[-2:]}"
    return f"{identifier[:4]}...{identifier[-4:]}"


async def get_user_id(x_user_id: str | None = Header(default=None)) -> str:
    """Client-generated player id from the ``X-User-Id`` header."""
    try:
        return normalize_user_id(x_user_id)
    except InvalidUserIdError as e:
        logger.warning(f"Rejected request with bad user id {_mask_identifier(x_user_id or '')}: {e}")
        raise HTTPException(status_code=e.http_status, detail=e.code)
