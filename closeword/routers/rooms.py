"""Room API router."""
from fastapi import APIRouter, Depends, Header, HTTPException, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging

from closeword.database import get_db
from closeword.dependencies import get_user_id
from closeword.schemas.room import (
    CreateRoomRequest,
    CreateRoomResponse,
    JoinRoomRequest,
    JoinRoomResponse,
    StartGameResponse,
    SubmitGuessRequest,
    SubmitGuessResponse,
    RematchResponse,
    RoomSnapshotResponse,
)
from closeword.schemas.stats import GameSummaryResponse
from closeword.services import (
    RoomService,
    GuessService,
    StatisticsService,
    RankingRegistry,
    get_ranking_registry,
    get_room_event_manager,
)
from closeword.utils.exceptions import ClosewordError, InvalidUserIdError
from closeword.utils.words import normalize_user_id

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/rooms", tags=["rooms"])


def _http_error(error: ClosewordError) -> HTTPException:
    return HTTPException(status_code=error.http_status, detail=error.code)


async def get_optional_user_id(x_user_id: str | None = Header(default=None)) -> str | None:
    """Viewer id for read-only endpoints; anonymous viewers see only revealed words."""
    if x_user_id is None:
        return None
    try:
        return normalize_user_id(x_user_id)
    except InvalidUserIdError as e:
        raise _http_error(e)


@router.post("", response_model=CreateRoomResponse)
async def create_room(
    request: CreateRoomRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Create a waiting room with the caller as host."""
    try:
        room = await RoomService(db).create_room(user_id, request.nickname, request.game_mode)
        return CreateRoomResponse(room_id=room.room_id, game_mode=room.game_mode)
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error creating room: {type(e).__name__}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")


@router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(
    room_id: UUID,
    request: JoinRoomRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Join a room that has not started yet.

    Raises:
        404: Room not found
        409: Room already started
    """
    try:
        room = await RoomService(db).join_room(room_id, user_id, request.nickname)
        return JoinRoomResponse(room_id=room.room_id, status=room.status)
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error joining room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to join room")


@router.post("/{room_id}/start", response_model=StartGameResponse)
async def start_game(
    room_id: UUID,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Host-only: pick the target and start guessing."""
    try:
        room = await RoomService(db).start_game(room_id, user_id)
        return StartGameResponse(room_id=room.room_id, status=room.status, game_mode=room.game_mode)
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error starting room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to start game")


@router.post("/{room_id}/guesses", response_model=SubmitGuessResponse)
async def submit_guess(
    room_id: UUID,
    request: SubmitGuessRequest,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    ranking: RankingRegistry = Depends(get_ranking_registry),
):
    """Rank and record a guess.

    Raises:
        400: Empty, unknown or rejected word, or word already guessed
        403: Caller is not in the room
        404: Room not found
        409: Room is not accepting guesses
        503: Ranking source unavailable (nothing recorded)
    """
    try:
        result = await GuessService(db, ranking).submit_guess(room_id, user_id, request.word)
        return SubmitGuessResponse(rank=result.rank, revealed=result.revealed, is_winner=result.is_winner)
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error submitting guess in room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to submit guess")


@router.post("/{room_id}/rematch", response_model=RematchResponse)
async def create_rematch(
    room_id: UUID,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Host-only: open a new empty room with the same game mode."""
    try:
        room = await RoomService(db).create_rematch(room_id, user_id)
        return RematchResponse(room_id=room.room_id, game_mode=room.game_mode)
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error creating rematch for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create rematch")


@router.get("/{room_id}", response_model=RoomSnapshotResponse)
async def get_room_snapshot(
    room_id: UUID,
    viewer_id: str | None = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Room, players and guesses in one read, masked for the viewer."""
    try:
        snapshot = await RoomService(db).get_snapshot(room_id, viewer_id)
        return RoomSnapshotResponse(
            room=snapshot.room,
            players=snapshot.players,
            guesses=snapshot.guesses,
        )
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error loading room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load room")


@router.get("/{room_id}/stats", response_model=GameSummaryResponse)
async def get_game_summary(
    room_id: UUID,
    db: AsyncSession = Depends(get_db),
):
    """End-of-game numbers per player plus highlights."""
    try:
        return await StatisticsService(db).game_summary(room_id)
    except ClosewordError as e:
        raise _http_error(e)
    except Exception as e:
        logger.error(f"Error building summary for room {room_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load game summary")


@router.websocket("/{room_id}/ws")
async def room_websocket_endpoint(
    websocket: WebSocket,
    room_id: UUID,
):
    """WebSocket endpoint for realtime room events.

    The player id travels in the ``user_id`` query parameter and must belong
    to a player of the room.
    """
    try:
        user_id = normalize_user_id(websocket.query_params.get("user_id"))
    except InvalidUserIdError:
        logger.warning("Room WebSocket connection attempted without user_id")
        await websocket.close(code=4001, reason="Missing user id")
        return

    from closeword.database import AsyncSessionLocal

    async with AsyncSessionLocal() as db:
        room_service = RoomService(db)
        room = await room_service.get_room(room_id)
        if not room:
            await websocket.close(code=4004, reason="Room not found")
            return

        player = await room_service.get_player(room_id, user_id)
        if not player:
            logger.warning(f"{user_id=} attempted to connect to room {room_id} they're not in")
            await websocket.close(code=4003, reason="Not a player in this room")
            return

    manager = get_room_event_manager()
    connection_id = await manager.connect(room_id, user_id, websocket)

    try:
        while True:
            # Clients never send anything meaningful; this only detects disconnects
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"Room WebSocket error for {user_id=}: {e}", exc_info=True)
    finally:
        await manager.disconnect(room_id, connection_id)
