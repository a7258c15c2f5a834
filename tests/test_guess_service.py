"""Tests for guess ranking, recording, collision reveals and winning."""
import asyncio
import uuid

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import select

from closeword.models import Guess, Room
from closeword.services import GuessService
from closeword.utils import change_feed, room_channel
from closeword.utils.exceptions import (
    AlreadyGuessedError,
    GameNotActiveError,
    InvalidWordError,
    NotInRoomError,
    RankingUnavailableError,
    RoomNotFoundError,
    UnknownWordError,
    WordNotAcceptedError,
)


@pytest.fixture
def submit(session_factory, ranking_registry):
    """Submit a guess through its own session, like one API request."""
    async def _submit(room_id, user_id, word):
        async with session_factory() as db:
            return await GuessService(db, ranking_registry).submit_guess(room_id, user_id, word)

    return _submit


async def _guesses(session_factory, room_id):
    async with session_factory() as db:
        result = await db.execute(
            select(Guess).where(Guess.room_id == room_id).order_by(Guess.created_at)
        )
        return list(result.scalars().all())


async def _room(session_factory, room_id):
    async with session_factory() as db:
        result = await db.execute(select(Room).where(Room.room_id == room_id))
        return result.scalar_one()


class TestSubmitGuess:

    @pytest.mark.asyncio
    async def test_guess_is_ranked_and_recorded(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(start=True)

        result = await submit(room.room_id, "host-1", "  Praia ")

        assert result.rank == 4
        assert result.revealed is False
        assert result.is_winner is False

        guesses = await _guesses(session_factory, room.room_id)
        assert [(g.user_id, g.word, g.rank, g.is_revealed) for g in guesses] == [
            ("host-1", "praia", 4, False)
        ]

    @pytest.mark.asyncio
    async def test_empty_word_writes_nothing(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(start=True)

        with pytest.raises(InvalidWordError):
            await submit(room.room_id, "host-1", "   ")

        assert await _guesses(session_factory, room.room_id) == []

    @pytest.mark.asyncio
    async def test_unknown_word_writes_nothing(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(start=True)

        with pytest.raises(UnknownWordError):
            await submit(room.room_id, "host-1", "xyzzy")

        assert await _guesses(session_factory, room.room_id) == []

    @pytest.mark.asyncio
    async def test_missing_room(self, submit):
        with pytest.raises(RoomNotFoundError):
            await submit(uuid.uuid4(), "host-1", "sol")

    @pytest.mark.asyncio
    async def test_waiting_room_rejects_guesses(self, room_factory, submit):
        room = await room_factory()

        with pytest.raises(GameNotActiveError):
            await submit(room.room_id, "host-1", "sol")

    @pytest.mark.asyncio
    async def test_outsider_cannot_guess(self, room_factory, submit, secret_word):
        room = await room_factory(start=True)

        with pytest.raises(NotInRoomError):
            await submit(room.room_id, "stranger", "lua")

    @pytest.mark.asyncio
    async def test_player_cannot_repeat_a_word(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(start=True)
        await submit(room.room_id, "host-1", "lua")

        with pytest.raises(AlreadyGuessedError):
            await submit(room.room_id, "host-1", "LUA")

        assert len(await _guesses(session_factory, room.room_id)) == 1


class TestCollisions:

    @pytest.mark.asyncio
    async def test_second_player_on_same_word_reveals_both(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(players=("p2", "p3"), start=True)

        first = await submit(room.room_id, "host-1", "lua")
        await submit(room.room_id, "p2", "praia")
        third = await submit(room.room_id, "p3", "lua")

        assert first.revealed is False
        assert third.revealed is True

        state = {(g.user_id, g.word): g.is_revealed for g in await _guesses(session_factory, room.room_id)}
        assert state == {
            ("host-1", "lua"): True,
            ("p2", "praia"): False,
            ("p3", "lua"): True,
        }

    @pytest.mark.asyncio
    async def test_three_players_on_same_word_all_revealed(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(players=("p2", "p3"), start=True)

        await submit(room.room_id, "host-1", "lua")
        await submit(room.room_id, "p2", "lua")
        await submit(room.room_id, "host-1", "praia")
        late = await submit(room.room_id, "p3", "lua")

        assert late.revealed is True
        state = {(g.user_id, g.word): g.is_revealed for g in await _guesses(session_factory, room.room_id)}
        assert state == {
            ("host-1", "lua"): True,
            ("p2", "lua"): True,
            ("host-1", "praia"): False,
            ("p3", "lua"): True,
        }

    @pytest.mark.asyncio
    async def test_collision_publishes_insert_then_update(self, room_factory, submit, secret_word):
        room = await room_factory(players=("p2",), start=True)
        await submit(room.room_id, "host-1", "mar")

        async with change_feed.subscribe(room_channel(room.room_id)) as subscription:
            await submit(room.room_id, "p2", "mar")
            inserted = await subscription.get()
            updated = await subscription.get()

        assert inserted["op"] == "INSERT"
        assert inserted["row"]["user_id"] == "p2"
        assert inserted["row"]["is_revealed"] is True
        assert updated["op"] == "UPDATE"
        assert updated["row"]["user_id"] == "host-1"
        assert updated["row"]["is_revealed"] is True

    @pytest.mark.asyncio
    async def test_third_player_reveals_only_their_own_guess(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(players=("p2", "p3"), start=True)
        await submit(room.room_id, "host-1", "mar")
        await submit(room.room_id, "p2", "mar")

        async with change_feed.subscribe(room_channel(room.room_id)) as subscription:
            result = await submit(room.room_id, "p3", "mar")
            inserted = await subscription.get()

            # Earlier guesses were already revealed, so no update follows
            assert subscription.queue.empty()

        assert result.revealed is True
        assert inserted["op"] == "INSERT"


class TestWinning:

    @pytest.mark.asyncio
    async def test_exact_guess_wins_and_finishes_room(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(players=("p2",), start=True)

        result = await submit(room.room_id, "p2", "Sol")

        assert result.rank == 1
        assert result.is_winner is True

        finished = await _room(session_factory, room.room_id)
        assert finished.status == "finished"
        assert finished.winner_id == "p2"
        assert finished.revealed_word == "sol"
        assert finished.finished_at is not None

    @pytest.mark.asyncio
    async def test_late_exact_guess_is_recorded_but_never_wins(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(players=("p2",), start=True)
        await submit(room.room_id, "p2", "sol")

        late = await submit(room.room_id, "host-1", "sol")

        assert late.rank == 1
        assert late.is_winner is False
        assert (await _room(session_factory, room.room_id)).winner_id == "p2"
        assert len(await _guesses(session_factory, room.room_id)) == 2

    @pytest.mark.asyncio
    async def test_finished_room_can_refuse_late_guesses(self, room_factory, session_factory, ranking_registry, secret_word):
        room = await room_factory(players=("p2",), start=True)
        async with session_factory() as db:
            await GuessService(db, ranking_registry).submit_guess(room.room_id, "p2", "sol")

        async with session_factory() as db:
            service = GuessService(db, ranking_registry)
            service.settings = MagicMock(accept_guesses_after_finish=False)
            with pytest.raises(GameNotActiveError):
                await service.submit_guess(room.room_id, "host-1", "lua")

    @pytest.mark.asyncio
    async def test_concurrent_exact_guesses_have_one_winner(self, room_factory, submit, session_factory, secret_word):
        room = await room_factory(players=("p2",), start=True)

        results = await asyncio.gather(
            submit(room.room_id, "host-1", "sol"),
            submit(room.room_id, "p2", "sol"),
        )

        winners = [r for r in results if r.is_winner]
        assert len(winners) == 1
        assert all(r.rank == 1 for r in results)

        finished = await _room(session_factory, room.room_id)
        assert finished.status == "finished"
        assert finished.winner_id == winners[0].guess.user_id

        guesses = await _guesses(session_factory, room.room_id)
        assert len(guesses) == 2
        # Both guessed the same word, so both are revealed
        assert all(g.is_revealed for g in guesses)

    @pytest.mark.asyncio
    async def test_room_update_published_after_winning_guess(self, room_factory, submit, secret_word):
        room = await room_factory(start=True)

        async with change_feed.subscribe(room_channel(room.room_id)) as subscription:
            await submit(room.room_id, "host-1", "sol")
            guess_change = await subscription.get()
            room_change = await subscription.get()

        assert guess_change["table"] == "guesses"
        assert room_change["table"] == "rooms"
        assert room_change["row"]["status"] == "finished"
        assert room_change["row"]["winner_id"] == "host-1"

    @pytest.mark.asyncio
    async def test_late_guess_change_carries_finished_status(self, room_factory, submit, secret_word):
        room = await room_factory(players=("p2",), start=True)
        await submit(room.room_id, "p2", "sol")

        async with change_feed.subscribe(room_channel(room.room_id)) as subscription:
            await submit(room.room_id, "host-1", "mar")
            change = await subscription.get()

        assert change["row"]["word"] == "mar"
        assert change["room_status"] == "finished"


class TestRemoteRooms:

    @pytest.fixture
    def remote_lookup(self, ranking_registry):
        """Stub the remote service's HTTP session."""
        provider = ranking_registry.provider_for("remote")

        def _install(get):
            session = MagicMock()
            session.closed = False
            session.get = get
            provider._session = session
            return get

        yield _install
        provider._session = None

    @staticmethod
    def _response(status, body):
        response = MagicMock()
        response.status = status
        response.json = AsyncMock(return_value=body)
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=response)
        context.__aexit__ = AsyncMock(return_value=None)
        return context

    @pytest.mark.asyncio
    async def test_remote_rank_recorded(self, room_factory, submit, session_factory, remote_lookup):
        room = await room_factory(game_mode="remote", start=True)
        get = remote_lookup(MagicMock(return_value=self._response(200, {"distance": 9, "lemma": "mar"})))

        result = await submit(room.room_id, "host-1", "mar")

        assert result.rank == 10
        assert f"/game/{room.game_day}/mar" in get.call_args[0][0]
        assert [g.rank for g in await _guesses(session_factory, room.room_id)] == [10]

    @pytest.mark.asyncio
    async def test_connection_released_while_ranking(self, room_factory, session_factory, ranking_registry, remote_lookup):
        room = await room_factory(game_mode="remote", start=True)
        in_transaction = []

        async with session_factory() as db:
            def _get(*args, **kwargs):
                in_transaction.append(db.in_transaction())
                return self._response(200, {"distance": 2})

            remote_lookup(MagicMock(side_effect=_get))
            result = await GuessService(db, ranking_registry).submit_guess(room.room_id, "host-1", "mar")

        assert in_transaction == [False]
        assert result.rank == 3
        assert [g.rank for g in await _guesses(session_factory, room.room_id)] == [3]

    @pytest.mark.asyncio
    async def test_word_not_accepted_writes_nothing(self, room_factory, submit, session_factory, remote_lookup):
        room = await room_factory(game_mode="remote", start=True)
        remote_lookup(MagicMock(return_value=self._response(200, {"error": "Palavra inválida"})))

        with pytest.raises(WordNotAcceptedError):
            await submit(room.room_id, "host-1", "asdf")

        assert await _guesses(session_factory, room.room_id) == []

    @pytest.mark.asyncio
    async def test_timeout_writes_nothing(self, room_factory, submit, session_factory, remote_lookup):
        room = await room_factory(game_mode="remote", start=True)
        remote_lookup(MagicMock(side_effect=asyncio.TimeoutError()))

        with pytest.raises(RankingUnavailableError):
            await submit(room.room_id, "host-1", "mar")

        assert await _guesses(session_factory, room.room_id) == []
        assert (await _room(session_factory, room.room_id)).status == "playing"
