"""Tests for the remote ranking provider.

The HTTP session is replaced by mocks; nothing leaves the process.
"""
import asyncio

import aiohttp
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from aiohttp import ClientError, ClientTimeout

from closeword.services.ranking import RemoteRanking, RemoteRankingProvider
from closeword.utils.exceptions import RankingUnavailableError, WordNotAcceptedError


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.remote_ranking_url = "https://ranks.example.com/"
    settings.remote_ranking_namespace = "machado"
    settings.remote_ranking_locale = "pt-br"
    settings.remote_ranking_timeout_seconds = 5.0
    settings.remote_ranking_user_agent = "Closeword/test"
    return settings


@pytest.fixture
def provider(mock_settings):
    with patch("closeword.services.ranking.remote.get_settings", return_value=mock_settings):
        return RemoteRankingProvider()


def _mock_response(status=200, json_data=None, json_error=None):
    response = MagicMock()
    response.status = status
    if json_error is not None:
        response.json = AsyncMock(side_effect=json_error)
    else:
        response.json = AsyncMock(return_value=json_data)

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=None)
    return context


def _install_session(provider, get):
    session = MagicMock()
    session.closed = False
    session.get = get
    provider._session = session
    return session


class TestRemoteRankingProviderInit:

    def test_strips_trailing_slash(self, provider):
        assert provider.base_url == "https://ranks.example.com"

    def test_sets_timeout(self, provider):
        assert isinstance(provider.timeout, ClientTimeout)
        assert provider.timeout.total == 5.0

    def test_session_created_lazily(self, provider):
        assert provider._session is None

    def test_build_url_quotes_word(self, provider):
        url = provider.build_url(42, "coração")

        assert url == "https://ranks.example.com/machado/pt-br/game/42/cora%C3%A7%C3%A3o"

    def test_target_is_game_day(self, provider):
        room = MagicMock(room_id="r", game_day=7)
        assert provider.target_for(room) == 7


class TestSessionManagement:

    @pytest.mark.asyncio
    async def test_ensure_session_creates_and_close_releases(self, provider):
        await provider._ensure_session()
        assert isinstance(provider._session, aiohttp.ClientSession)

        await provider.close()
        assert provider._session is None

    @pytest.mark.asyncio
    async def test_context_manager(self, provider):
        async with provider as p:
            assert p._session is not None
        assert provider._session is None


class TestParseBody:

    def test_distance_zero_is_rank_one(self):
        ranking = RemoteRankingProvider.parse_body({"distance": 0, "lemma": "sol", "word": "sol"})

        assert ranking == RemoteRanking(distance=0, lemma="sol", word="sol")
        assert ranking.rank == 1

    def test_integral_float_accepted(self):
        assert RemoteRankingProvider.parse_body({"distance": 12.0}).rank == 13

    @pytest.mark.parametrize(
        "body",
        [None, [], {}, {"distance": -1}, {"distance": "3"}, {"distance": 1.5}, {"distance": True}],
    )
    def test_malformed_bodies_are_unavailable(self, body):
        with pytest.raises(RankingUnavailableError):
            RemoteRankingProvider.parse_body(body)


class TestRank:

    @pytest.mark.asyncio
    async def test_rank_is_distance_plus_one(self, provider):
        get = MagicMock(return_value=_mock_response(json_data={"distance": 41, "lemma": "mar", "word": "mar"}))
        _install_session(provider, get)

        rank = await provider.rank("mar", 12)

        assert rank == 42
        called_url = get.call_args[0][0]
        assert called_url.endswith("/machado/pt-br/game/12/mar")
        assert get.call_args.kwargs["headers"]["User-Agent"] == "Closeword/test"

    @pytest.mark.asyncio
    async def test_error_body_means_word_not_accepted(self, provider):
        get = MagicMock(return_value=_mock_response(status=404, json_data={"error": "Palavra desconhecida"}))
        _install_session(provider, get)

        with pytest.raises(WordNotAcceptedError) as exc_info:
            await provider.rank("xyzzy", 12)

        assert exc_info.value.service_error == "Palavra desconhecida"
        assert exc_info.value.code == "word_not_accepted"

    @pytest.mark.asyncio
    async def test_server_error_is_unavailable(self, provider):
        get = MagicMock(return_value=_mock_response(status=502, json_error=ValueError("not json")))
        _install_session(provider, get)

        with pytest.raises(RankingUnavailableError):
            await provider.rank("mar", 12)

    @pytest.mark.asyncio
    async def test_server_error_with_error_body_is_unavailable(self, provider):
        get = MagicMock(return_value=_mock_response(status=503, json_data={"error": "Service Unavailable"}))
        _install_session(provider, get)

        with pytest.raises(RankingUnavailableError):
            await provider.rank("mar", 12)

    @pytest.mark.asyncio
    async def test_timeout_is_unavailable(self, provider):
        _install_session(provider, MagicMock(side_effect=asyncio.TimeoutError()))

        with pytest.raises(RankingUnavailableError, match="timeout"):
            await provider.rank("mar", 12)

    @pytest.mark.asyncio
    async def test_client_error_is_unavailable(self, provider):
        _install_session(provider, MagicMock(side_effect=ClientError("connection refused")))

        with pytest.raises(RankingUnavailableError):
            await provider.rank("mar", 12)

    @pytest.mark.asyncio
    async def test_every_call_hits_the_service(self, provider):
        get = MagicMock(side_effect=lambda *a, **k: _mock_response(json_data={"distance": 3}))
        _install_session(provider, get)

        await provider.rank("mar", 12)
        await provider.rank("mar", 12)

        assert get.call_count == 2
