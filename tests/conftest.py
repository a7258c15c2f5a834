"""Pytest configuration and fixtures."""
import os
import asyncio
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config as AlembicConfig
from sqlalchemy import delete, select
from sqlalchemy.pool import NullPool
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

# Ensure the application uses a dedicated SQLite database during tests
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///./test.db"
# Keep the change feed in-process
os.environ["REDIS_URL"] = ""
os.environ["ENVIRONMENT"] = "test"

from closeword.config import get_settings


BASE_DIR = Path(__file__).resolve().parent.parent
TEST_DB_PATH = BASE_DIR / "test.db"
settings = get_settings()

# Unit-ish vectors chosen so the ranks against "sol" are 1..7 in this order
SEED_WORDS = [
    ("sol", [1.0, 0.0, 0.0]),
    ("lua", [0.9, 0.1, 0.0]),
    ("estrela", [0.8, 0.2, 0.0]),
    ("praia", [0.5, 0.5, 0.0]),
    ("mar", [0.3, 0.7, 0.0]),
    ("casa", [0.0, 0.0, 1.0]),
    ("gato", [-0.5, 0.0, 1.0]),
]


def _make_engine():
    # NullPool keeps connections from leaking across per-test event loops
    return create_async_engine(
        settings.database_url,
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )


async def _seed_dictionary():
    from closeword.models import DictionaryEntry

    engine = _make_engine()
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        for word, embedding in SEED_WORDS:
            session.add(DictionaryEntry(word=word, embedding=embedding))
        await session.commit()
    await engine.dispose()


@pytest.fixture(scope="session", autouse=True)
def apply_migrations():
    """Apply database migrations against the test database and seed the dictionary."""
    if TEST_DB_PATH.exists():
        try:
            TEST_DB_PATH.unlink()
        except PermissionError:
            pass  # Continue anyway, migrations will handle it

    alembic_cfg = AlembicConfig(str(BASE_DIR / "alembic.ini"))
    alembic_cfg.set_main_option("sqlalchemy.url", settings.database_url)
    command.upgrade(alembic_cfg, "head")

    asyncio.run(_seed_dictionary())

    yield

    # Clean up test database after all tests
    if TEST_DB_PATH.exists():
        try:
            TEST_DB_PATH.unlink()
        except PermissionError:
            # Still in use; removed on the next run
            pass


@pytest.fixture
async def test_engine():
    """Engine on the migrated test database."""
    engine = _make_engine()
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine, monkeypatch):
    """Session factory bound to the test engine.

    Also installed as ``closeword.database.AsyncSessionLocal`` so code that
    opens its own sessions (the room WebSocket) uses it too.
    """
    factory = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    import closeword.database

    monkeypatch.setattr(closeword.database, "AsyncSessionLocal", factory)
    return factory


@pytest.fixture
async def db_session(session_factory):
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()
        await session.close()


@pytest.fixture(autouse=True)
async def clean_tables():
    """Remove game rows after each test; the dictionary stays seeded."""
    yield

    from closeword.models import Guess, RoomPlayer, Room

    engine = _make_engine()
    async with engine.begin() as conn:
        await conn.execute(delete(Guess))
        await conn.execute(delete(RoomPlayer))
        await conn.execute(delete(Room))
    await engine.dispose()


@pytest.fixture
def dictionary_ids(apply_migrations):
    """word -> entry_id for the seeded dictionary."""
    async def _load():
        from closeword.models import DictionaryEntry

        engine = _make_engine()
        async with engine.connect() as conn:
            result = await conn.execute(select(DictionaryEntry.word, DictionaryEntry.entry_id))
            rows = {row.word: row.entry_id for row in result}
        await engine.dispose()
        return rows

    return _load


@pytest.fixture
def secret_word(monkeypatch):
    """Make every local room pick ``sol`` as its secret word."""
    from closeword.models import DictionaryEntry
    from closeword.services.room_service import RoomService

    async def _pick_sol(self):
        result = await self.db.execute(
            select(DictionaryEntry.entry_id).where(DictionaryEntry.word == "sol")
        )
        return result.scalar_one()

    monkeypatch.setattr(RoomService, "_pick_secret_word_id", _pick_sol)
    return "sol"


@pytest.fixture
async def ranking_registry(session_factory):
    """Registry with a local provider reading the test database."""
    from closeword.models.base import GameMode
    from closeword.services.ranking import (
        RankingRegistry,
        LocalRankingProvider,
        RemoteRankingProvider,
    )

    registry = RankingRegistry({
        GameMode.LOCAL: LocalRankingProvider(session_factory),
        GameMode.REMOTE: RemoteRankingProvider(),
    })
    yield registry
    await registry.close()


@pytest.fixture
async def test_app(session_factory, ranking_registry):
    """Create test app with database and ranking overrides."""
    from closeword.main import app
    from closeword.database import get_db
    from closeword.services.ranking import get_ranking_registry

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_ranking_registry] = lambda: ranking_registry
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def api_client(test_app):
    """httpx client talking to the app in-process."""
    import httpx

    transport = httpx.ASGITransport(app=test_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def room_factory(session_factory):
    """Create a room with a host and extra players, optionally started."""
    from closeword.services import RoomService

    async def _create(
        host: str = "host-1",
        players: tuple[str, ...] = (),
        game_mode: str = "local",
        start: bool = False,
    ):
        async with session_factory() as db:
            service = RoomService(db)
            room = await service.create_room(host, f"Nick {host}", game_mode)
            for user_id in players:
                await service.join_room(room.room_id, user_id, f"Nick {user_id}")
            if start:
                room = await service.start_game(room.room_id, host)
            return room

    return _create


@pytest.fixture
def seed_words():
    """Seeded dictionary words with their embeddings, in rank order against ``sol``."""
    return list(SEED_WORDS)
