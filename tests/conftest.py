import pytest
from datetime import timedelta
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

from httpx import AsyncClient, ASGITransport
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base
from app.api.deps import get_db, get_swush_client  # Import from where routes actually use it
from app.models import Game, SportType
from app.utils.timestamps import utcnow


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Note: Using pytest-asyncio's built-in event_loop fixture (asyncio_mode = auto)


@pytest.fixture(scope="function")
async def test_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's implicit transactions break SAVEPOINT; let SQLAlchemy emit BEGIN itself
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_swush_client():
    """SWUSH client stand-in for API tests; no network, no budget table."""
    client = MagicMock()
    client.budget = MagicMock()
    client.budget.cap = 90
    client.budget.get_used = AsyncMock(return_value=12)
    client.budget.get_remaining = AsyncMock(return_value=78)
    client.get_remaining_budget = AsyncMock(return_value=78)
    return client


@pytest.fixture(scope="function")
async def client(test_session, mock_swush_client) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with overridden database and SWUSH dependencies."""

    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_swush_client] = lambda: mock_swush_client

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Data Fixtures ---

@pytest.fixture
async def sample_game(test_session) -> Game:
    """Create an active game that has never been synced."""
    game = Game(
        id=1,
        game_key="allsvenskan-2026",
        name="Allsvenskan Manager 2026",
        sport_type=SportType.FOOTBALL,
        subsite_key="aftonbladet",
        is_active=True,
        sync_interval_minutes=30,
    )
    test_session.add(game)
    await test_session.commit()
    await test_session.refresh(game)
    return game


@pytest.fixture
async def sample_games(test_session) -> list[Game]:
    """Three games: two active (one recently synced), one inactive."""
    now = utcnow()
    games = [
        Game(
            id=1,
            game_key="allsvenskan-2026",
            name="Allsvenskan Manager 2026",
            sport_type=SportType.FOOTBALL,
            is_active=True,
            sync_interval_minutes=30,
            last_synced_at=now - timedelta(minutes=45),
        ),
        Game(
            id=2,
            game_key="shl-2026",
            name="SHL Manager 2026",
            sport_type=SportType.HOCKEY,
            is_active=True,
            sync_interval_minutes=30,
            last_synced_at=now - timedelta(minutes=10),
        ),
        Game(
            id=3,
            game_key="f1-2025",
            name="F1 Manager 2025",
            sport_type=SportType.F1,
            is_active=False,
            sync_interval_minutes=60,
        ),
    ]
    test_session.add_all(games)
    await test_session.commit()
    return games
