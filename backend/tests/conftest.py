"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from finsight.core.database import Base, get_db
from finsight.main import app
from finsight.models.price_snapshot import PriceSnapshot
from finsight.services.market_data import MarketDataProviderFactory
from finsight.services.market_data.base_provider import QuoteData, RecommendationTrend
from finsight.utils.datetime_utils import utc_now

# Test database URL: StaticPool so in-memory SQLite shares one connection
# (NullPool creates a new connection per call, losing all tables each time)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign keys for SQLite."""
    if hasattr(dbapi_conn, "execute"):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    import finsight.models  # noqa: F401  registers every table on Base.metadata

    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def db(db_session: AsyncSession) -> AsyncSession:
    """Alias for db_session to match test function signatures."""
    return db_session


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine, for code that opens its own sessions."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
def reset_provider_factory():
    """Never leak a cached provider between tests."""
    MarketDataProviderFactory.reset()
    yield
    MarketDataProviderFactory.reset()


@pytest.fixture
def mock_quote():
    return QuoteData(
        symbol="AAPL",
        price=Decimal("150.25"),
        name="Apple Inc.",
        change_percent=Decimal("1.25"),
    )


@pytest.fixture
def mock_trend():
    return RecommendationTrend(
        symbol="AAPL",
        period="0m",
        strong_buy=10,
        buy=20,
        hold=8,
        sell=1,
        strong_sell=1,
    )


@pytest.fixture
def mock_provider(mock_quote, mock_trend):
    """Create mock market data provider."""
    provider = Mock()
    provider.get_quote = AsyncMock(return_value=mock_quote)
    provider.get_recommendation = AsyncMock(return_value=mock_trend)
    provider.get_market_list = AsyncMock(return_value=[])
    provider.get_provider_name.return_value = "Mock Provider"
    provider.get_rate_limits.return_value = {"calls_per_minute": 0}
    return provider


@pytest.fixture
def use_mock_provider(mock_provider):
    """Make the factory hand out ``mock_provider`` as the configured default."""
    MarketDataProviderFactory._instance = mock_provider
    return mock_provider


@pytest.fixture
def add_price(db_session: AsyncSession):
    """Insert a cached price snapshot."""

    async def _add_price(
        symbol: str,
        price: str,
        last_refreshed: datetime = None,
        change_percent: str = None,
    ) -> PriceSnapshot:
        snapshot = PriceSnapshot(
            symbol=symbol,
            price=Decimal(price),
            change_percent=Decimal(change_percent) if change_percent else None,
            last_refreshed=last_refreshed or utc_now() - timedelta(minutes=5),
        )
        db_session.add(snapshot)
        await db_session.commit()
        return snapshot

    return _add_price


@pytest.fixture(scope="function")
def override_get_db(db_session: AsyncSession):
    """Override the get_db dependency."""

    async def _override_get_db():
        yield db_session

    return _override_get_db


@pytest_asyncio.fixture(scope="function")
async def async_client(override_get_db) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac
    app.dependency_overrides.clear()
