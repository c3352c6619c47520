"""Pytest configuration and fixtures."""

import asyncio
import os
from typing import AsyncGenerator, Optional, Sequence

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Set test environment
os.environ["BRIDGEROUTE_ENVIRONMENT"] = "test"
os.environ["BRIDGEROUTE_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["BRIDGEROUTE_DRY_RUN"] = "true"

from bridgeroute.cache import CacheCoalescer
from bridgeroute.config import Settings
from bridgeroute.models import OrderbookSnapshot
from bridgeroute.sources.base import (
    FxProvider,
    OrderbookProvider,
    PriceProvider,
    WithdrawalStatusProvider,
)
from bridgeroute.storage.models import Base
from bridgeroute.storage.repository import MarketDataRepository


class FakeClock:
    """Monotonic clock the tests advance by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    """Settings with short provider timeouts and no .env influence."""
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite+aiosqlite:///:memory:",
        dry_run=True,
        provider_timeout_seconds=0.5,
        probe_timeout_seconds=0.5,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheCoalescer:
    return CacheCoalescer(clock=clock)


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the in-memory engine."""
    return async_sessionmaker(
        bind=db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def market_repo(db_session: AsyncSession) -> MarketDataRepository:
    """Create market data repository for testing."""
    return MarketDataRepository(db_session)


def make_book(
    venue: str,
    asset: str,
    mid: float,
    qty: float,
    levels: int = 5,
    step: float = 0.001,
) -> OrderbookSnapshot:
    """Symmetric book with ``levels`` levels of ``qty`` spaced ``step`` apart."""
    bids = [(mid * (1 - step * (i + 1)), qty) for i in range(levels)]
    asks = [(mid * (1 + step * (i + 1)), qty) for i in range(levels)]
    return OrderbookSnapshot.from_levels(venue, asset, bids, asks, 0, "test")


class StubPriceProvider(PriceProvider):
    """Price provider returning a fixed board, or raising ``error``."""

    def __init__(self, name: str, venues, prices=None, error: Optional[Exception] = None, delay: float = 0.0):
        self._name = name
        self._venues = frozenset(venues)
        self.prices = dict(prices or {})
        self.error = error
        self.delay = delay
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def venues(self) -> frozenset[str]:
        return self._venues

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        board = self.prices.get(venue, self.prices)
        return {a: p for a, p in board.items() if a in assets}


class StubOrderbookProvider(OrderbookProvider):
    """Orderbook provider serving prepared books keyed by (venue, asset)."""

    def __init__(self, name: str, books: dict, error: Optional[Exception] = None):
        self._name = name
        self.books = dict(books)
        self.error = error

    @property
    def name(self) -> str:
        return self._name

    @property
    def venues(self) -> frozenset[str]:
        return frozenset(v for v, _ in self.books)

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        if self.error is not None:
            raise self.error
        return self.books.get((venue, asset))


class StubFxProvider(FxProvider):
    """FX provider returning fixed USD rates, or raising ``error``."""

    def __init__(self, name: str, rates=None, error: Optional[Exception] = None):
        self._name = name
        self.rates = dict(rates or {})
        self.error = error
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def fetch_rates(self, currencies: Sequence[str]) -> dict[str, float]:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {c: r for c, r in self.rates.items() if c in currencies}


class StubStatusProvider(WithdrawalStatusProvider):
    """Withdrawal status provider with a fixed response per venue."""

    def __init__(self, name: str, statuses: dict, error: Optional[Exception] = None):
        self._name = name
        self.statuses = dict(statuses)
        self.error = error

    @property
    def name(self) -> str:
        return self._name

    @property
    def venues(self) -> frozenset[str]:
        return frozenset(self.statuses)

    async def fetch_statuses(self, venue: str) -> dict[str, bool]:
        if self.error is not None:
            raise self.error
        return dict(self.statuses[venue])
