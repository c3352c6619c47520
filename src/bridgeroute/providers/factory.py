"""Factory for creating market data providers and the routing engine.

Creates real providers unless dry-run mode is enabled, in which case every
source is backed by a shared ``SimulatedMarket``.
"""

import logging
from typing import Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bridgeroute.cache import CacheCoalescer
from bridgeroute.config import Settings, get_settings
from bridgeroute.engine import RoutingEngine
from bridgeroute.providers.aggregators import (
    CoinGeckoProvider,
    CryptoCompareProvider,
    FxDerivedPriceProvider,
)
from bridgeroute.providers.fx import ErApiFxProvider, FrankfurterFxProvider
from bridgeroute.providers.global_venues import BinanceProvider, BybitProvider, OkxProvider
from bridgeroute.providers.korea import BithumbProvider, CoinoneProvider, UpbitProvider
from bridgeroute.providers.regional import BitflyerProvider, WazirxProvider
from bridgeroute.providers.simulated import (
    SimulatedFxProvider,
    SimulatedMarket,
    SimulatedPriceProvider,
    SimulatedWithdrawalStatusProvider,
)
from bridgeroute.sources.base import (
    FxProvider,
    OrderbookProvider,
    PriceProvider,
    WithdrawalStatusProvider,
)
from bridgeroute.sources.fees import RepositoryFeeSource
from bridgeroute.sources.fx import FxSource
from bridgeroute.sources.orderbooks import OrderbookSource
from bridgeroute.sources.prices import PriceSource
from bridgeroute.sources.snapshots import RepositorySnapshotStore
from bridgeroute.sources.withdrawals import LiveWithdrawalStatusSource, RepositoryWithdrawalStatusSource
from bridgeroute.storage.database import get_session_factory

logger = logging.getLogger(__name__)


def create_venue_providers(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list:
    """Direct venue APIs, in chain order.

    Each provider serves prices and usually orderbooks for its own venue.
    """
    settings = settings or get_settings()
    return [
        BinanceProvider(settings, transport),
        OkxProvider(settings, transport),
        BybitProvider(settings, transport),
        BithumbProvider(settings, transport),
        UpbitProvider(settings, transport),
        CoinoneProvider(settings, transport),
        BitflyerProvider(settings, transport),
        WazirxProvider(settings, transport),
    ]


def create_price_providers(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    venue_providers: Optional[list] = None,
) -> list[PriceProvider]:
    """Venue APIs first, then market-wide USD aggregators for global venues.

    The FX-derived provider for regional venues needs a built PriceSource and
    is appended by ``create_routing_engine``.
    """
    settings = settings or get_settings()
    venue_providers = venue_providers if venue_providers is not None else create_venue_providers(settings, transport)
    providers: list[PriceProvider] = [p for p in venue_providers if isinstance(p, PriceProvider)]
    providers.append(CryptoCompareProvider(settings, transport))
    providers.append(CoinGeckoProvider(settings, transport))
    return providers


def create_orderbook_providers(venue_providers: list) -> list[OrderbookProvider]:
    return [p for p in venue_providers if isinstance(p, OrderbookProvider)]


def create_withdrawal_status_providers(venue_providers: list) -> list[WithdrawalStatusProvider]:
    return [p for p in venue_providers if isinstance(p, WithdrawalStatusProvider)]


def create_fx_providers(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> list[FxProvider]:
    """Primary FX feed first, secondary after."""
    settings = settings or get_settings()
    return [ErApiFxProvider(settings, transport), FrankfurterFxProvider(settings, transport)]


def create_routing_engine(
    settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    market: Optional[SimulatedMarket] = None,
) -> RoutingEngine:
    """Create a routing engine with configured providers.

    Args:
        settings: Settings to use (defaults to the cached environment settings)
        session_factory: Database sessions for fees, suspensions and snapshots
        transport: Optional httpx transport shared by every HTTP provider
        market: Simulated market to use in dry-run mode

    Returns:
        Configured RoutingEngine
    """
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()
    cache = CacheCoalescer()
    snapshots = RepositorySnapshotStore(session_factory)

    if settings.dry_run:
        market = market or SimulatedMarket()
        simulated = SimulatedPriceProvider(market)
        price_providers: list[PriceProvider] = [simulated]
        orderbook_providers: list[OrderbookProvider] = [simulated]
        fx_providers: list[FxProvider] = [SimulatedFxProvider(market)]
        status_providers: list[WithdrawalStatusProvider] = [SimulatedWithdrawalStatusProvider(market)]
        logger.info("Dry-run mode: using simulated market providers")
    else:
        venue_providers = create_venue_providers(settings, transport)
        price_providers = create_price_providers(settings, transport, venue_providers)
        orderbook_providers = create_orderbook_providers(venue_providers)
        fx_providers = create_fx_providers(settings, transport)
        status_providers = create_withdrawal_status_providers(venue_providers)

    prices = PriceSource(cache, price_providers, snapshots, settings)
    fx = FxSource(cache, fx_providers, snapshots, settings)
    if not settings.dry_run:
        prices.providers.append(FxDerivedPriceProvider(prices, fx))

    persisted = RepositoryWithdrawalStatusSource(cache, session_factory, settings)
    engine = RoutingEngine(
        prices=prices,
        fx=fx,
        orderbooks=OrderbookSource(cache, orderbook_providers, settings),
        fees=RepositoryFeeSource(cache, session_factory, settings),
        withdrawals=LiveWithdrawalStatusSource(cache, status_providers, persisted, settings),
        cache=cache,
        settings=settings,
    )
    logger.info(
        f"Created routing engine with {len(prices.providers)} price, "
        f"{len(orderbook_providers)} orderbook and {len(fx_providers)} FX provider(s)"
    )
    return engine
