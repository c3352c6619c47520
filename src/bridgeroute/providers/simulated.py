"""Simulated market for dry-run mode and tests.

Prices, FX rates and orderbooks are generated from fixed tables so that a
dry run is reproducible. Nothing here touches the network.
"""

import random
from typing import Iterable, Mapping, Optional, Sequence

from bridgeroute.catalog import VENUES, VenueSpec, usd_rate_currency
from bridgeroute.models import OrderbookSnapshot
from bridgeroute.sources.base import (
    FxProvider,
    OrderbookProvider,
    PriceProvider,
    WithdrawalStatusProvider,
)
from bridgeroute.sources.prices import now_ms

# Simulated market prices in USD (approximate values)
# These are for demonstration purposes only and should not be used for real trading
SIMULATED_PRICES: dict[str, float] = {
    "BTC": 100000.00,
    "ETH": 3900.00,
    "XRP": 2.35,
    "SOL": 225.00,
    "TRX": 0.27,
    "KAIA": 0.18,
    "ADA": 1.05,
    "DOGE": 0.42,
    "AVAX": 52.00,
    "DOT": 9.50,
    "LINK": 28.00,
}

SIMULATED_FX_RATES: dict[str, float] = {
    "KRW": 1450.0,
    "JPY": 150.0,
    "INR": 85.0,
    "IDR": 16200.0,
    "THB": 36.0,
}

# Local premium over the global USD price, in percent
SIMULATED_PREMIUMS: dict[str, float] = {
    "bithumb": 1.2,
    "upbit": 1.0,
    "coinone": 1.3,
    "gopax": 1.5,
    "bitflyer": 0.4,
    "wazirx": 2.0,
}


class SimulatedMarket:
    """Shared price table behind the simulated providers."""

    def __init__(
        self,
        prices: Optional[Mapping[str, float]] = None,
        fx_rates: Optional[Mapping[str, float]] = None,
        premiums: Optional[Mapping[str, float]] = None,
        venues: Optional[Mapping[str, VenueSpec]] = None,
        add_random_variance: bool = False,
    ):
        self._prices = dict(prices or SIMULATED_PRICES)
        self._fx = dict(fx_rates or SIMULATED_FX_RATES)
        self._premiums = dict(SIMULATED_PREMIUMS if premiums is None else premiums)
        self.venues = dict(venues or VENUES)
        self.add_random_variance = add_random_variance

    @property
    def assets(self) -> list[str]:
        return list(self._prices)

    def get_price(self, asset: str) -> Optional[float]:
        """Get simulated USD price for an asset."""
        return self._prices.get(asset.upper())

    def fx_rate(self, currency: str) -> Optional[float]:
        target = usd_rate_currency(currency)
        return 1.0 if target is None else self._fx.get(target)

    def local_price(self, venue: str, asset: str) -> Optional[float]:
        spec = self.venues.get(venue.lower())
        usd = self.get_price(asset)
        if spec is None or usd is None:
            return None
        rate = self.fx_rate(spec.quote_currency)
        if rate is None:
            return None
        price = usd * rate * (1 + self._premiums.get(spec.id, 0.0) / 100)
        if self.add_random_variance:
            price *= 1 + random.uniform(-0.001, 0.001)
        return price


class SimulatedPriceProvider(PriceProvider, OrderbookProvider):
    """Prices and evenly spaced books for every catalog venue."""

    def __init__(self, market: SimulatedMarket, depth_levels: int = 10, level_value_usd: float = 50000.0):
        self.market = market
        self.depth_levels = depth_levels
        self.level_value_usd = level_value_usd

    @property
    def name(self) -> str:
        return "simulated"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset(self.market.venues)

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        prices: dict[str, float] = {}
        for asset in assets:
            price = self.market.local_price(venue, asset)
            if price is not None:
                prices[asset.upper()] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        mid = self.market.local_price(venue, asset)
        usd = self.market.get_price(asset)
        if mid is None or not usd:
            return None
        # Constant USD value per level, 5 bps apart
        qty = self.level_value_usd / usd
        bids = [(mid * (1 - 0.0005 * (i + 1)), qty) for i in range(self.depth_levels)]
        asks = [(mid * (1 + 0.0005 * (i + 1)), qty) for i in range(self.depth_levels)]
        return OrderbookSnapshot.from_levels(venue, asset, bids, asks, now_ms(), self.name)


class SimulatedFxProvider(FxProvider):
    def __init__(self, market: SimulatedMarket):
        self.market = market

    @property
    def name(self) -> str:
        return "simulated-fx"

    async def fetch_rates(self, currencies: Sequence[str]) -> dict[str, float]:
        rates: dict[str, float] = {}
        for currency in currencies:
            rate = self.market.fx_rate(currency)
            if rate is not None:
                rates[currency.upper()] = rate
        return rates


class SimulatedWithdrawalStatusProvider(WithdrawalStatusProvider):
    """Reports every listed asset open except the configured suspensions."""

    def __init__(self, market: SimulatedMarket, suspended: Iterable[tuple[str, str]] = ()):
        self.market = market
        self._suspended = {(v.lower(), a.upper()) for v, a in suspended}

    @property
    def name(self) -> str:
        return "simulated-status"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset(self.market.venues)

    async def fetch_statuses(self, venue: str) -> dict[str, bool]:
        venue = venue.lower()
        return {asset: (venue, asset) in self._suspended for asset in self.market.assets}
