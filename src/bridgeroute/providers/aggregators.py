"""Market-wide USD price feeds and the FX-derived regional fallback."""

import logging
from typing import Mapping, Optional, Sequence

import httpx

from bridgeroute.catalog import VENUES, VenueGroup, VenueSpec
from bridgeroute.config import Settings, get_settings
from bridgeroute.providers.http import HttpProvider, UpstreamFormatError, parse_float
from bridgeroute.models import Freshness
from bridgeroute.sources.base import DerivedPrices, PriceProvider
from bridgeroute.sources.fx import FxSource
from bridgeroute.sources.prices import PriceSource

logger = logging.getLogger(__name__)

COINGECKO_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "XRP": "ripple",
    "KAIA": "kaia",
    "SOL": "solana",
    "DOGE": "dogecoin",
    "ADA": "cardano",
    "DOT": "polkadot",
    "LINK": "chainlink",
    "AVAX": "avalanche-2",
    "TRX": "tron",
}


def global_venue_ids(venues: Mapping[str, VenueSpec] = VENUES) -> frozenset[str]:
    return frozenset(v.id for v in venues.values() if v.group == VenueGroup.GLOBAL)


class CryptoCompareProvider(HttpProvider, PriceProvider):
    """CryptoCompare ``pricemulti`` (no key). Stands in for any global USD venue."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        venues: Optional[frozenset[str]] = None,
    ):
        settings = settings or get_settings()
        super().__init__(settings.cryptocompare_base_url, settings, transport)
        self._venues = venues if venues is not None else global_venue_ids()

    @property
    def name(self) -> str:
        return "cryptocompare"

    @property
    def venues(self) -> frozenset[str]:
        return self._venues

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        symbols = [a.upper() for a in assets]
        data = await self._get_json("/data/pricemulti", {"fsyms": ",".join(symbols), "tsyms": "USD"})
        if not isinstance(data, dict):
            raise UpstreamFormatError("CryptoCompare: expected an object")
        if str(data.get("Response", "")).lower() == "error":
            raise UpstreamFormatError(f"CryptoCompare error: {data.get('Message', 'unknown')}")

        prices: dict[str, float] = {}
        for symbol in symbols:
            row = data.get(symbol)
            price = parse_float(row.get("USD")) if isinstance(row, dict) else None
            if price and price > 0:
                prices[symbol] = price
        return prices


class CoinGeckoProvider(HttpProvider, PriceProvider):
    """CoinGecko ``simple/price`` in USD."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        venues: Optional[frozenset[str]] = None,
    ):
        settings = settings or get_settings()
        super().__init__(settings.coingecko_base_url, settings, transport)
        self._venues = venues if venues is not None else global_venue_ids()

    @property
    def name(self) -> str:
        return "coingecko"

    @property
    def venues(self) -> frozenset[str]:
        return self._venues

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        ids = {COINGECKO_IDS[a.upper()]: a.upper() for a in assets if a.upper() in COINGECKO_IDS}
        if not ids:
            return {}
        data = await self._get_json("/api/v3/simple/price", {"ids": ",".join(ids), "vs_currencies": "usd"})
        if not isinstance(data, dict):
            raise UpstreamFormatError("CoinGecko: expected an object")

        prices: dict[str, float] = {}
        for coin_id, symbol in ids.items():
            row = data.get(coin_id)
            price = parse_float(row.get("usd")) if isinstance(row, dict) else None
            if price and price > 0:
                prices[symbol] = price
        return prices


class FxDerivedPriceProvider(PriceProvider):
    """Estimate a local-currency board from a global USD board and the FX rate.

    Last provider in a regional venue's chain: it ignores any local premium,
    so it is only an approximation of the venue's real price.
    """

    def __init__(
        self,
        prices: PriceSource,
        fx: FxSource,
        reference_venue: str = "binance",
        venues: Optional[Mapping[str, VenueSpec]] = None,
    ):
        self.prices = prices
        self.fx = fx
        self.reference_venue = reference_venue
        self._specs = dict(venues or VENUES)

    @property
    def name(self) -> str:
        return f"fx-derived:{self.reference_venue}"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset(v.id for v in self._specs.values() if v.group != VenueGroup.GLOBAL)

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> DerivedPrices:
        spec = self._specs[venue.lower()]
        board = await self.prices.get_board(self.reference_venue)
        rate = await self.fx.get_usd_rate(spec.quote_currency)
        logger.debug(
            f"Deriving {venue} prices from {board.source} at USD/{spec.quote_currency}={rate.value.rate}"
        )
        wanted = {a.upper() for a in assets}
        prices = {
            asset: price * rate.value.rate
            for asset, price in board.value.prices.items()
            if asset in wanted
        }
        return DerivedPrices(
            prices,
            Freshness.worst([board.freshness, rate.freshness]),
            board.warnings + rate.warnings,
        )
