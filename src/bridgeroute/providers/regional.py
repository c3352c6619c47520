"""Regional fiat venues: bitFlyer (JPY) and WazirX (INR)."""

import logging
from typing import Optional, Sequence

import httpx

from bridgeroute.config import Settings, get_settings
from bridgeroute.models import OrderbookSnapshot
from bridgeroute.providers.http import HttpProvider, UpstreamFormatError, parse_float, parse_levels
from bridgeroute.sources.base import OrderbookProvider, PriceProvider
from bridgeroute.sources.prices import now_ms

logger = logging.getLogger(__name__)

# bitFlyer lists few spot JPY products
BITFLYER_PRODUCTS = {"BTC": "BTC_JPY", "ETH": "ETH_JPY", "XRP": "XRP_JPY"}


class BitflyerProvider(HttpProvider, PriceProvider, OrderbookProvider):
    """bitFlyer Lightning public API, one ticker request per product."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.bitflyer_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "bitflyer"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"bitflyer"})

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        prices: dict[str, float] = {}
        async with self._client() as client:
            for asset in assets:
                product = BITFLYER_PRODUCTS.get(asset.upper())
                if product is None:
                    continue
                try:
                    response = await client.get("/v1/getticker", params={"product_code": product})
                    response.raise_for_status()
                    data = response.json()
                except (httpx.HTTPError, ValueError) as e:
                    logger.debug(f"bitFlyer ticker {product} failed: {e}")
                    continue
                price = parse_float(data.get("ltp")) if isinstance(data, dict) else None
                if price and price > 0:
                    prices[asset.upper()] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        product = BITFLYER_PRODUCTS.get(asset.upper())
        if product is None:
            return None
        data = await self._get_json("/v1/getboard", {"product_code": product})
        if not isinstance(data, dict):
            raise UpstreamFormatError("bitFlyer board: expected an object")
        return OrderbookSnapshot.from_levels(
            venue,
            asset,
            parse_levels(data.get("bids"), "price", "size"),
            parse_levels(data.get("asks"), "price", "size"),
            now_ms(),
            self.name,
        )


class WazirxProvider(HttpProvider, PriceProvider):
    """WazirX INR tickers (all markets in one call)."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.wazirx_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "wazirx"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"wazirx"})

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        data = await self._get_json("/api/v2/tickers")
        if not isinstance(data, dict):
            raise UpstreamFormatError("WazirX tickers: expected an object")

        tickers = {market.strip().lower(): row for market, row in data.items() if isinstance(row, dict)}
        prices: dict[str, float] = {}
        for asset in assets:
            row = tickers.get(f"{asset.lower()}inr")
            price = parse_float(row.get("last")) if row else None
            if price and price > 0:
                prices[asset.upper()] = price
        return prices
