"""Global USDT-quoted venues: Binance, OKX and Bybit.

Prices are taken from the ``<ASSET>USDT`` spot markets and reported in the
venue quote currency (USD-pegged, converted 1:1).
"""

import json
import logging
from typing import Optional, Sequence

import httpx

from bridgeroute.config import Settings, get_settings
from bridgeroute.models import OrderbookSnapshot
from bridgeroute.providers.http import HttpProvider, UpstreamFormatError, parse_float, parse_levels
from bridgeroute.sources.base import OrderbookProvider, PriceProvider
from bridgeroute.sources.prices import now_ms

logger = logging.getLogger(__name__)

QUOTE_SUFFIX = "USDT"
BOOK_DEPTH = 50


def usdt_symbol(asset: str) -> str:
    return f"{asset.upper()}{QUOTE_SUFFIX}"


class BinanceProvider(HttpProvider, PriceProvider, OrderbookProvider):
    """Binance spot API, trying each configured host in order."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_urls: Optional[Sequence[str]] = None,
    ):
        settings = settings or get_settings()
        self.base_urls = [u.rstrip("/") for u in (base_urls or settings.binance_base_urls)]
        super().__init__(self.base_urls[0], settings, transport)

    @property
    def name(self) -> str:
        return "binance"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"binance"})

    async def _get_any_host(self, path: str, params: dict) -> object:
        last_error: Optional[Exception] = None
        for base_url in self.base_urls:
            try:
                return await self._get_json(path, params=params, base_url=base_url)
            except (httpx.HTTPError, ValueError) as e:
                logger.debug(f"Binance host {base_url} failed: {e}")
                last_error = e
        raise UpstreamFormatError(f"all Binance hosts failed: {last_error}")

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        symbols = [usdt_symbol(a) for a in assets]
        data = await self._get_any_host(
            "/api/v3/ticker/price", {"symbols": json.dumps(symbols, separators=(",", ":"))}
        )
        if not isinstance(data, list):
            raise UpstreamFormatError("Binance price feed: expected a list")

        prices: dict[str, float] = {}
        for row in data:
            if not isinstance(row, dict):
                continue
            symbol = str(row.get("symbol", "")).strip().upper()
            price = parse_float(row.get("price"))
            if symbol.endswith(QUOTE_SUFFIX) and price and price > 0:
                prices[symbol[: -len(QUOTE_SUFFIX)]] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        data = await self._get_any_host(
            "/api/v3/depth", {"symbol": usdt_symbol(asset), "limit": BOOK_DEPTH}
        )
        if not isinstance(data, dict):
            raise UpstreamFormatError("Binance depth: expected an object")
        return OrderbookSnapshot.from_levels(
            venue, asset, parse_levels(data.get("bids")), parse_levels(data.get("asks")), now_ms(), self.name
        )


class OkxProvider(HttpProvider, PriceProvider, OrderbookProvider):
    """OKX v5 market API."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.okx_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "okx"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"okx"})

    @staticmethod
    def _payload(data: object) -> list:
        if not isinstance(data, dict) or str(data.get("code")) != "0" or not isinstance(data.get("data"), list):
            raise UpstreamFormatError("OKX: invalid response")
        return data["data"]

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        wanted = {a.upper() for a in assets}
        rows = self._payload(await self._get_json("/api/v5/market/tickers", {"instType": "SPOT"}))
        prices: dict[str, float] = {}
        for row in rows:
            if not isinstance(row, dict):
                continue
            inst_id = str(row.get("instId", "")).strip().upper()
            base, _, quote = inst_id.partition("-")
            price = parse_float(row.get("last"))
            if quote == QUOTE_SUFFIX and base in wanted and price and price > 0:
                prices[base] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        rows = self._payload(
            await self._get_json(
                "/api/v5/market/books", {"instId": f"{asset.upper()}-{QUOTE_SUFFIX}", "sz": BOOK_DEPTH}
            )
        )
        if not rows or not isinstance(rows[0], dict):
            return None
        book = rows[0]
        return OrderbookSnapshot.from_levels(
            venue, asset, parse_levels(book.get("bids")), parse_levels(book.get("asks")), now_ms(), self.name
        )


class BybitProvider(HttpProvider, PriceProvider, OrderbookProvider):
    """Bybit v5 spot market API."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.bybit_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "bybit"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"bybit"})

    @staticmethod
    def _result(data: object) -> dict:
        if not isinstance(data, dict) or data.get("retCode") != 0 or not isinstance(data.get("result"), dict):
            raise UpstreamFormatError("Bybit: invalid response")
        return data["result"]

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        wanted = {usdt_symbol(a) for a in assets}
        result = self._result(await self._get_json("/v5/market/tickers", {"category": "spot"}))
        prices: dict[str, float] = {}
        for row in result.get("list") or []:
            if not isinstance(row, dict):
                continue
            symbol = str(row.get("symbol", "")).strip().upper()
            price = parse_float(row.get("lastPrice"))
            if symbol in wanted and price and price > 0:
                prices[symbol[: -len(QUOTE_SUFFIX)]] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        result = self._result(
            await self._get_json(
                "/v5/market/orderbook",
                {"category": "spot", "symbol": usdt_symbol(asset), "limit": BOOK_DEPTH},
            )
        )
        return OrderbookSnapshot.from_levels(
            venue, asset, parse_levels(result.get("b")), parse_levels(result.get("a")), now_ms(), self.name
        )
