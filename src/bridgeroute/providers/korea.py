"""Korean KRW venues: Bithumb, Upbit and Coinone."""

import logging
from typing import Optional, Sequence

import httpx

from bridgeroute.config import Settings, get_settings
from bridgeroute.models import OrderbookSnapshot
from bridgeroute.providers.http import HttpProvider, UpstreamFormatError, parse_float, parse_levels
from bridgeroute.sources.base import OrderbookProvider, PriceProvider, WithdrawalStatusProvider
from bridgeroute.sources.prices import now_ms

logger = logging.getLogger(__name__)

BITHUMB_OK = "0000"


class BithumbProvider(HttpProvider, PriceProvider, OrderbookProvider, WithdrawalStatusProvider):
    """Bithumb public API: KRW tickers, orderbooks and asset withdrawal status."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.bithumb_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "bithumb"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"bithumb"})

    @staticmethod
    def _data(payload: object) -> dict:
        if not isinstance(payload, dict) or payload.get("status") != BITHUMB_OK or not isinstance(payload.get("data"), dict):
            raise UpstreamFormatError("Bithumb: invalid response")
        return payload["data"]

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        data = self._data(await self._get_json("/public/ticker/ALL_KRW"))
        prices: dict[str, float] = {}
        for asset in assets:
            row = data.get(asset.upper())
            if not isinstance(row, dict):
                continue
            price = parse_float(row.get("closing_price"))
            if price and price > 0:
                prices[asset.upper()] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        payload = await self._get_json(f"/public/orderbook/{asset.upper()}_KRW")
        if isinstance(payload, dict) and payload.get("status") not in (None, BITHUMB_OK):
            # Unknown pair: Bithumb answers 200 with an error status
            logger.debug(f"Bithumb has no orderbook for {asset}: {payload.get('status')}")
            return None
        data = self._data(payload)
        return OrderbookSnapshot.from_levels(
            venue,
            asset,
            parse_levels(data.get("bids"), "price", "quantity"),
            parse_levels(data.get("asks"), "price", "quantity"),
            now_ms(),
            self.name,
        )

    async def fetch_statuses(self, venue: str) -> dict[str, bool]:
        """Withdrawal is open only when ``withdrawal_status`` is exactly 1."""
        data = self._data(await self._get_json("/public/assetsstatus/ALL"))
        statuses: dict[str, bool] = {}
        for coin, row in data.items():
            if not isinstance(row, dict) or not coin.strip():
                continue
            status = parse_float(row.get("withdrawal_status"))
            statuses[coin.strip().upper()] = status != 1
        return statuses


class UpbitProvider(HttpProvider, PriceProvider, OrderbookProvider):
    """Upbit v1 API for KRW markets."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.upbit_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "upbit"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"upbit"})

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        markets = ",".join(f"KRW-{a.upper()}" for a in assets)
        data = await self._get_json("/v1/ticker", {"markets": markets})
        if not isinstance(data, list):
            raise UpstreamFormatError("Upbit ticker: expected a list")

        prices: dict[str, float] = {}
        for row in data:
            if not isinstance(row, dict):
                continue
            market = str(row.get("market", ""))
            price = parse_float(row.get("trade_price"))
            if market.startswith("KRW-") and price and price > 0:
                prices[market[4:].upper()] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        data = await self._get_json("/v1/orderbook", {"markets": f"KRW-{asset.upper()}"})
        if not isinstance(data, list) or not data or not isinstance(data[0], dict):
            raise UpstreamFormatError("Upbit orderbook: invalid response")
        units = data[0].get("orderbook_units") or []
        return OrderbookSnapshot.from_levels(
            venue,
            asset,
            parse_levels(units, "bid_price", "bid_size"),
            parse_levels(units, "ask_price", "ask_size"),
            now_ms(),
            self.name,
        )


class CoinoneProvider(HttpProvider, PriceProvider, OrderbookProvider):
    """Coinone public v2 API."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.coinone_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "coinone"

    @property
    def venues(self) -> frozenset[str]:
        return frozenset({"coinone"})

    @staticmethod
    def _checked(data: object) -> dict:
        if not isinstance(data, dict) or data.get("result") != "success":
            raise UpstreamFormatError("Coinone: invalid response")
        return data

    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        wanted = {a.upper() for a in assets}
        data = self._checked(await self._get_json("/public/v2/ticker_new/KRW"))
        prices: dict[str, float] = {}
        for row in data.get("tickers") or []:
            if not isinstance(row, dict):
                continue
            asset = str(row.get("target_currency", "")).upper()
            price = parse_float(row.get("last"))
            if asset in wanted and price and price > 0:
                prices[asset] = price
        return prices

    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        data = self._checked(await self._get_json(f"/public/v2/orderbook/KRW/{asset.upper()}"))
        return OrderbookSnapshot.from_levels(
            venue,
            asset,
            parse_levels(data.get("bids"), "price", "qty"),
            parse_levels(data.get("asks"), "price", "qty"),
            now_ms(),
            self.name,
        )
