"""Fiat FX adapters quoting units per one USD."""

import logging
from typing import Optional, Sequence

import httpx

from bridgeroute.config import Settings, get_settings
from bridgeroute.providers.http import HttpProvider, UpstreamFormatError, parse_float
from bridgeroute.sources.base import FxProvider

logger = logging.getLogger(__name__)


def _pick_rates(raw: object, currencies: Sequence[str]) -> dict[str, float]:
    if not isinstance(raw, dict):
        raise UpstreamFormatError("FX response has no rates object")
    rates: dict[str, float] = {}
    for currency in currencies:
        rate = parse_float(raw.get(currency.upper()))
        if rate is not None:
            rates[currency.upper()] = rate
    return rates


class ErApiFxProvider(HttpProvider, FxProvider):
    """open.er-api.com ``latest/USD``."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.er_api_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "open.er-api.com"

    async def fetch_rates(self, currencies: Sequence[str]) -> dict[str, float]:
        data = await self._get_json("/v6/latest/USD")
        if isinstance(data, dict) and data.get("result") not in (None, "success"):
            raise UpstreamFormatError(f"er-api error: {data.get('error-type', data.get('result'))}")
        return _pick_rates(data.get("rates") if isinstance(data, dict) else None, currencies)


class FrankfurterFxProvider(HttpProvider, FxProvider):
    """Frankfurter (ECB reference rates)."""

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        settings = settings or get_settings()
        super().__init__(settings.frankfurter_base_url, settings, transport)

    @property
    def name(self) -> str:
        return "frankfurter"

    async def fetch_rates(self, currencies: Sequence[str]) -> dict[str, float]:
        data = await self._get_json(
            "/latest", {"from": "USD", "to": ",".join(c.upper() for c in currencies)}
        )
        return _pick_rates(data.get("rates") if isinstance(data, dict) else None, currencies)
