"""Shared httpx plumbing for REST market data adapters."""

import logging
from typing import Any, Optional

import httpx

from bridgeroute.config import Settings, get_settings

logger = logging.getLogger(__name__)


class UpstreamFormatError(ValueError):
    """An upstream response parsed as JSON but did not have the expected shape."""


class HttpProvider:
    """Mixin giving an adapter a configured ``httpx.AsyncClient``.

    Every adapter sends the same User-Agent and uses the configured per-request
    timeout. ``transport`` is forwarded to httpx so tests can answer requests
    with ``httpx.MockTransport``.
    """

    def __init__(
        self,
        base_url: str,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = settings or get_settings()
        self.base_url = base_url.rstrip("/")
        self.transport = transport

    def _client(self, base_url: Optional[str] = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=(base_url or self.base_url),
            timeout=self.settings.provider_timeout_seconds,
            headers={"User-Agent": self.settings.user_agent, "Accept": "application/json"},
            transport=self.transport,
        )

    async def _get_json(
        self,
        path: str,
        params: Optional[dict[str, Any]] = None,
        base_url: Optional[str] = None,
    ) -> Any:
        """GET ``path`` and decode JSON.

        Raises:
            httpx.HTTPError: Transport failure or non-2xx status
        """
        async with self._client(base_url) as client:
            response = await client.get(path, params=params)
            if response.status_code != 200:
                logger.debug(f"{path} returned {response.status_code}")
            response.raise_for_status()
            return response.json()


def parse_float(raw: Any) -> Optional[float]:
    """Parse a numeric field the way exchanges send them (str or number)."""
    if isinstance(raw, bool):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def parse_levels(rows: Any, price_key: Any = 0, qty_key: Any = 1) -> list[tuple[float, float]]:
    """Parse orderbook rows given as lists or dicts, dropping malformed ones."""
    levels: list[tuple[float, float]] = []
    if not isinstance(rows, list):
        return levels
    for row in rows:
        try:
            price = parse_float(row[price_key])
            qty = parse_float(row[qty_key])
        except (KeyError, IndexError, TypeError):
            continue
        if price is None or qty is None:
            continue
        levels.append((price, qty))
    return levels
