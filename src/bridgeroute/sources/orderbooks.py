"""Orderbook source. An absent book is a normal outcome, never an error."""

import logging
from typing import Optional, Sequence

from bridgeroute.cache import CacheCoalescer
from bridgeroute.config import Settings, get_settings
from bridgeroute.errors import UpstreamUnavailable
from bridgeroute.models import Freshness, OrderbookSnapshot, Sourced
from bridgeroute.sources.base import FallbackChain, OrderbookProvider, freshness_of

logger = logging.getLogger(__name__)


class OrderbookSource:
    """Orderbooks per (venue, asset) through the provider chain and coalescer.

    Returns ``Sourced(None, ...)`` when no provider covers the venue or every
    provider failed with nothing cached. Callers treat that as unknown
    liquidity.
    """

    def __init__(
        self,
        cache: CacheCoalescer,
        providers: Sequence[OrderbookProvider],
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self.providers = list(providers)
        self.settings = settings or get_settings()

    async def get_orderbook(self, venue: str, asset: str) -> Sourced[Optional[OrderbookSnapshot]]:
        venue = venue.lower()
        asset = asset.upper()
        providers = [p for p in self.providers if p.supports_venue(venue)]
        if not providers:
            return Sourced(None, "none", Freshness.LIVE, 0, (f"No orderbook provider for {venue}",))

        chain = FallbackChain(f"orderbook:{venue}:{asset}", providers, self.settings.provider_timeout_seconds)

        async def fetch() -> OrderbookSnapshot:
            result = await chain.fetch(lambda p: p.fetch_orderbook(venue, asset))
            return result.value

        try:
            hit = await self.cache.get(
                f"orderbook:{venue}:{asset}",
                fetch,
                self.settings.orderbook_success_ttl,
                self.settings.orderbook_failure_ttl,
            )
        except UpstreamUnavailable as e:
            logger.info(f"No orderbook for {venue}:{asset}, liquidity unknown")
            return Sourced(None, "none", Freshness.LIVE, 0, (f"Orderbook unavailable for {asset} at {venue}: {e.detail}",))

        book: OrderbookSnapshot = hit.value
        warnings: tuple[str, ...] = ()
        if hit.stale:
            warnings = (f"Orderbook for {asset} at {venue} is stale (age {hit.age_ms // 1000}s)",)
        return Sourced(book, book.source, freshness_of(hit.from_cache, hit.stale), hit.age_ms, warnings)
