"""Spot price source: provider chain, coalesced cache, snapshot last resort."""

import logging
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from bridgeroute.cache import CacheCoalescer
from bridgeroute.catalog import BRIDGE_ASSETS, VENUES, VenueSpec
from bridgeroute.config import Settings, get_settings
from bridgeroute.errors import UpstreamUnavailable
from bridgeroute.models import Freshness, PriceQuote, Sourced
from bridgeroute.sources.base import (
    DerivedPrices,
    FallbackChain,
    PriceProvider,
    clean_prices,
    freshness_of,
)
from bridgeroute.sources.snapshots import SnapshotStore

logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class PriceBoard:
    """All prices fetched for one venue in a single upstream call."""

    venue: str
    currency: str
    prices: dict[str, float]
    provider: str
    fetched_at_ms: int
    warnings: tuple[str, ...] = ()
    # Best freshness the board can claim; below LIVE when derived from older facts
    freshness_floor: Freshness = Freshness.LIVE


class PriceSource:
    """Spot prices per venue with an ordered provider fallback chain.

    A venue's whole board is fetched at once and cached under
    ``price:<venue>``. When every provider fails the coalescer re-serves the
    previous board as stale; when there is none, the snapshot store is
    consulted and its value is tagged as historical.
    """

    def __init__(
        self,
        cache: CacheCoalescer,
        providers: Sequence[PriceProvider],
        snapshots: Optional[SnapshotStore] = None,
        settings: Optional[Settings] = None,
        venues: Optional[Mapping[str, VenueSpec]] = None,
        assets: Sequence[str] = BRIDGE_ASSETS,
    ):
        self.cache = cache
        self.providers = list(providers)
        self.snapshots = snapshots
        self.settings = settings or get_settings()
        self.venues = dict(venues or VENUES)
        self.assets = tuple(a.upper() for a in assets)

    def chain_for(self, venue: str) -> FallbackChain[PriceProvider]:
        providers = [p for p in self.providers if p.supports_venue(venue)]
        return FallbackChain(f"prices:{venue}", providers, self.settings.provider_timeout_seconds)

    def quote_currency(self, venue: str) -> str:
        spec = self.venues.get(venue.lower())
        return spec.quote_currency if spec else "USD"

    async def get_board(self, venue: str) -> Sourced[PriceBoard]:
        """Fetch (or reuse) the venue's price board.

        Raises:
            UpstreamUnavailable: Chain failed and nothing was cached
        """
        venue = venue.lower()
        chain = self.chain_for(venue)

        async def fetch() -> PriceBoard:
            result = await chain.fetch(lambda p: p.fetch_prices(venue, self.assets))
            floor, inherited = Freshness.LIVE, ()
            if isinstance(result.value, DerivedPrices):
                floor, inherited = result.value.freshness, result.value.warnings
            return PriceBoard(
                venue=venue,
                currency=self.quote_currency(venue),
                prices=clean_prices(result.value),
                provider=result.provider,
                fetched_at_ms=now_ms(),
                warnings=result.warnings + inherited,
                freshness_floor=floor,
            )

        hit = await self.cache.get(
            f"price:{venue}",
            fetch,
            self.settings.price_success_ttl,
            self.settings.price_failure_ttl,
        )
        board: PriceBoard = hit.value
        warnings = list(board.warnings)
        if hit.stale:
            warnings.append(
                f"Prices for {venue} are stale (age {hit.age_ms // 1000}s); "
                f"live refresh failed: {hit.error}"
            )
        elif hit.age_ms > self.settings.delayed_price_warning_seconds * 1000:
            warnings.append(f"Price data for {venue} may be delayed (age: {hit.age_ms // 1000}s).")

        return Sourced(
            value=board,
            source=board.provider,
            freshness=Freshness.worst([freshness_of(hit.from_cache, hit.stale), board.freshness_floor]),
            age_ms=hit.age_ms,
            warnings=tuple(warnings),
        )

    async def get_spot_price(self, venue: str, asset: str) -> Sourced[PriceQuote]:
        """Spot price of ``asset`` at ``venue`` in the venue's quote currency.

        Raises:
            UpstreamUnavailable: No provider, cache entry or snapshot has the price
        """
        venue = venue.lower()
        board, failure = await self._board_or_failure(venue)
        return await self._quote(venue, asset.upper(), board, failure)

    async def get_spot_prices(self, venue: str, assets: Sequence[str]) -> dict[str, Sourced[PriceQuote]]:
        """Quotes for several assets from a single board lookup.

        Assets with no price from any provider, cache entry or snapshot are
        left out of the result.
        """
        venue = venue.lower()
        board, failure = await self._board_or_failure(venue)
        quotes: dict[str, Sourced[PriceQuote]] = {}
        for asset in assets:
            asset = asset.upper()
            try:
                quotes[asset] = await self._quote(venue, asset, board, failure)
            except UpstreamUnavailable as e:
                logger.debug(f"No price for {asset} at {venue}: {e}")
        return quotes

    async def _board_or_failure(self, venue: str) -> tuple[Optional[Sourced[PriceBoard]], str]:
        try:
            return await self.get_board(venue), ""
        except UpstreamUnavailable as e:
            return None, str(e)

    async def _quote(
        self,
        venue: str,
        asset: str,
        sourced: Optional[Sourced[PriceBoard]],
        failure: str,
    ) -> Sourced[PriceQuote]:
        key = f"price:{venue}:{asset}"
        if sourced is not None:
            board = sourced.value
            price = board.prices.get(asset)
            if price is not None:
                quote = PriceQuote(
                    venue=venue,
                    asset=asset,
                    currency=board.currency,
                    price=price,
                    timestamp_ms=board.fetched_at_ms,
                    source=board.provider,
                )
                return Sourced(quote, sourced.source, sourced.freshness, sourced.age_ms, sourced.warnings)
            failure = f"{asset} not on {venue} board from {board.provider}"

        snapshot = await self.snapshots.latest_price(venue, asset) if self.snapshots else None
        if snapshot is None:
            raise UpstreamUnavailable(key, failure)

        age_ms = snapshot.age_ms()
        logger.warning(f"Using historical snapshot for {key} ({age_ms // 1000}s old)")
        quote = PriceQuote(
            venue=venue,
            asset=asset,
            currency=snapshot.currency,
            price=snapshot.value,
            timestamp_ms=now_ms() - age_ms,
            source=f"snapshot:{snapshot.source}",
        )
        return Sourced(
            value=quote,
            source=quote.source,
            freshness=Freshness.FALLBACK,
            age_ms=age_ms,
            warnings=(
                f"Price for {asset} at {venue} is a historical snapshot, not real-time "
                f"(age: {age_ms // 1000}s).",
            ),
        )
