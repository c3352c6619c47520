"""Public routing operations.

``RoutingEngine`` is a plain library object: no HTTP, payment or persistence
knowledge beyond the sources it is given.

Example:
    engine = create_routing_engine()
    result = await engine.find_optimal_route("bithumb", "KRW", "binance", "USDT", 5_000_000)
    print(result.optimal.bridge_asset, result.meta.data_freshness)
"""

import asyncio
import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Mapping, Optional, Sequence, TypeVar

from bridgeroute import cost_model, decision
from bridgeroute.assembler import Provenance, assemble
from bridgeroute.cache import CacheCoalescer
from bridgeroute.catalog import BRIDGE_ASSETS, TRANSFER_TIME_MINUTES, VENUES, VenueSpec, usd_rate_currency
from bridgeroute.config import Settings, get_settings
from bridgeroute.errors import InvalidInput, UpstreamUnavailable
from bridgeroute.models import (
    Freshness,
    OrderbookSnapshot,
    PriceQuote,
    RoutePlan,
    RouteRequest,
    RouteResult,
    Sourced,
    SpreadResult,
    Strategy,
    VenueInfo,
)
from bridgeroute.router import CandidateFacts, RouteSearcher, select_candidates, with_signals
from bridgeroute.sources.fees import FeeSource
from bridgeroute.sources.fx import FxSource
from bridgeroute.sources.orderbooks import OrderbookSource
from bridgeroute.sources.prices import PriceSource
from bridgeroute.sources.withdrawals import WithdrawalStatusSource

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RoutingEngine:
    """Wires the sources, the shared cache and the pure route search together."""

    def __init__(
        self,
        prices: PriceSource,
        fx: FxSource,
        orderbooks: OrderbookSource,
        fees: FeeSource,
        withdrawals: WithdrawalStatusSource,
        cache: CacheCoalescer,
        settings: Optional[Settings] = None,
        venues: Optional[Mapping[str, VenueSpec]] = None,
        bridge_assets: Sequence[str] = BRIDGE_ASSETS,
        transfer_times: Mapping[str, float] = TRANSFER_TIME_MINUTES,
    ):
        self.prices = prices
        self.fx = fx
        self.orderbooks = orderbooks
        self.fees = fees
        self.withdrawals = withdrawals
        self.cache = cache
        self.settings = settings or get_settings()
        self.venues = dict(venues or VENUES)
        self.bridge_assets = tuple(a.upper() for a in bridge_assets)
        self.transfer_times = dict(transfer_times)
        self.searcher = RouteSearcher(
            max_alternatives=self.settings.max_alternatives,
            unknown_liquidity_slippage_pct=self.settings.unknown_liquidity_slippage_pct,
            transfer_times=self.transfer_times,
        )
        self._status: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Route finding
    # ------------------------------------------------------------------

    async def find_optimal_route(
        self,
        source_venue: str,
        source_currency: str,
        dest_venue: str,
        dest_currency: str,
        amount: float,
        strategy: str = "cheapest",
    ) -> RouteResult:
        """Find the best bridge asset to move ``amount`` between venues.

        Returns a result with ``optimal=None`` and a ``no_route`` reason when
        no candidate survives; that is a normal outcome, not an error.

        Raises:
            InvalidInput: Unknown venue, unsupported currency, non-positive
                amount, identical venues or unknown strategy
        """
        request = self._validate_route_request(
            source_venue, source_currency, dest_venue, dest_currency, amount, strategy
        )
        src, dst = request.source_venue, request.dest_venue
        provenance = Provenance()
        semaphore = asyncio.Semaphore(self.settings.max_concurrent_fetches)

        src_assets, dst_assets = await asyncio.gather(
            self.fees.tradeable_assets(src), self.fees.tradeable_assets(dst)
        )
        common = [a for a in self.bridge_assets if a in src_assets and a in dst_assets]
        suspended: list[str] = []
        if common:
            status = await self.withdrawals.suspended_among(src, common)
            flagged = provenance.record(status)
            suspended = [a for a in common if a in flagged]
        for asset in suspended:
            logger.info(f"Excluding {asset}: withdrawals suspended at {src}")

        candidate_set = select_candidates(self.bridge_assets, src_assets, dst_assets, suspended)
        candidates = candidate_set.candidates
        fee_table = await self.fees.fee_table([src, dst], candidates)

        src_quotes, dst_quotes, books, fx_rate = await asyncio.gather(
            self.prices.get_spot_prices(src, candidates),
            self.prices.get_spot_prices(dst, candidates),
            asyncio.gather(
                *(
                    self._bounded(semaphore, self.orderbooks.get_orderbook(venue, asset))
                    for asset in candidates
                    for venue in (src, dst)
                )
            ),
            self._cross_rate(provenance, request.source_currency, request.dest_currency),
        )

        facts: dict[str, CandidateFacts] = {}
        for i, asset in enumerate(candidates):
            facts[asset] = CandidateFacts(
                asset,
                self._price(provenance, src_quotes, src, asset),
                self._price(provenance, dst_quotes, dst, asset),
                self._book(provenance, books[2 * i]),
                self._book(provenance, books[2 * i + 1]),
            )

        outcome = self.searcher.search(request, candidate_set, facts, fee_table, fx_rate)
        plans = with_signals(outcome.ranked, self._route_signal)
        return assemble(
            request,
            outcome,
            provenance,
            plans=plans,
            bridge_assets_total=len(self.bridge_assets),
            fees_source=self.fees.name,
        )

    def _route_signal(self, plan: RoutePlan):
        return decision.score(plan.total_cost_pct, plan.slippage_pct, plan.total_time_minutes)

    @staticmethod
    def _price(
        provenance: Provenance, quotes: Mapping[str, Sourced[PriceQuote]], venue: str, asset: str
    ) -> Optional[float]:
        quote = quotes.get(asset)
        if quote is None:
            logger.warning(f"No price for {asset} at {venue}")
            provenance.warn(f"Price unavailable for {asset} at {venue}; candidate skipped.")
            return None
        return provenance.record(quote).price

    @staticmethod
    def _book(
        provenance: Provenance, sourced: Sourced[Optional[OrderbookSnapshot]]
    ) -> Optional[OrderbookSnapshot]:
        if sourced.value is None:
            # An absent book is unknown liquidity; it does not degrade freshness
            for warning in sourced.warnings:
                logger.debug(warning)
            return None
        return provenance.record(sourced)

    async def _cross_rate(self, provenance: Provenance, base: str, quote: str) -> Optional[float]:
        try:
            rate = await self.fx.get_rate(base, quote)
        except UpstreamUnavailable as e:
            provenance.warn(f"FX {base}/{quote} unavailable; spread versus FX not computed ({e.detail})")
            return None
        return provenance.record(rate).rate

    @staticmethod
    async def _bounded(semaphore: asyncio.Semaphore, awaitable: Awaitable[T]) -> T:
        async with semaphore:
            return await awaitable

    def _validate_route_request(
        self,
        source_venue: str,
        source_currency: str,
        dest_venue: str,
        dest_currency: str,
        amount: float,
        strategy: str,
    ) -> RouteRequest:
        src = self._venue(source_venue, "source_venue")
        dst = self._venue(dest_venue, "dest_venue")
        if src.id == dst.id:
            raise InvalidInput("Source and destination venue must differ", field="dest_venue")

        source_currency = (source_currency or "").strip().upper()
        dest_currency = (dest_currency or "").strip().upper()
        if source_currency not in src.currencies:
            raise InvalidInput(
                f"{src.display_name} does not support {source_currency or '(empty)'}; "
                f"expected one of {', '.join(src.currencies)}",
                field="source_currency",
            )
        if dest_currency not in dst.currencies:
            raise InvalidInput(
                f"{dst.display_name} does not support {dest_currency or '(empty)'}; "
                f"expected one of {', '.join(dst.currencies)}",
                field="dest_currency",
            )

        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise InvalidInput("amount must be a number", field="amount")
        if not math.isfinite(amount) or amount <= 0:
            raise InvalidInput("amount must be a positive finite number", field="amount")

        try:
            parsed = Strategy(str(strategy).strip().lower())
        except ValueError:
            options = ", ".join(s.value for s in Strategy)
            raise InvalidInput(f"Unknown strategy {strategy!r}; expected one of {options}", field="strategy")

        return RouteRequest(src.id, source_currency, dst.id, dest_currency, float(amount), parsed)

    def _venue(self, venue: str, field: str) -> VenueSpec:
        spec = self.venues.get((venue or "").strip().lower())
        if spec is None:
            raise InvalidInput(f"Unsupported venue: {venue!r}", field=field)
        return spec

    # ------------------------------------------------------------------
    # Spread scoring
    # ------------------------------------------------------------------

    async def score_spread(
        self,
        venue_a: str,
        venue_b: str,
        asset: str,
        volatility_pct: Optional[float] = None,
    ) -> SpreadResult:
        """Score buying ``asset`` at ``venue_a`` and selling at ``venue_b``.

        Gross spread is compared in USD; both trading fees, the withdrawal fee
        at a fixed notional and orderbook slippage are deducted.
        Without ``volatility_pct`` the volatility is taken from the stored
        premium history of the pair (``premium_history_hours``).

        Raises:
            InvalidInput: Unknown venue or asset, or identical venues
            UpstreamUnavailable: A price could not be obtained at all
        """
        spec_a = self._venue(venue_a, "venue_a")
        spec_b = self._venue(venue_b, "venue_b")
        if spec_a.id == spec_b.id:
            raise InvalidInput("Spread venues must differ", field="venue_b")
        asset = (asset or "").strip().upper()
        if asset not in self.bridge_assets:
            raise InvalidInput(f"Unsupported asset: {asset or '(empty)'}", field="asset")

        provenance = Provenance()
        notional = self.settings.spread_notional_usd

        quote_a, quote_b, fx_a, fx_b, book_a, book_b, suspended = await asyncio.gather(
            self.prices.get_spot_price(spec_a.id, asset),
            self.prices.get_spot_price(spec_b.id, asset),
            self.fx.get_usd_rate(spec_a.quote_currency),
            self.fx.get_usd_rate(spec_b.quote_currency),
            self.orderbooks.get_orderbook(spec_a.id, asset),
            self.orderbooks.get_orderbook(spec_b.id, asset),
            self.withdrawals.is_suspended(spec_a.id, asset),
        )
        rate_a = provenance.record(fx_a).rate
        rate_b = provenance.record(fx_b).rate
        price_a_usd = provenance.record(quote_a).price / rate_a
        price_b_usd = provenance.record(quote_b).price / rate_b
        withdrawal_suspended = provenance.record(suspended)

        fee_table = await self.fees.fee_table([spec_a.id, spec_b.id], [asset])
        fee_a = cost_model.trading_cost_pct(fee_table, spec_a.id)
        fee_b = cost_model.trading_cost_pct(fee_table, spec_b.id)
        wd_fee = cost_model.withdrawal_cost_absolute(fee_table, spec_a.id, asset)
        withdrawal_pct = (wd_fee.value * price_a_usd / notional * 100) if wd_fee else 0.0
        if wd_fee is None:
            provenance.warn(f"No withdrawal fee known for {asset} at {spec_a.id}; assumed zero.")
        if any(f is not None and f.is_fallback for f in (fee_a, fee_b, wd_fee)):
            provenance.degrade(Freshness.FALLBACK)
            provenance.warn("Some fees are catalog defaults (no stored fee row); actual fees may differ.")

        quantity = notional / price_a_usd
        slippage = 0.0
        for sourced_book, buying in ((book_a, True), (book_b, False)):
            book = provenance.record(sourced_book) if sourced_book.value is not None else None
            estimate = cost_model.book_slippage(book, buying, quantity)
            if not estimate.known:
                provenance.warn(
                    f"Orderbook unavailable for {asset}; assumed "
                    f"{self.settings.unknown_liquidity_slippage_pct:.2f}% slippage."
                )
            slippage += cost_model.assumed_slippage_pct(estimate, self.settings.unknown_liquidity_slippage_pct)

        gross = (price_b_usd - price_a_usd) / price_a_usd * 100
        total_cost = fee_a.value + fee_b.value + withdrawal_pct
        net = gross - total_cost - slippage
        minutes = cost_model.transfer_time_minutes(asset, self.transfer_times)
        trend = decision.premium_trend(
            await self._premium_history(spec_a, spec_b, asset, rate_a, rate_b)
        )
        if volatility_pct is None:
            volatility_pct = trend.volatility_pct

        if withdrawal_suspended:
            provenance.warn(f"Withdrawals of {asset} are suspended at {spec_a.id}.")
            signal = decision.blocked_signal(
                f"Withdrawals of {asset} are suspended at {spec_a.id}; the spread cannot be captured.",
                -net,
            )
        else:
            signal = decision.score(
                -(gross - total_cost), slippage, minutes, volatility_pct, decision.SPREAD_PROFILE
            )

        return SpreadResult(
            venue_a=spec_a.id,
            venue_b=spec_b.id,
            asset=asset,
            price_a_usd=price_a_usd,
            price_b_usd=price_b_usd,
            gross_spread_pct=gross,
            total_cost_pct=total_cost,
            net_spread_pct=net,
            slippage_pct=slippage,
            transfer_time_minutes=minutes,
            withdrawal_suspended=withdrawal_suspended,
            signal=signal,
            meta=provenance.meta(
                routes_evaluated=1,
                bridge_assets_total=1,
                evaluated_assets=(asset,),
                fees_source="fallback" if fee_table.uses_fallback else self.fees.name,
            ),
            premium_trend=trend,
        )

    async def _premium_history(
        self, spec_a: VenueSpec, spec_b: VenueSpec, asset: str, rate_a: float, rate_b: float
    ) -> list[float]:
        """Premium of B over A, in percent, at each stored B price in the history window.

        Each B price is paired with the latest A price captured at or before
        it. Both are converted with the current FX rates, so the series
        reflects relative price moves rather than FX moves.
        """
        store = self.prices.snapshots
        if store is None:
            return []
        since = datetime.now(timezone.utc) - timedelta(hours=self.settings.premium_history_hours)
        history_a, history_b = await asyncio.gather(
            store.price_history(spec_a.id, asset, since),
            store.price_history(spec_b.id, asset, since),
        )
        history_a = [s for s in history_a if _same_quote(s.currency, spec_a.quote_currency)]
        history_b = [s for s in history_b if _same_quote(s.currency, spec_b.quote_currency)]

        premiums: list[float] = []
        i = 0
        latest_a = None
        for snapshot_b in history_b:
            while i < len(history_a) and history_a[i].captured_at <= snapshot_b.captured_at:
                latest_a = history_a[i]
                i += 1
            if latest_a is None:
                continue
            price_a = latest_a.value / rate_a
            price_b = snapshot_b.value / rate_b
            premiums.append((price_b - price_a) / price_a * 100)
        return premiums

    # ------------------------------------------------------------------
    # Catalog and operations
    # ------------------------------------------------------------------

    async def list_venues(self) -> list[VenueInfo]:
        """Catalog venues with their current trading fee, tradeable assets and last probe status."""
        infos: list[VenueInfo] = []
        for spec in self.venues.values():
            fee = await self.fees.get_trading_fee(spec.id)
            tradeable = await self.fees.tradeable_assets(spec.id)
            infos.append(
                VenueInfo(
                    id=spec.id,
                    name=spec.display_name,
                    country=spec.country,
                    group=spec.group.value,
                    currencies=spec.currencies,
                    trading_fee_pct=fee.value,
                    fee_is_fallback=fee.is_fallback,
                    tradeable_assets=tuple(a for a in self.bridge_assets if a in tradeable),
                    status=self._status.get(spec.id, "unknown"),
                )
            )
        return infos

    async def route_fees(self, asset: Optional[str] = None) -> dict[str, Any]:
        """Trading fees, withdrawal fees and transfer times, optionally for one asset.

        Raises:
            InvalidInput: ``asset`` is not a bridge asset
        """
        if asset is not None:
            asset = asset.strip().upper()
            if asset not in self.bridge_assets:
                raise InvalidInput(f"Unsupported asset: {asset}", field="asset")
        assets = [asset] if asset else list(self.bridge_assets)

        table = await self.fees.fee_table(self.venues.keys(), assets)
        venues: dict[str, Any] = {}
        for venue_id in self.venues:
            trading = table.trading[venue_id]
            venues[venue_id] = {
                "trading_fee_pct": trading.value,
                "trading_fee_is_fallback": trading.is_fallback,
                "withdrawal_fees": {
                    a: {"fee": fee.value, "is_fallback": fee.is_fallback}
                    for a in assets
                    if (fee := table.withdrawal.get((venue_id, a))) is not None
                },
            }
        return {
            "venues": venues,
            "transfer_time_minutes": {
                a: cost_model.transfer_time_minutes(a, self.transfer_times) for a in assets
            },
            "fees_source": "fallback" if table.uses_fallback else self.fees.name,
        }

    async def probe_status(self) -> dict[str, str]:
        """Health-check each venue through its primary price provider.

        Updates the status reported by ``list_venues``: ``online``,
        ``offline``, or ``unknown`` when no provider covers the venue.
        """

        async def probe(venue: str) -> str:
            chain = self.prices.chain_for(venue)
            if not chain.providers:
                return "unknown"
            provider = chain.providers[0]
            try:
                prices = await asyncio.wait_for(
                    provider.fetch_prices(venue, self.bridge_assets[:1]),
                    timeout=self.settings.probe_timeout_seconds,
                )
            except Exception as e:
                logger.warning(f"Probe of {venue} via {provider.name} failed: {e}")
                return "offline"
            return "online" if prices else "offline"

        venue_ids = list(self.venues)
        results = await asyncio.gather(*(probe(v) for v in venue_ids))
        self._status = dict(zip(venue_ids, results))
        logger.info(f"Venue probe: {self._status}")
        return dict(self._status)

    def invalidate_fee_caches(self) -> int:
        """Drop cached fee rows and withdrawal statuses after an admin edit."""
        self.fees.invalidate()
        return self.cache.invalidate("withdrawal:")


def _same_quote(currency: str, quote_currency: str) -> bool:
    """True when a stored currency is priced like the venue's quote currency."""
    return usd_rate_currency(currency) == usd_rate_currency(quote_currency)
