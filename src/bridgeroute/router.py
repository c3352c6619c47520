"""Route search over candidate bridge assets."""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Callable, Iterable, Mapping, Optional, Sequence

from bridgeroute import cost_model
from bridgeroute.catalog import TRANSFER_TIME_MINUTES
from bridgeroute.models import (
    FeeTable,
    LiquidityStatus,
    NoRouteReason,
    OrderbookSnapshot,
    RoutePlan,
    RouteRequest,
    Strategy,
)
from bridgeroute.result import Err, Ok, Result

logger = logging.getLogger(__name__)

# Balanced strategy weights over min-max normalised cost and time
BALANCED_COST_WEIGHT = 0.6
BALANCED_TIME_WEIGHT = 0.4

# Scores closer than this are ties
SCORE_PRECISION = 9


@dataclass(frozen=True)
class CandidateSet:
    """Bridge assets surviving each filtering step."""

    common: tuple[str, ...]
    candidates: tuple[str, ...]
    suspended: tuple[str, ...] = ()

    @property
    def no_route(self) -> Optional[NoRouteReason]:
        if not self.common:
            return NoRouteReason.NO_COMMON_BRIDGE_ASSET
        if not self.candidates:
            return NoRouteReason.ALL_CANDIDATES_SUSPENDED
        return None


@dataclass(frozen=True)
class CandidateFacts:
    """Market facts fetched for one bridge asset.

    Prices are in each venue's quote currency; ``None`` means the price could
    not be obtained and the candidate is skipped.
    """

    asset: str
    source_price: Optional[float]
    dest_price: Optional[float]
    source_book: Optional[OrderbookSnapshot] = None
    dest_book: Optional[OrderbookSnapshot] = None


@dataclass(frozen=True)
class SearchOutcome:
    ranked: tuple[RoutePlan, ...]
    evaluated: tuple[str, ...]
    skipped: dict[str, str] = field(default_factory=dict)
    no_route: Optional[NoRouteReason] = None

    @property
    def optimal(self) -> Optional[RoutePlan]:
        return self.ranked[0] if self.ranked else None


def select_candidates(
    bridge_assets: Iterable[str],
    source_tradeable: Iterable[str],
    dest_tradeable: Iterable[str],
    suspended_at_source: Iterable[str] = (),
) -> CandidateSet:
    """Bridge assets tradeable at both venues, minus those suspended at the source.

    Catalog order is preserved.
    """
    source = {a.upper() for a in source_tradeable}
    dest = {a.upper() for a in dest_tradeable}
    blocked = {a.upper() for a in suspended_at_source}
    common = tuple(a for a in (b.upper() for b in bridge_assets) if a in source and a in dest)
    return CandidateSet(
        common=common,
        candidates=tuple(a for a in common if a not in blocked),
        suspended=tuple(a for a in common if a in blocked),
    )


class RouteSearcher:
    """Build a buy → transfer → sell plan per candidate and rank them.

    Example:
        searcher = RouteSearcher(max_alternatives=10)
        outcome = searcher.search(request, candidate_set, facts, fee_table)
        best = outcome.optimal
    """

    def __init__(
        self,
        max_alternatives: int = 10,
        unknown_liquidity_slippage_pct: float = cost_model.UNKNOWN_LIQUIDITY_SLIPPAGE_PCT,
        transfer_times: Mapping[str, float] = TRANSFER_TIME_MINUTES,
    ):
        self.max_alternatives = max_alternatives
        self.unknown_liquidity_slippage_pct = unknown_liquidity_slippage_pct
        self.transfer_times = dict(transfer_times)

    def build_plan(
        self,
        request: RouteRequest,
        facts: CandidateFacts,
        fee_table: FeeTable,
        fx_rate: Optional[float] = None,
    ) -> Result[RoutePlan]:
        """Build the two-trade plan for one bridge asset.

        Args:
            fx_rate: Destination currency units per source currency unit, used
                only for the informational ``spread_vs_fx_pct``
        """
        asset = facts.asset
        src, dst = request.source_venue, request.dest_venue
        if not _usable_price(facts.source_price):
            return Err("missing_price", f"no price for {asset} at {src}")
        if not _usable_price(facts.dest_price):
            return Err("missing_price", f"no price for {asset} at {dst}")

        try:
            src_fee = cost_model.trading_cost_pct(fee_table, src)
            dst_fee = cost_model.trading_cost_pct(fee_table, dst)
        except KeyError as e:
            return Err("missing_fee", f"no trading fee for {e}")
        wd_fee = cost_model.withdrawal_cost_absolute(fee_table, src, asset)
        if wd_fee is None:
            return Err("missing_fee", f"no withdrawal fee for {asset} at {src}")

        unknown = self.unknown_liquidity_slippage_pct
        try:
            buy_liquidity = cost_model.book_slippage(
                facts.source_book, True, request.amount / facts.source_price
            )
            buy = cost_model.buy_leg(
                src, request.source_currency, asset, request.amount,
                facts.source_price, src_fee, buy_liquidity, unknown,
            )
            transfer = cost_model.transfer_leg(src, dst, asset, buy.amount_out, wd_fee, self.transfer_times)
            sell_liquidity = cost_model.book_slippage(facts.dest_book, False, transfer.amount_out)
            sell = cost_model.sell_leg(
                dst, asset, request.dest_currency, transfer.amount_out,
                facts.dest_price, dst_fee, sell_liquidity, unknown,
            )
        except cost_model.NonViableLeg as e:
            return Err("non_viable", str(e))

        legs = (buy, transfer, sell)
        spread_vs_fx = None
        if fx_rate and fx_rate > 0:
            spread_vs_fx = ((sell.amount_out / request.amount) / fx_rate - 1) * 100

        return Ok(
            RoutePlan(
                bridge_asset=asset,
                legs=legs,
                total_cost_pct=sum(leg.cost.cost_pct for leg in legs),
                total_time_minutes=sum(leg.cost.time_minutes for leg in legs),
                estimated_input_amount=request.amount,
                estimated_output_amount=sell.amount_out,
                liquidity_known=all(leg.liquidity != LiquidityStatus.UNKNOWN for leg in legs),
                uses_fallback_fees=any(leg.fee_is_fallback for leg in legs),
                spread_vs_fx_pct=spread_vs_fx,
            )
        )

    def rank(self, plans: Sequence[RoutePlan], strategy: Strategy) -> list[RoutePlan]:
        """Sort plans best first for a strategy.

        Ties break on known liquidity, then lower total time, then symbol.
        """
        score = self._scorer(plans, strategy)

        def key(plan: RoutePlan):
            return (
                round(score(plan), SCORE_PRECISION),
                not plan.liquidity_known,
                round(plan.total_time_minutes, SCORE_PRECISION),
                round(plan.total_cost_pct, SCORE_PRECISION),
                plan.bridge_asset,
            )

        return sorted(plans, key=key)

    def search(
        self,
        request: RouteRequest,
        candidate_set: CandidateSet,
        facts: Mapping[str, CandidateFacts],
        fee_table: FeeTable,
        fx_rate: Optional[float] = None,
    ) -> SearchOutcome:
        """Build, rank and cut plans for every surviving candidate."""
        if candidate_set.no_route is not None:
            logger.info(
                f"No route {request.source_venue}->{request.dest_venue}: {candidate_set.no_route.value}"
            )
            return SearchOutcome(ranked=(), evaluated=(), no_route=candidate_set.no_route)

        plans: list[RoutePlan] = []
        skipped: dict[str, str] = {}
        for asset in candidate_set.candidates:
            candidate = facts.get(asset) or CandidateFacts(asset, None, None)
            result = self.build_plan(request, candidate, fee_table, fx_rate)
            if isinstance(result, Ok):
                plans.append(result.value)
            else:
                logger.debug(f"Skipping {asset}: {result}")
                skipped[asset] = str(result)

        if not plans:
            logger.info(f"No viable candidate among {len(candidate_set.candidates)} bridge asset(s)")
            return SearchOutcome(
                ranked=(), evaluated=(), skipped=skipped, no_route=NoRouteReason.NO_VIABLE_CANDIDATE
            )

        ranked = self.rank(plans, request.strategy)[: 1 + self.max_alternatives]
        best = ranked[0]
        logger.info(
            f"Route {request.source_venue}->{request.dest_venue} via {best.bridge_asset}: "
            f"cost {best.total_cost_pct:.4f}%, {best.total_time_minutes:g} min "
            f"({request.strategy.value}, {len(plans)} plan(s))"
        )
        return SearchOutcome(
            ranked=tuple(ranked),
            evaluated=tuple(p.bridge_asset for p in plans),
            skipped=skipped,
        )

    @staticmethod
    def _scorer(plans: Sequence[RoutePlan], strategy: Strategy) -> Callable[[RoutePlan], float]:
        if strategy == Strategy.CHEAPEST:
            return lambda p: p.total_cost_pct
        if strategy == Strategy.FASTEST:
            return lambda p: p.total_time_minutes

        costs = [p.total_cost_pct for p in plans]
        times = [p.total_time_minutes for p in plans]
        cost_lo, cost_span = min(costs, default=0.0), _span(costs)
        time_lo, time_span = min(times, default=0.0), _span(times)

        def balanced(p: RoutePlan) -> float:
            cost = (p.total_cost_pct - cost_lo) / cost_span if cost_span else 0.0
            time = (p.total_time_minutes - time_lo) / time_span if time_span else 0.0
            return BALANCED_COST_WEIGHT * cost + BALANCED_TIME_WEIGHT * time

        return balanced


def with_signals(plans: Iterable[RoutePlan], signal_for: Callable[[RoutePlan], object]) -> tuple[RoutePlan, ...]:
    """Attach a decision signal to each plan."""
    return tuple(replace(p, signal=signal_for(p)) for p in plans)


def _span(values: Sequence[float]) -> float:
    return (max(values) - min(values)) if values else 0.0


def _usable_price(price: Optional[float]) -> bool:
    return price is not None and math.isfinite(price) and price > 0
