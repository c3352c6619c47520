"""Tests for candidate selection and route search."""

import pytest

from bridgeroute.models import (
    FeeTable,
    FeeValue,
    LegType,
    NoRouteReason,
    RoutePlan,
    RouteRequest,
    Strategy,
)
from bridgeroute.result import Err, Ok
from bridgeroute.router import CandidateFacts, RouteSearcher, select_candidates, with_signals

from conftest import make_book

AMOUNT = 1_000_000.0


def fee(value: float) -> FeeValue:
    return FeeValue(value, False, "test")


def request(strategy: Strategy = Strategy.CHEAPEST, amount: float = AMOUNT) -> RouteRequest:
    return RouteRequest("bithumb", "KRW", "binance", "USDT", amount, strategy)


def fee_table(**withdrawal: float) -> FeeTable:
    return FeeTable(
        trading={"bithumb": fee(0.25), "binance": fee(0.10)},
        withdrawal={("bithumb", asset): fee(value) for asset, value in withdrawal.items()},
    )


def deep_facts(asset: str, src_price: float, dst_price: float) -> CandidateFacts:
    return CandidateFacts(
        asset,
        src_price,
        dst_price,
        make_book("bithumb", asset, src_price, 1e9),
        make_book("binance", asset, dst_price, 1e9),
    )


# XRP: cheap and fast, BTC: slow, ETH: pricier withdrawal, SOL: no books
FACTS = {
    "XRP": deep_facts("XRP", 3400.0, 2.35),
    "BTC": deep_facts("BTC", 145_000_000.0, 100_000.0),
    "ETH": deep_facts("ETH", 5_655_000.0, 3900.0),
    "SOL": CandidateFacts("SOL", 326_250.0, 225.0),
}
TABLE = fee_table(XRP=1.0, BTC=0.001, ETH=0.01, SOL=0.01)


def plan(asset: str, cost: float, minutes: float, liquidity_known: bool = True) -> RoutePlan:
    return RoutePlan(
        bridge_asset=asset,
        legs=(),
        total_cost_pct=cost,
        total_time_minutes=minutes,
        estimated_input_amount=AMOUNT,
        estimated_output_amount=AMOUNT * (1 - cost / 100),
        liquidity_known=liquidity_known,
    )


class TestSelectCandidates:
    """Tests for select_candidates."""

    def test_intersection_in_catalog_order(self):
        """Test candidates are tradeable at both venues, in bridge list order."""
        selected = select_candidates(["XRP", "SOL", "BTC"], {"btc", "XRP", "DOT"}, {"XRP", "BTC", "SOL"})

        assert selected.common == ("XRP", "BTC")
        assert selected.candidates == ("XRP", "BTC")
        assert selected.no_route is None

    def test_suspended_removed(self):
        """Test assets suspended at the source are excluded."""
        selected = select_candidates(["XRP", "BTC"], {"XRP", "BTC"}, {"XRP", "BTC"}, ["xrp"])

        assert selected.candidates == ("BTC",)
        assert selected.suspended == ("XRP",)

    def test_no_common_asset(self):
        """Test disjoint venues report no common bridge asset."""
        selected = select_candidates(["XRP", "BTC"], {"XRP"}, {"BTC"})

        assert selected.no_route == NoRouteReason.NO_COMMON_BRIDGE_ASSET

    def test_all_suspended(self):
        """Test every common asset suspended is its own reason."""
        selected = select_candidates(["XRP"], {"XRP"}, {"XRP"}, ["XRP"])

        assert selected.no_route == NoRouteReason.ALL_CANDIDATES_SUSPENDED


class TestBuildPlan:
    """Tests for RouteSearcher.build_plan."""

    def test_concrete_scenario(self):
        """Test the two-venue scenario with 0.25% fees and a 1 unit withdrawal fee."""
        req = RouteRequest("a", "KRW", "b", "KRW", AMOUNT, Strategy.CHEAPEST)
        table = FeeTable(trading={"a": fee(0.25), "b": fee(0.25)}, withdrawal={("a", "Q"): fee(1.0)})
        facts = CandidateFacts("Q", 100.0, 99.9, make_book("a", "Q", 100.0, 1e9, step=0.0), make_book("b", "Q", 99.9, 1e9, step=0.0))
        searcher = RouteSearcher()

        outcome = searcher.search(req, select_candidates(["Q"], {"Q"}, {"Q"}), {"Q": facts}, table)

        best = outcome.optimal
        assert best.bridge_coin == "Q"
        assert best.total_cost_pct == pytest.approx(0.25 + 0.25 + 100 / 9975, abs=1e-9)
        assert best.estimated_output_amount == pytest.approx(9974 * 99.9 * 0.9975)
        assert best.liquidity_known is True
        assert [leg.type for leg in best.legs] == [LegType.BUY, LegType.TRANSFER, LegType.SELL]
        assert best.total_time_minutes == 10

    def test_total_cost_is_sum_of_legs(self):
        """Test every plan's total equals the sum of its leg costs."""
        searcher = RouteSearcher()
        for asset, facts in FACTS.items():
            result = searcher.build_plan(request(), facts, TABLE)
            assert isinstance(result, Ok)
            p = result.value
            legs_total = sum(leg.cost.fee_pct + leg.cost.slippage_pct + leg.cost.withdrawal_fee_pct for leg in p.legs)
            assert p.total_cost_pct == pytest.approx(legs_total, abs=1e-12)

    def test_unknown_liquidity_penalised(self):
        """Test a candidate without books carries the assumed slippage on both trades."""
        result = RouteSearcher(unknown_liquidity_slippage_pct=1.5).build_plan(request(), FACTS["SOL"], TABLE)

        p = result.value
        assert p.liquidity_known is False
        assert p.slippage_pct == pytest.approx(3.0)

    def test_missing_price(self):
        """Test a missing price is a typed error, not a zero price."""
        result = RouteSearcher().build_plan(request(), CandidateFacts("XRP", None, 2.35), TABLE)

        assert isinstance(result, Err)
        assert result.kind == "missing_price"

    def test_missing_withdrawal_fee(self):
        """Test a candidate without a withdrawal fee row is skipped."""
        result = RouteSearcher().build_plan(request(), FACTS["XRP"], fee_table(BTC=0.001))

        assert result.kind == "missing_fee"

    def test_withdrawal_fee_larger_than_amount(self):
        """Test a withdrawal fee above the bought amount is non-viable."""
        result = RouteSearcher().build_plan(request(amount=10_000), FACTS["BTC"], TABLE)

        assert isinstance(result, Err)
        assert result.kind == "non_viable"

    def test_spread_vs_fx(self):
        """Test the effective rate is compared with the FX rate."""
        fx = 1 / 1450.0
        p = RouteSearcher().build_plan(request(), FACTS["XRP"], TABLE, fx_rate=fx).value

        expected = ((p.estimated_output_amount / AMOUNT) / fx - 1) * 100
        assert p.spread_vs_fx_pct == pytest.approx(expected)
        assert RouteSearcher().build_plan(request(), FACTS["XRP"], TABLE).value.spread_vs_fx_pct is None


class TestRanking:
    """Tests for RouteSearcher.rank."""

    def test_cheapest(self):
        """Test cheapest orders by total cost."""
        ranked = RouteSearcher().rank([plan("A", 2.0, 1), plan("B", 1.0, 30), plan("C", 1.5, 5)], Strategy.CHEAPEST)

        assert [p.bridge_asset for p in ranked] == ["B", "C", "A"]

    def test_fastest(self):
        """Test fastest orders by time, then cost."""
        ranked = RouteSearcher().rank([plan("A", 2.0, 1), plan("B", 1.0, 30), plan("C", 1.5, 1)], Strategy.FASTEST)

        assert [p.bridge_asset for p in ranked] == ["C", "A", "B"]

    def test_balanced(self):
        """Test balanced weighs normalised cost 0.6 and normalised time 0.4."""
        plans = [plan("A", 1.0, 30), plan("B", 2.0, 1), plan("C", 1.5, 10)]

        ranked = RouteSearcher().rank(plans, Strategy.BALANCED)

        assert [p.bridge_asset for p in ranked] == ["A", "C", "B"]

    def test_balanced_identical_plans(self):
        """Test zero spans do not divide by zero."""
        ranked = RouteSearcher().rank([plan("B", 1.0, 5), plan("A", 1.0, 5)], Strategy.BALANCED)

        assert [p.bridge_asset for p in ranked] == ["A", "B"]

    def test_tie_prefers_known_liquidity(self):
        """Test equal scores rank known liquidity first, then time, then symbol."""
        plans = [
            plan("A", 1.0, 5, liquidity_known=False),
            plan("B", 1.0, 10),
            plan("C", 1.0, 5),
            plan("D", 1.0, 5),
        ]

        ranked = RouteSearcher().rank(plans, Strategy.CHEAPEST)

        assert [p.bridge_asset for p in ranked] == ["C", "D", "B", "A"]


class TestSearch:
    """Tests for RouteSearcher.search."""

    @pytest.mark.parametrize("strategy", list(Strategy))
    def test_optimal_dominates_alternatives(self, strategy):
        """Test cheapest and fastest optimal plans dominate every alternative."""
        candidates = select_candidates(FACTS, FACTS, FACTS)
        outcome = RouteSearcher().search(request(strategy), candidates, FACTS, TABLE)

        assert outcome.no_route is None
        alternatives = outcome.ranked[1:]
        assert len(alternatives) == 3
        if strategy == Strategy.CHEAPEST:
            assert all(outcome.optimal.total_cost_pct <= alt.total_cost_pct for alt in alternatives)
        if strategy == Strategy.FASTEST:
            assert all(outcome.optimal.total_time_minutes <= alt.total_time_minutes for alt in alternatives)

    def test_cheapest_picks_xrp(self):
        """Test the low-fee asset wins the cheapest route."""
        outcome = RouteSearcher().search(request(), select_candidates(FACTS, FACTS, FACTS), FACTS, TABLE)

        assert outcome.optimal.bridge_asset == "XRP"
        assert outcome.evaluated == ("XRP", "BTC", "ETH", "SOL")

    def test_suspended_asset_never_returned(self):
        """Test a suspended asset appears in no plan."""
        candidates = select_candidates(FACTS, FACTS, FACTS, suspended_at_source=["XRP"])

        outcome = RouteSearcher().search(request(), candidates, FACTS, TABLE)

        assert all(p.bridge_asset != "XRP" for p in outcome.ranked)

    def test_alternatives_capped(self):
        """Test only max_alternatives plans follow the optimal one."""
        outcome = RouteSearcher(max_alternatives=1).search(
            request(), select_candidates(FACTS, FACTS, FACTS), FACTS, TABLE
        )

        assert len(outcome.ranked) == 2
        assert len(outcome.evaluated) == 4

    def test_no_viable_candidate(self):
        """Test every candidate failing reports no viable candidate with reasons."""
        facts = {"XRP": CandidateFacts("XRP", None, None)}

        outcome = RouteSearcher().search(request(), select_candidates(["XRP"], {"XRP"}, {"XRP"}), facts, TABLE)

        assert outcome.optimal is None
        assert outcome.no_route == NoRouteReason.NO_VIABLE_CANDIDATE
        assert outcome.skipped["XRP"].startswith("missing_price")

    def test_candidate_set_reason_propagates(self):
        """Test an empty candidate set short-circuits."""
        outcome = RouteSearcher().search(request(), select_candidates(["XRP"], {"XRP"}, set()), FACTS, TABLE)

        assert outcome.no_route == NoRouteReason.NO_COMMON_BRIDGE_ASSET
        assert outcome.ranked == ()

    def test_idempotent(self):
        """Test identical inputs give identical plans."""
        searcher = RouteSearcher()
        candidates = select_candidates(FACTS, FACTS, FACTS)

        first = searcher.search(request(), candidates, FACTS, TABLE, fx_rate=1 / 1450.0)
        second = searcher.search(request(), candidates, FACTS, TABLE, fx_rate=1 / 1450.0)

        assert first.ranked == second.ranked

    def test_with_signals(self):
        """Test signals are attached without changing the plans otherwise."""
        plans = (plan("A", 1.0, 5), plan("B", 2.0, 5))

        signed = with_signals(plans, lambda p: p.bridge_asset.lower())

        assert [p.signal for p in signed] == ["a", "b"]
        assert signed[0].total_cost_pct == 1.0
