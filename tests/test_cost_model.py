"""Tests for the per-leg cost model."""

import pytest

from bridgeroute import cost_model
from bridgeroute.models import (
    FeeTable,
    FeeValue,
    LegType,
    LiquidityEstimate,
    LiquidityStatus,
    OrderbookLevel,
)

from conftest import make_book


def levels(*pairs):
    return [OrderbookLevel(p, q) for p, q in pairs]


def fee(value: float, is_fallback: bool = False) -> FeeValue:
    return FeeValue(value, is_fallback, "test")


KNOWN_ZERO = LiquidityEstimate(LiquidityStatus.KNOWN, 0.0, 0.0)


class TestSlippage:
    """Tests for slippage_pct."""

    def test_no_book_is_unknown(self):
        """Test a missing book reports unknown liquidity, not zero slippage."""
        estimate = cost_model.slippage_pct(None, 10)

        assert estimate.status == LiquidityStatus.UNKNOWN
        assert estimate.slippage_pct is None
        assert estimate.known is False

    def test_fill_at_best_level(self):
        """Test an order inside the best level has no slippage."""
        estimate = cost_model.slippage_pct(levels((100, 5), (101, 5)), 3)

        assert estimate.status == LiquidityStatus.KNOWN
        assert estimate.slippage_pct == 0.0
        assert estimate.filled_quantity == 3

    def test_walks_levels(self):
        """Test VWAP against best price across two levels."""
        estimate = cost_model.slippage_pct(levels((100, 1), (101, 1)), 2)

        assert estimate.slippage_pct == pytest.approx(0.5)

    def test_bid_side(self):
        """Test walking bids measures the price drop."""
        estimate = cost_model.slippage_pct(levels((100, 1), (99, 1)), 2)

        assert estimate.slippage_pct == pytest.approx(0.5)

    def test_book_exhausted_has_floor(self):
        """Test a book that cannot fill the order is flagged with at least 2%."""
        estimate = cost_model.slippage_pct(levels((100, 1), (101, 1)), 3)

        assert estimate.status == LiquidityStatus.BOOK_EXHAUSTED
        assert estimate.book_exhausted is True
        assert estimate.slippage_pct == cost_model.BOOK_EXHAUSTED_MIN_SLIPPAGE_PCT
        assert estimate.filled_quantity == 2

    def test_exhausted_keeps_larger_walk(self):
        """Test the floor does not hide a worse VWAP."""
        estimate = cost_model.slippage_pct(levels((100, 1), (120, 1)), 5)

        assert estimate.slippage_pct == pytest.approx(10.0)
        assert estimate.book_exhausted is True

    def test_empty_book_is_exhausted(self):
        """Test a present but empty book is exhausted, not unknown."""
        estimate = cost_model.slippage_pct([], 1)

        assert estimate.status == LiquidityStatus.BOOK_EXHAUSTED
        assert estimate.slippage_pct == cost_model.BOOK_EXHAUSTED_MIN_SLIPPAGE_PCT

    def test_exact_depth_fills(self):
        """Test an order matching the book's depth is filled despite float residue."""
        estimate = cost_model.slippage_pct(levels((100, 0.1), (100, 0.7)), 0.8)

        assert estimate.status == LiquidityStatus.KNOWN
        assert estimate.slippage_pct == pytest.approx(0.0)
        assert estimate.filled_quantity == pytest.approx(0.8)

    def test_invalid_levels_skipped(self):
        """Test zero and non-finite levels are ignored."""
        estimate = cost_model.slippage_pct(levels((0, 5), (float("nan"), 1), (100, 2), (100.5, -1)), 1)

        assert estimate.slippage_pct == 0.0
        assert estimate.status == LiquidityStatus.KNOWN

    def test_monotone_in_quantity(self):
        """Test slippage never decreases as the order grows on a fixed book."""
        book = levels((100, 0.5), (100.2, 1), (100.7, 2), (101.5, 0.3), (103, 1))
        quantities = [0.1, 0.5, 0.6, 1.5, 2.0, 3.4, 3.8, 4.5, 4.8, 10, 100]

        estimates = [cost_model.slippage_pct(book, q).slippage_pct for q in quantities]

        assert all(a <= b for a, b in zip(estimates, estimates[1:]))

    def test_book_slippage_picks_side(self):
        """Test buys walk asks and sells walk bids."""
        book = make_book("upbit", "XRP", 1000.0, 1.0, levels=3, step=0.01)

        buy = cost_model.book_slippage(book, True, 2)
        sell = cost_model.book_slippage(book, False, 2)

        # asks 1010, 1020; bids 990, 980
        assert buy.slippage_pct == pytest.approx((1015 - 1010) / 1010 * 100)
        assert sell.slippage_pct == pytest.approx((990 - 985) / 990 * 100)
        assert cost_model.book_slippage(None, True, 2).status == LiquidityStatus.UNKNOWN


class TestFeesAndTimes:
    """Tests for fee lookups and transfer times."""

    def test_fee_lookups(self):
        """Test fee table reads are case-insensitive."""
        table = FeeTable(
            trading={"bithumb": fee(0.25, True)},
            withdrawal={("bithumb", "XRP"): fee(1.0)},
        )

        assert cost_model.trading_cost_pct(table, "Bithumb").value == 0.25
        assert cost_model.withdrawal_cost_absolute(table, "BITHUMB", "xrp").value == 1.0
        assert cost_model.withdrawal_cost_absolute(table, "bithumb", "SOL") is None
        with pytest.raises(KeyError):
            cost_model.trading_cost_pct(table, "upbit")

    def test_transfer_time(self):
        """Test catalog transfer times and the default."""
        assert cost_model.transfer_time_minutes("xrp") == 0.5
        assert cost_model.transfer_time_minutes("BTC") == 28
        assert cost_model.transfer_time_minutes("NEWCOIN") == 10

    def test_assumed_slippage(self):
        """Test unknown liquidity is charged the configured assumption."""
        assert cost_model.assumed_slippage_pct(cost_model.slippage_pct(None, 1)) == 2.0
        assert cost_model.assumed_slippage_pct(cost_model.slippage_pct(None, 1), 3.5) == 3.5
        assert cost_model.assumed_slippage_pct(KNOWN_ZERO, 3.5) == 0.0


class TestLegs:
    """Tests for the buy, transfer and sell legs."""

    def test_buy_leg(self):
        """Test units bought after fee and slippage."""
        leg = cost_model.buy_leg("bithumb", "KRW", "XRP", 1_000_000, 1000.0, fee(0.25), KNOWN_ZERO)

        assert leg.type == LegType.BUY
        assert leg.amount_out == pytest.approx(997.5)
        assert leg.cost.cost_pct == pytest.approx(0.25)
        assert leg.cost.time_minutes == 0

    def test_buy_leg_unknown_liquidity(self):
        """Test unknown liquidity is penalised on the leg."""
        unknown = cost_model.slippage_pct(None, 1000)
        leg = cost_model.buy_leg("gopax", "KRW", "XRP", 1_000_000, 1000.0, fee(0.2, True), unknown)

        assert leg.liquidity == LiquidityStatus.UNKNOWN
        assert leg.cost.slippage_pct == 2.0
        assert leg.fee_is_fallback is True
        assert leg.amount_out == pytest.approx(1000 * 0.998 * 0.98)

    def test_transfer_leg(self):
        """Test the fixed withdrawal fee is converted to a percentage."""
        leg = cost_model.transfer_leg("bithumb", "binance", "XRP", 997.5, fee(1.0))

        assert leg.type == LegType.TRANSFER
        assert leg.amount_out == pytest.approx(996.5)
        assert leg.cost.withdrawal_fee_absolute == 1.0
        assert leg.cost.withdrawal_fee_pct == pytest.approx(100 / 997.5)
        assert leg.cost.time_minutes == 0.5

    def test_transfer_leg_non_viable(self):
        """Test a withdrawal fee that eats the whole amount is rejected."""
        with pytest.raises(cost_model.NonViableLeg):
            cost_model.transfer_leg("bithumb", "binance", "BTC", 0.0001, fee(0.001))

    def test_sell_leg(self):
        """Test proceeds after fee and slippage."""
        leg = cost_model.sell_leg("binance", "XRP", "USDT", 996.5, 0.7, fee(0.1), KNOWN_ZERO)

        assert leg.type == LegType.SELL
        assert leg.to_currency == "USDT"
        assert leg.amount_out == pytest.approx(996.5 * 0.7 * 0.999)
