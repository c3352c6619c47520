"""Per-leg cost model.

Pure functions: every input is a value already fetched by a source, so the
same facts always produce the same legs.
"""

import math
from typing import Mapping, Optional, Sequence

from bridgeroute.catalog import DEFAULT_TRANSFER_TIME_MINUTES, TRANSFER_TIME_MINUTES
from bridgeroute.models import (
    UNKNOWN_LIQUIDITY,
    FeeTable,
    FeeValue,
    LegCost,
    LegType,
    LiquidityEstimate,
    LiquidityStatus,
    OrderbookLevel,
    OrderbookSnapshot,
    RouteLeg,
)

# Floor applied when the visible book cannot fill the trade
BOOK_EXHAUSTED_MIN_SLIPPAGE_PCT = 2.0

# Applied when no orderbook could be fetched at all
UNKNOWN_LIQUIDITY_SLIPPAGE_PCT = 2.0

# Leftover below this fraction of the order is float residue, not unfilled size
FILL_TOLERANCE = 1e-12


class NonViableLeg(ValueError):
    """A leg leaves nothing to carry forward (e.g. withdrawal fee >= amount)."""


def trading_cost_pct(fee_table: FeeTable, venue: str) -> FeeValue:
    """Trading fee % for a venue, tagged when it is a catalog default.

    Raises:
        KeyError: The fee table has no row for the venue
    """
    return fee_table.trading[venue.lower()]


def withdrawal_cost_absolute(fee_table: FeeTable, venue: str, asset: str) -> Optional[FeeValue]:
    """Fixed withdrawal fee in asset units, or None when the venue does not list the asset."""
    return fee_table.withdrawal.get((venue.lower(), asset.upper()))


def slippage_pct(levels: Optional[Sequence[OrderbookLevel]], quantity: float) -> LiquidityEstimate:
    """Estimate slippage of a market order walking ``levels`` best price first.

    ``levels`` is the side the taker consumes (asks to buy, bids to sell) and
    ``quantity`` is in base units. ``None`` means no book was available and
    yields UNKNOWN liquidity. A book that cannot fill the order, including an
    empty one, is reported as BOOK_EXHAUSTED with at least
    ``BOOK_EXHAUSTED_MIN_SLIPPAGE_PCT``.

    The estimate is non-decreasing in ``quantity`` for a fixed book.
    """
    if levels is None:
        return UNKNOWN_LIQUIDITY

    valid = [
        lv
        for lv in levels
        if math.isfinite(lv.price) and math.isfinite(lv.quantity) and lv.price > 0 and lv.quantity > 0
    ]
    if not valid:
        return LiquidityEstimate(LiquidityStatus.BOOK_EXHAUSTED, BOOK_EXHAUSTED_MIN_SLIPPAGE_PCT, 0.0)
    if quantity <= 0:
        return LiquidityEstimate(LiquidityStatus.KNOWN, 0.0, 0.0)

    best = valid[0].price
    remaining = quantity
    tolerance = quantity * FILL_TOLERANCE
    filled = 0.0
    notional = 0.0
    for level in valid:
        take = min(level.quantity, remaining)
        filled += take
        notional += take * level.price
        remaining -= take
        if remaining <= tolerance:
            break

    vwap = notional / filled
    slip = abs(vwap - best) / best * 100

    if remaining > tolerance:
        return LiquidityEstimate(
            LiquidityStatus.BOOK_EXHAUSTED, max(slip, BOOK_EXHAUSTED_MIN_SLIPPAGE_PCT), filled
        )
    return LiquidityEstimate(LiquidityStatus.KNOWN, slip, filled)


def book_slippage(book: Optional[OrderbookSnapshot], buying: bool, quantity: float) -> LiquidityEstimate:
    """``slippage_pct`` on the side of ``book`` a buy or sell consumes."""
    return slippage_pct(book.side(buying) if book is not None else None, quantity)


def assumed_slippage_pct(
    estimate: LiquidityEstimate, unknown_pct: float = UNKNOWN_LIQUIDITY_SLIPPAGE_PCT
) -> float:
    """Slippage to charge for an estimate; unknown liquidity is penalised, never free."""
    if estimate.slippage_pct is None:
        return unknown_pct
    return estimate.slippage_pct


def transfer_time_minutes(
    asset: str, table: Mapping[str, float] = TRANSFER_TIME_MINUTES
) -> float:
    """Typical on-chain transfer time, with a default for unlisted assets."""
    return float(table.get(asset.upper(), DEFAULT_TRANSFER_TIME_MINUTES))


def buy_leg(
    venue: str,
    currency: str,
    asset: str,
    amount: float,
    price: float,
    fee: FeeValue,
    liquidity: LiquidityEstimate,
    unknown_pct: float = UNKNOWN_LIQUIDITY_SLIPPAGE_PCT,
) -> RouteLeg:
    """Spend ``amount`` of ``currency`` on ``asset`` at ``venue``."""
    slip = assumed_slippage_pct(liquidity, unknown_pct)
    units = amount / price * (1 - fee.value / 100) * (1 - slip / 100)
    if units <= 0:
        raise NonViableLeg(f"buying {asset} at {venue} leaves nothing after costs")
    return RouteLeg(
        type=LegType.BUY,
        from_venue=venue,
        from_currency=currency,
        to_venue=venue,
        to_currency=asset,
        cost=LegCost(fee_pct=fee.value, slippage_pct=slip),
        amount_in=amount,
        amount_out=units,
        liquidity=liquidity.status,
        fee_is_fallback=fee.is_fallback,
    )


def transfer_leg(
    source_venue: str,
    dest_venue: str,
    asset: str,
    units: float,
    withdrawal_fee: FeeValue,
    transfer_times: Mapping[str, float] = TRANSFER_TIME_MINUTES,
) -> RouteLeg:
    """Withdraw ``units`` of ``asset`` from the source to the destination venue.

    Raises:
        NonViableLeg: The withdrawal fee consumes the whole amount
    """
    arrived = units - withdrawal_fee.value
    if arrived <= 0:
        raise NonViableLeg(
            f"withdrawal fee {withdrawal_fee.value} {asset} exceeds transferred amount {units:.8f}"
        )
    return RouteLeg(
        type=LegType.TRANSFER,
        from_venue=source_venue,
        from_currency=asset,
        to_venue=dest_venue,
        to_currency=asset,
        cost=LegCost(
            withdrawal_fee_absolute=withdrawal_fee.value,
            withdrawal_fee_pct=withdrawal_fee.value / units * 100,
            time_minutes=transfer_time_minutes(asset, transfer_times),
        ),
        amount_in=units,
        amount_out=arrived,
        fee_is_fallback=withdrawal_fee.is_fallback,
    )


def sell_leg(
    venue: str,
    asset: str,
    currency: str,
    units: float,
    price: float,
    fee: FeeValue,
    liquidity: LiquidityEstimate,
    unknown_pct: float = UNKNOWN_LIQUIDITY_SLIPPAGE_PCT,
) -> RouteLeg:
    """Sell ``units`` of ``asset`` for ``currency`` at ``venue``."""
    slip = assumed_slippage_pct(liquidity, unknown_pct)
    proceeds = units * price * (1 - fee.value / 100) * (1 - slip / 100)
    if proceeds <= 0:
        raise NonViableLeg(f"selling {asset} at {venue} leaves nothing after costs")
    return RouteLeg(
        type=LegType.SELL,
        from_venue=venue,
        from_currency=asset,
        to_venue=venue,
        to_currency=currency,
        cost=LegCost(fee_pct=fee.value, slippage_pct=slip),
        amount_in=units,
        amount_out=proceeds,
        liquidity=liquidity.status,
        fee_is_fallback=fee.is_fallback,
    )
