"""Deterministic three-tier decision signal.

The same scorer labels route plans and plain two-venue spreads; only the
profile (thresholds, weights and reason templates) differs. Profiles are
module constants and cannot be tuned per call.
"""

import math
import statistics
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from bridgeroute.models import DecisionSignal, DecisionTier, PremiumTrend

CAVEAT = (
    "Estimate based on quoted prices and published fees at request time. "
    "Not a guarantee of execution; real fills, fees and transfer times may differ."
)


@dataclass(frozen=True)
class ScoringProfile:
    """Thresholds and weights applied to an adjusted cost in percent.

    ``adjusted < favorable_below`` is favorable, ``adjusted > unfavorable_above``
    is unfavorable, anything in between is neutral.
    """

    name: str
    favorable_below: float
    unfavorable_above: float
    slippage_weight: float
    time_weight: float
    time_grace_minutes: float
    confidence_scale: float
    reasons: Mapping[DecisionTier, str]


ROUTE_PROFILE = ScoringProfile(
    name="route",
    favorable_below=1.4,
    unfavorable_above=3.2,
    slippage_weight=0.4,
    time_weight=0.07,
    time_grace_minutes=2.0,
    confidence_scale=1.0,
    reasons={
        DecisionTier.FAVORABLE: (
            "Projected cost {cost:.2f}% with risk penalty {penalty:.2f}% "
            "(adjusted {adjusted:.2f}%) is below the {low:.2f}% favorable threshold."
        ),
        DecisionTier.NEUTRAL: (
            "Projected cost {cost:.2f}% with risk penalty {penalty:.2f}% "
            "(adjusted {adjusted:.2f}%) is between {low:.2f}% and {high:.2f}%."
        ),
        DecisionTier.UNFAVORABLE: (
            "Projected cost {cost:.2f}% with risk penalty {penalty:.2f}% "
            "(adjusted {adjusted:.2f}%) exceeds the {high:.2f}% unfavorable threshold."
        ),
    },
)

# Scored on negative net profit: a 1% net spread is an adjusted cost of -1%
SPREAD_PROFILE = ScoringProfile(
    name="spread",
    favorable_below=-1.0,
    unfavorable_above=0.0,
    slippage_weight=1.0,
    time_weight=0.0,
    time_grace_minutes=0.0,
    confidence_scale=1.0,
    reasons={
        DecisionTier.FAVORABLE: (
            "Net spread {net:.2f}% after fees, slippage {slippage:.2f}% and risk penalty "
            "{penalty:.2f}% clears the {favorable_net:.2f}% threshold."
        ),
        DecisionTier.NEUTRAL: (
            "Net spread {net:.2f}% after fees, slippage {slippage:.2f}% and risk penalty "
            "{penalty:.2f}% is non-negative but below {favorable_net:.2f}%."
        ),
        DecisionTier.UNFAVORABLE: (
            "Net spread {net:.2f}% after fees, slippage {slippage:.2f}% and risk penalty "
            "{penalty:.2f}% does not cover costs."
        ),
    },
)


def risk_penalty(
    slippage_pct: float,
    transfer_time_minutes: float,
    volatility_pct: Optional[float] = None,
    profile: ScoringProfile = ROUTE_PROFILE,
) -> float:
    """Slippage, waiting time and price-move risk over the transfer, in percent."""
    minutes = max(0.0, transfer_time_minutes)
    penalty = profile.slippage_weight * slippage_pct
    penalty += profile.time_weight * max(0.0, minutes - profile.time_grace_minutes)
    if volatility_pct:
        # Hourly volatility scaled to the transfer window
        penalty += abs(volatility_pct) * math.sqrt(minutes / 60)
    return penalty


def score(
    total_cost_pct: float,
    slippage_pct: float,
    transfer_time_minutes: float,
    volatility_pct: Optional[float] = None,
    profile: ScoringProfile = ROUTE_PROFILE,
) -> DecisionSignal:
    """Label a cost as favorable, neutral or unfavorable.

    Args:
        total_cost_pct: Cost of the plan in percent (for spreads, the negated
            profit before slippage)
        slippage_pct: Estimated slippage in percent
        transfer_time_minutes: Time the funds spend in transit
        volatility_pct: Optional hourly volatility of the bridge asset
        profile: ROUTE_PROFILE or SPREAD_PROFILE

    Returns:
        DecisionSignal whose confidence grows with the distance from the
        nearest threshold, clamped to [0, 1]
    """
    penalty = risk_penalty(slippage_pct, transfer_time_minutes, volatility_pct, profile)
    adjusted = total_cost_pct + penalty
    low, high = profile.favorable_below, profile.unfavorable_above

    if adjusted < low:
        tier = DecisionTier.FAVORABLE
        distance = low - adjusted
    elif adjusted > high:
        tier = DecisionTier.UNFAVORABLE
        distance = adjusted - high
    else:
        tier = DecisionTier.NEUTRAL
        distance = min(adjusted - low, high - adjusted)

    confidence = 0.5 + distance / (2 * profile.confidence_scale)
    confidence = round(min(1.0, max(0.0, confidence)), 2)

    reason = profile.reasons[tier].format(
        cost=total_cost_pct,
        penalty=penalty,
        adjusted=adjusted,
        low=low,
        high=high,
        slippage=slippage_pct,
        net=-adjusted,
        favorable_net=-low,
        minutes=transfer_time_minutes,
    )
    return DecisionSignal(
        tier=tier,
        confidence=confidence,
        reason=reason,
        adjusted_cost_pct=round(adjusted, 6),
        caveat=CAVEAT,
    )


def blocked_signal(reason: str, adjusted_cost_pct: float) -> DecisionSignal:
    """Unfavorable with full confidence, for opportunities that cannot be acted on."""
    return DecisionSignal(
        tier=DecisionTier.UNFAVORABLE,
        confidence=1.0,
        reason=reason,
        adjusted_cost_pct=round(adjusted_cost_pct, 6),
        caveat=CAVEAT,
    )


# Net change over the window that counts as a move rather than noise
TREND_THRESHOLD_PCT = 0.3


def premium_trend(premiums: Sequence[float]) -> PremiumTrend:
    """Direction and population standard deviation of a premium series, oldest first.

    Fewer than two samples carry no information: stable with zero volatility.
    """
    if len(premiums) < 2:
        return PremiumTrend("stable", 0.0, len(premiums))

    change = premiums[-1] - premiums[0]
    if change > TREND_THRESHOLD_PCT:
        direction = "rising"
    elif change < -TREND_THRESHOLD_PCT:
        direction = "falling"
    else:
        direction = "stable"
    return PremiumTrend(direction, round(statistics.pstdev(premiums), 2), len(premiums))
