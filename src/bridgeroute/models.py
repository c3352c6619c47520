"""Value objects shared by sources, cost model, router and assembler.

All of these are recomputed per request from the current cache state.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class Freshness(str, Enum):
    """How a fact used in a computation was obtained, best to worst."""

    LIVE = "live"
    CACHED = "cached"
    STALE = "stale"
    FALLBACK = "fallback"

    @property
    def rank(self) -> int:
        return _FRESHNESS_ORDER.index(self)

    @classmethod
    def worst(cls, values: Iterable["Freshness"]) -> "Freshness":
        """Worst freshness in a collection (LIVE for an empty one)."""
        worst = cls.LIVE
        for value in values:
            if value.rank > worst.rank:
                worst = value
        return worst


_FRESHNESS_ORDER = [Freshness.LIVE, Freshness.CACHED, Freshness.STALE, Freshness.FALLBACK]


class Strategy(str, Enum):
    """Route ranking objective."""

    CHEAPEST = "cheapest"
    FASTEST = "fastest"
    BALANCED = "balanced"


class LiquidityStatus(str, Enum):
    """Outcome of an orderbook walk."""

    KNOWN = "known"
    UNKNOWN = "unknown"  # no orderbook available
    BOOK_EXHAUSTED = "book_exhausted"


class LegType(str, Enum):
    BUY = "buy"
    TRANSFER = "transfer"
    SELL = "sell"


class DecisionTier(str, Enum):
    FAVORABLE = "favorable"
    NEUTRAL = "neutral"
    UNFAVORABLE = "unfavorable"


class NoRouteReason(str, Enum):
    """Why a route request produced no plan."""

    NO_COMMON_BRIDGE_ASSET = "no_common_bridge_asset"
    ALL_CANDIDATES_SUSPENDED = "all_candidates_suspended"
    NO_VIABLE_CANDIDATE = "no_viable_candidate"


@dataclass(frozen=True)
class Sourced(Generic[T]):
    """A fact together with where it came from and how fresh it is."""

    value: T
    source: str
    freshness: Freshness
    age_ms: int = 0
    warnings: tuple[str, ...] = ()


@dataclass(frozen=True)
class PriceQuote:
    """Spot price of one asset at one venue, in the venue's quote currency."""

    venue: str
    asset: str
    currency: str
    price: float
    timestamp_ms: int
    source: str


@dataclass(frozen=True)
class OrderbookLevel:
    price: float
    quantity: float


@dataclass(frozen=True)
class OrderbookSnapshot:
    """Bid/ask levels for a venue and asset, best price first on each side."""

    venue: str
    asset: str
    bids: tuple[OrderbookLevel, ...]
    asks: tuple[OrderbookLevel, ...]
    timestamp_ms: int
    source: str

    @classmethod
    def from_levels(
        cls,
        venue: str,
        asset: str,
        bids: Iterable[tuple[float, float]],
        asks: Iterable[tuple[float, float]],
        timestamp_ms: int,
        source: str,
    ) -> "OrderbookSnapshot":
        """Build a snapshot from raw (price, quantity) pairs, sorting each side."""
        bid_levels = sorted(
            (OrderbookLevel(float(p), float(q)) for p, q in bids), key=lambda lv: -lv.price
        )
        ask_levels = sorted((OrderbookLevel(float(p), float(q)) for p, q in asks), key=lambda lv: lv.price)
        return cls(venue, asset.upper(), tuple(bid_levels), tuple(ask_levels), timestamp_ms, source)

    def side(self, buying: bool) -> tuple[OrderbookLevel, ...]:
        """Levels a taker walks: asks when buying, bids when selling."""
        return self.asks if buying else self.bids


@dataclass(frozen=True)
class FxRate:
    """Units of ``quote`` per one unit of ``base``."""

    base: str
    quote: str
    rate: float
    timestamp_ms: int
    source: str

    @property
    def pair(self) -> str:
        return f"{self.base}/{self.quote}"


@dataclass(frozen=True)
class FeeValue:
    """A fee read from the fee table, tagged when it is a catalog default."""

    value: float
    is_fallback: bool
    source: str


@dataclass(frozen=True)
class FeeTable:
    """The fee rows one request uses, keyed by venue and (venue, asset)."""

    trading: dict[str, FeeValue] = field(default_factory=dict)
    withdrawal: dict[tuple[str, str], FeeValue] = field(default_factory=dict)

    @property
    def uses_fallback(self) -> bool:
        return any(f.is_fallback for f in self.trading.values()) or any(
            f.is_fallback for f in self.withdrawal.values()
        )


@dataclass(frozen=True)
class LiquidityEstimate:
    """Slippage estimate from an orderbook walk.

    ``slippage_pct`` is None only for UNKNOWN liquidity; callers apply their
    own policy in that case.
    """

    status: LiquidityStatus
    slippage_pct: Optional[float] = None
    filled_quantity: float = 0.0

    @property
    def known(self) -> bool:
        return self.status != LiquidityStatus.UNKNOWN

    @property
    def book_exhausted(self) -> bool:
        return self.status == LiquidityStatus.BOOK_EXHAUSTED


UNKNOWN_LIQUIDITY = LiquidityEstimate(LiquidityStatus.UNKNOWN)


@dataclass(frozen=True)
class LegCost:
    """Cost breakdown of a single leg, all percentages of the leg's input."""

    fee_pct: float = 0.0
    slippage_pct: float = 0.0
    withdrawal_fee_absolute: float = 0.0
    withdrawal_fee_pct: float = 0.0
    time_minutes: float = 0.0

    @property
    def cost_pct(self) -> float:
        return self.fee_pct + self.slippage_pct + self.withdrawal_fee_pct


@dataclass(frozen=True)
class RouteLeg:
    type: LegType
    from_venue: str
    from_currency: str
    to_venue: str
    to_currency: str
    cost: LegCost
    amount_in: float
    amount_out: float
    liquidity: LiquidityStatus = LiquidityStatus.KNOWN
    fee_is_fallback: bool = False


@dataclass(frozen=True)
class DecisionSignal:
    tier: DecisionTier
    confidence: float
    reason: str
    adjusted_cost_pct: float
    caveat: str = ""


@dataclass(frozen=True)
class RoutePlan:
    bridge_asset: str
    legs: tuple[RouteLeg, ...]
    total_cost_pct: float
    total_time_minutes: float
    estimated_input_amount: float
    estimated_output_amount: float
    liquidity_known: bool
    uses_fallback_fees: bool = False
    spread_vs_fx_pct: Optional[float] = None
    signal: Optional[DecisionSignal] = None

    @property
    def bridge_coin(self) -> str:
        return self.bridge_asset

    @property
    def slippage_pct(self) -> float:
        return sum(leg.cost.slippage_pct for leg in self.legs)

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class RouteRequest:
    source_venue: str
    source_currency: str
    dest_venue: str
    dest_currency: str
    amount: float
    strategy: Strategy


@dataclass(frozen=True)
class RouteMeta:
    """Provenance attached to every response."""

    data_freshness: Freshness
    sources_used: tuple[str, ...]
    warnings: tuple[str, ...]
    routes_evaluated: int = 0
    bridge_assets_total: int = 0
    evaluated_assets: tuple[str, ...] = ()
    skipped_assets: tuple[str, ...] = ()
    fees_source: str = "repository"
    generated_at: str = ""


@dataclass(frozen=True)
class RouteResult:
    request: RouteRequest
    optimal: Optional[RoutePlan]
    alternatives: tuple[RoutePlan, ...]
    meta: RouteMeta
    no_route: Optional[NoRouteReason] = None

    @property
    def signal(self) -> Optional[DecisionSignal]:
        return self.optimal.signal if self.optimal else None

    def to_dict(self) -> dict:
        """Convert to a JSON-ready dictionary."""
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class PremiumTrend:
    """Direction and dispersion of a venue pair's recent premium history."""

    direction: str
    volatility_pct: float
    samples: int


@dataclass(frozen=True)
class SpreadResult:
    """Two-venue price comparison scored without building a route."""

    venue_a: str
    venue_b: str
    asset: str
    price_a_usd: float
    price_b_usd: float
    gross_spread_pct: float
    total_cost_pct: float
    net_spread_pct: float
    slippage_pct: float
    transfer_time_minutes: float
    withdrawal_suspended: bool
    signal: DecisionSignal
    meta: RouteMeta
    premium_trend: Optional[PremiumTrend] = None

    def to_dict(self) -> dict:
        return _jsonable(asdict(self))


@dataclass(frozen=True)
class VenueInfo:
    id: str
    name: str
    country: str
    group: str
    currencies: tuple[str, ...]
    trading_fee_pct: float
    fee_is_fallback: bool
    tradeable_assets: tuple[str, ...]
    status: str = "unknown"


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {
            ("/".join(k) if isinstance(k, tuple) else k): _jsonable(v) for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value
