"""Static venue and asset catalog plus typed last-resort tables.

Every hardcoded number that can stand in for market data is wrapped in
``FallbackValue`` so that it is tagged as such wherever it ends up.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class FallbackValue(Generic[T]):
    """A hardcoded value used only when no live or persisted value exists."""

    value: T
    reason: str

    is_fallback: bool = field(default=True, init=False)


class VenueGroup(str, Enum):
    """Regional grouping of venues."""

    KOREAN = "korean"
    GLOBAL = "global"
    REGIONAL = "regional"


@dataclass(frozen=True)
class VenueSpec:
    """Static catalog entry for a trading venue."""

    id: str
    display_name: str
    country: str
    currencies: tuple[str, ...]
    group: VenueGroup

    @property
    def quote_currency(self) -> str:
        """Currency the venue's spot prices are quoted in."""
        return "USD" if self.group == VenueGroup.GLOBAL else self.currencies[0]


VENUES: dict[str, VenueSpec] = {
    "bithumb": VenueSpec("bithumb", "Bithumb", "South Korea", ("KRW",), VenueGroup.KOREAN),
    "upbit": VenueSpec("upbit", "Upbit", "South Korea", ("KRW",), VenueGroup.KOREAN),
    "coinone": VenueSpec("coinone", "Coinone", "South Korea", ("KRW",), VenueGroup.KOREAN),
    "gopax": VenueSpec("gopax", "GoPax", "South Korea", ("KRW",), VenueGroup.KOREAN),
    "bitflyer": VenueSpec("bitflyer", "bitFlyer", "Japan", ("JPY",), VenueGroup.REGIONAL),
    "wazirx": VenueSpec("wazirx", "WazirX", "India", ("INR",), VenueGroup.REGIONAL),
    "binance": VenueSpec("binance", "Binance", "Global", ("USDC", "USDT", "USD"), VenueGroup.GLOBAL),
    "okx": VenueSpec("okx", "OKX", "Global", ("USDC", "USDT", "USD"), VenueGroup.GLOBAL),
    "bybit": VenueSpec("bybit", "Bybit", "Global", ("USDC", "USDT", "USD"), VenueGroup.GLOBAL),
}

# Quote currencies treated as 1:1 with USD
USD_PEGGED = frozenset({"USD", "USDT", "USDC"})

BRIDGE_ASSETS: tuple[str, ...] = (
    "XRP", "SOL", "TRX", "KAIA", "ETH", "BTC", "ADA", "DOGE", "AVAX", "DOT", "LINK",
)

# Trading fee (%) per venue
DEFAULT_TRADING_FEES: dict[str, FallbackValue[float]] = {
    venue: FallbackValue(fee, "catalog default trading fee")
    for venue, fee in {
        "bithumb": 0.25, "upbit": 0.05, "coinone": 0.20,
        "gopax": 0.20, "bitflyer": 0.15, "wazirx": 0.20,
        "binance": 0.10, "okx": 0.08, "bybit": 0.10,
    }.items()
}

_WITHDRAWAL_FEES: dict[str, dict[str, float]] = {
    "bithumb": {"BTC": 0.001, "ETH": 0.01, "XRP": 1.0, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
                "DOT": 0.1, "LINK": 0.5, "AVAX": 0.01, "TRX": 1.0, "KAIA": 0.005},
    "upbit": {"BTC": 0.0005, "ETH": 0.01, "XRP": 1.0, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
              "DOT": 0.1, "LINK": 0.5, "AVAX": 0.01, "TRX": 1.0},
    "coinone": {"BTC": 0.0015, "ETH": 0.01, "XRP": 1.0, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
                "DOT": 0.1, "LINK": 0.5, "AVAX": 0.01, "TRX": 1.0, "KAIA": 0.86},
    "gopax": {"BTC": 0.002, "ETH": 0.01, "XRP": 1.0, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
              "TRX": 1.0, "LINK": 0.5, "AVAX": 0.01, "KAIA": 1.0},
    "bitflyer": {"BTC": 0.0004, "ETH": 0.005, "XRP": 0.1},
    "wazirx": {"BTC": 0.0006, "ETH": 0.005, "XRP": 1.0, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
               "DOT": 0.1, "LINK": 0.3, "AVAX": 0.01, "TRX": 1.0, "KAIA": 0.5},
    "binance": {"BTC": 0.0002, "ETH": 0.0016, "XRP": 0.25, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
                "DOT": 0.1, "LINK": 0.3, "AVAX": 0.01, "TRX": 1.0, "USDT": 1.0, "USDC": 1.0,
                "KAIA": 0.005},
    "okx": {"BTC": 0.0002, "ETH": 0.0008, "XRP": 0.2, "SOL": 0.008, "DOGE": 4.0, "ADA": 0.8,
            "DOT": 0.08, "LINK": 0.3, "AVAX": 0.01, "TRX": 1.0, "USDT": 1.0, "USDC": 1.0,
            "KAIA": 0.005},
    "bybit": {"BTC": 0.0002, "ETH": 0.0016, "XRP": 0.25, "SOL": 0.01, "DOGE": 5.0, "ADA": 1.0,
              "DOT": 0.1, "LINK": 0.3, "AVAX": 0.01, "TRX": 1.0, "USDT": 1.0, "USDC": 1.0,
              "KAIA": 0.005},
}

# Withdrawal fee (fixed amount in asset units) per venue per asset
DEFAULT_WITHDRAWAL_FEES: dict[str, dict[str, FallbackValue[float]]] = {
    venue: {asset: FallbackValue(fee, "catalog default withdrawal fee") for asset, fee in fees.items()}
    for venue, fees in _WITHDRAWAL_FEES.items()
}

# Typical on-chain transfer time (minutes) per asset
TRANSFER_TIME_MINUTES: dict[str, float] = {
    "BTC": 28, "ETH": 5, "XRP": 0.5, "SOL": 1, "DOGE": 10, "ADA": 5,
    "DOT": 5, "LINK": 5, "AVAX": 2, "TRX": 1, "KAIA": 1,
}
DEFAULT_TRANSFER_TIME_MINUTES = 10.0

# Plausible units of currency per 1 USD
FX_BOUNDS: dict[str, tuple[float, float]] = {
    "KRW": (500.0, 5000.0),
    "JPY": (50.0, 300.0),
    "INR": (20.0, 200.0),
    "IDR": (10000.0, 25000.0),
    "THB": (20.0, 50.0),
}

FX_FALLBACK_RATES: dict[str, FallbackValue[float]] = {
    currency: FallbackValue(rate, "hardcoded FX table")
    for currency, rate in {"KRW": 1450.0, "JPY": 150.0, "INR": 85.0, "IDR": 16200.0, "THB": 36.0}.items()
}


def default_withdrawal_fee(venue: str, asset: str) -> Optional[FallbackValue[float]]:
    """Catalog withdrawal fee for a venue/asset, if one is known."""
    return DEFAULT_WITHDRAWAL_FEES.get(venue.lower(), {}).get(asset.upper())


def default_tradeable_assets(venue: str) -> frozenset[str]:
    """Assets the catalog lists as withdrawable from a venue."""
    return frozenset(DEFAULT_WITHDRAWAL_FEES.get(venue.lower(), {}))


def usd_rate_currency(currency: str) -> Optional[str]:
    """Currency code to look up against USD, or None for USD-pegged currencies."""
    currency = currency.upper()
    return None if currency in USD_PEGGED else currency
