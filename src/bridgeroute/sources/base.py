"""Provider interfaces and the ordered fallback chain that drives them."""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, Sequence, TypeVar

from bridgeroute.errors import ImplausibleValue, UpstreamUnavailable
from bridgeroute.models import Freshness, OrderbookSnapshot
from bridgeroute.result import Err, Ok, Result

logger = logging.getLogger(__name__)

T = TypeVar("T")
P = TypeVar("P", bound="MarketProvider")


class MarketProvider(ABC):
    """Abstract base class for upstream market-data providers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name identifier."""
        pass

    @property
    @abstractmethod
    def venues(self) -> frozenset[str]:
        """Venues this provider can answer for."""
        pass

    def supports_venue(self, venue: str) -> bool:
        """Check if this provider covers the venue."""
        return venue.lower() in self.venues


class PriceProvider(MarketProvider):
    """Spot price board for a venue."""

    @abstractmethod
    async def fetch_prices(self, venue: str, assets: Sequence[str]) -> dict[str, float]:
        """
        Fetch spot prices for the given assets.

        Args:
            venue: Venue id (e.g., "bithumb")
            assets: Asset symbols wanted (e.g., ["BTC", "XRP"])

        Returns:
            Mapping asset -> price in the venue's quote currency. Assets the
            venue does not list are omitted.
        """
        pass


class DerivedPrices(dict):
    """Prices computed from other sourced facts rather than fetched.

    Carries the worst freshness and the warnings of its inputs so a board
    built from it is never reported fresher than what it was derived from.
    """

    def __init__(self, prices: dict[str, float], freshness: Freshness, warnings: Sequence[str] = ()):
        super().__init__(prices)
        self.freshness = freshness
        self.warnings = tuple(warnings)


class OrderbookProvider(MarketProvider):
    """Orderbook depth for a venue and asset."""

    @abstractmethod
    async def fetch_orderbook(self, venue: str, asset: str) -> Optional[OrderbookSnapshot]:
        """Fetch the current book, or None when the venue does not list the asset."""
        pass


class FxProvider(ABC):
    """Fiat exchange rates against USD."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    async def fetch_rates(self, currencies: Sequence[str]) -> dict[str, float]:
        """
        Fetch units of each currency per one USD.

        Returns:
            Mapping currency -> rate; currencies the provider lacks are omitted.
        """
        pass


class WithdrawalStatusProvider(MarketProvider):
    """Per-asset withdrawal suspension flags published by a venue."""

    @abstractmethod
    async def fetch_statuses(self, venue: str) -> dict[str, bool]:
        """Return mapping asset -> True when withdrawals are suspended."""
        pass


@dataclass(frozen=True)
class ChainValue(Generic[T]):
    """Value produced by a fallback chain plus the hops it took to get it."""

    value: T
    provider: str
    hops: int = 0
    warnings: tuple[str, ...] = ()


class AllProvidersFailed(UpstreamUnavailable):
    """Every provider in a chain failed; carries the per-hop warnings."""

    def __init__(self, key: str, warnings: Sequence[str]):
        detail = "; ".join(warnings) if warnings else "no provider configured"
        super().__init__(key, detail)
        self.warnings = tuple(warnings)


class FallbackChain(Generic[P]):
    """Try an ordered list of providers until one returns an acceptable value.

    Every provider call gets its own timeout. Exceptions, timeouts, empty
    values and ``ImplausibleValue`` from the validator all count as a failure
    of that provider and move the chain to the next one.
    """

    def __init__(self, label: str, providers: Sequence[P], timeout: float):
        self.label = label
        self.providers: list[P] = list(providers)
        self.timeout = timeout

    async def fetch(
        self,
        call: Callable[[P], Awaitable[T]],
        validate: Optional[Callable[[T], None]] = None,
    ) -> ChainValue[T]:
        """
        Run the chain.

        Raises:
            AllProvidersFailed: No provider produced an acceptable value
        """
        warnings: list[str] = []

        for hop, provider in enumerate(self.providers):
            logger.debug(f"{self.label}: requesting from {provider.name}...")
            outcome = await self._attempt(provider, call, validate)

            if isinstance(outcome, Ok):
                if hop > 0:
                    warnings.append(
                        f"{self.label} served by fallback provider {provider.name} "
                        f"after {hop} failed provider(s)"
                    )
                    logger.info(f"{self.label}: fell back to {provider.name} (hop {hop})")
                return ChainValue(
                    value=outcome.value, provider=provider.name, hops=hop, warnings=tuple(warnings)
                )

            message = f"{self.label}: {provider.name} failed ({outcome})"
            logger.warning(message)
            warnings.append(message)

        logger.error(f"{self.label}: all {len(self.providers)} provider(s) failed")
        raise AllProvidersFailed(self.label, warnings)

    async def _attempt(
        self,
        provider: P,
        call: Callable[[P], Awaitable[T]],
        validate: Optional[Callable[[T], None]],
    ) -> Result[T]:
        try:
            value = await asyncio.wait_for(call(provider), timeout=self.timeout)
        except asyncio.TimeoutError:
            return Err("timeout", f"no response within {self.timeout}s")
        except ImplausibleValue as e:
            return Err("implausible_value", str(e))
        except Exception as e:
            return Err("upstream_error", f"{type(e).__name__}: {e}")

        if value is None or (hasattr(value, "__len__") and len(value) == 0):
            return Err("empty_response")

        if validate is not None:
            try:
                validate(value)
            except ImplausibleValue as e:
                return Err("implausible_value", str(e))
        return Ok(value)


def is_valid_price(value: object) -> bool:
    """Finite, strictly positive number."""
    return isinstance(value, (int, float)) and math.isfinite(value) and value > 0


def clean_prices(prices: dict[str, object]) -> dict[str, float]:
    """Drop non-numeric, non-finite and non-positive prices; upper-case symbols."""
    cleaned: dict[str, float] = {}
    for symbol, raw in prices.items():
        try:
            price = float(raw)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            continue
        if is_valid_price(price):
            cleaned[symbol.strip().upper()] = price
    return cleaned


def freshness_of(from_cache: bool, stale: bool) -> Freshness:
    """Map a cache outcome onto the response-level freshness scale."""
    if stale:
        return Freshness.STALE
    return Freshness.CACHED if from_cache else Freshness.LIVE
