"""FX rate source with plausibility bounds and a tagged hardcoded last resort."""

import logging
import math
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from bridgeroute.cache import CacheCoalescer
from bridgeroute.catalog import FX_BOUNDS, FX_FALLBACK_RATES, FallbackValue, usd_rate_currency
from bridgeroute.config import Settings, get_settings
from bridgeroute.errors import ImplausibleValue, UpstreamUnavailable
from bridgeroute.models import Freshness, FxRate, Sourced
from bridgeroute.sources.base import FallbackChain, FxProvider, freshness_of
from bridgeroute.sources.prices import now_ms
from bridgeroute.sources.snapshots import SnapshotStore

logger = logging.getLogger(__name__)

FX_CACHE_KEY = "fx:usd"


@dataclass(frozen=True)
class FxBoard:
    rates: dict[str, float]
    provider: str
    fetched_at_ms: int
    warnings: tuple[str, ...] = ()


def check_bounds(
    rates: Mapping[str, float],
    bounds: Mapping[str, tuple[float, float]] = FX_BOUNDS,
) -> None:
    """Reject a whole provider response if any tracked rate is implausible.

    Raises:
        ImplausibleValue: A rate is non-finite or outside its historical range
    """
    for currency, rate in rates.items():
        limits = bounds.get(currency)
        if limits is None:
            continue
        lower, upper = limits
        if not isinstance(rate, (int, float)) or not math.isfinite(rate) or not lower <= rate <= upper:
            raise ImplausibleValue(f"USD/{currency}", rate, lower, upper)


class FxSource:
    """USD-based FX rates: provider chain → stale cache → snapshot → hardcoded table."""

    def __init__(
        self,
        cache: CacheCoalescer,
        providers: Sequence[FxProvider],
        snapshots: Optional[SnapshotStore] = None,
        settings: Optional[Settings] = None,
        bounds: Optional[Mapping[str, tuple[float, float]]] = None,
        fallback_rates: Optional[Mapping[str, FallbackValue[float]]] = None,
    ):
        self.cache = cache
        self.snapshots = snapshots
        self.settings = settings or get_settings()
        self.bounds = dict(bounds if bounds is not None else FX_BOUNDS)
        self.fallback_rates = dict(fallback_rates if fallback_rates is not None else FX_FALLBACK_RATES)
        self.chain = FallbackChain("fx:USD", providers, self.settings.provider_timeout_seconds)

    async def _get_board(self) -> Sourced[FxBoard]:
        currencies = sorted(self.bounds)

        async def fetch() -> FxBoard:
            result = await self.chain.fetch(
                lambda p: p.fetch_rates(currencies),
                validate=lambda rates: check_bounds(rates, self.bounds),
            )
            return FxBoard(
                rates={k.upper(): float(v) for k, v in result.value.items()},
                provider=result.provider,
                fetched_at_ms=now_ms(),
                warnings=result.warnings,
            )

        hit = await self.cache.get(
            FX_CACHE_KEY, fetch, self.settings.fx_success_ttl, self.settings.fx_failure_ttl
        )
        board: FxBoard = hit.value
        warnings = list(board.warnings)
        if hit.stale:
            warnings.append(
                f"FX rates are stale (age {hit.age_ms // 1000}s); live refresh failed: {hit.error}"
            )
        return Sourced(board, board.provider, freshness_of(hit.from_cache, hit.stale), hit.age_ms, tuple(warnings))

    async def get_usd_rate(self, currency: str) -> Sourced[FxRate]:
        """Units of ``currency`` per one USD. Never raises for a currency with a fallback entry.

        Raises:
            UpstreamUnavailable: No provider, cache, snapshot or hardcoded rate exists
        """
        (rate,) = await self._usd_rates([currency])
        return rate

    async def get_rate(self, base: str, quote: str) -> Sourced[FxRate]:
        """Units of ``quote`` per one ``base``, crossed through USD when needed."""
        base_leg, quote_leg = await self._usd_rates([base, quote])
        rate = quote_leg.value.rate / base_leg.value.rate
        sources = sorted({base_leg.source, quote_leg.source} - {"peg"}) or ["peg"]
        source = "+".join(sources)
        fx = FxRate(base.upper(), quote.upper(), rate, min(base_leg.value.timestamp_ms, quote_leg.value.timestamp_ms), source)
        return Sourced(
            fx,
            source,
            Freshness.worst([base_leg.freshness, quote_leg.freshness]),
            max(base_leg.age_ms, quote_leg.age_ms),
            _merge(base_leg.warnings, quote_leg.warnings),
        )

    async def _usd_rates(self, currencies: Sequence[str]) -> list[Sourced[FxRate]]:
        currencies = [c.upper() for c in currencies]
        targets = [usd_rate_currency(c) for c in currencies]

        sourced: Optional[Sourced[FxBoard]] = None
        failure = ""
        if any(t is not None for t in targets):
            try:
                sourced = await self._get_board()
            except UpstreamUnavailable as e:
                failure = str(e)

        return [
            await self._resolve(currency, target, sourced, failure)
            for currency, target in zip(currencies, targets)
        ]

    async def _resolve(
        self,
        currency: str,
        target: Optional[str],
        sourced: Optional[Sourced[FxBoard]],
        failure: str,
    ) -> Sourced[FxRate]:
        if target is None:
            return Sourced(FxRate("USD", currency, 1.0, now_ms(), "peg"), "peg", Freshness.LIVE)

        if sourced is not None:
            board = sourced.value
            rate = board.rates.get(target)
            if rate is not None:
                fx = FxRate("USD", target, rate, board.fetched_at_ms, board.provider)
                return Sourced(fx, sourced.source, sourced.freshness, sourced.age_ms, sourced.warnings)
            failure = f"{target} missing from {board.provider} response"

        if self.snapshots is not None:
            snapshot = await self.snapshots.latest_fx_rate(target)
            if snapshot is not None and self._plausible(target, snapshot.value):
                age_ms = snapshot.age_ms()
                logger.warning(f"Using historical FX snapshot for USD/{target} ({age_ms // 1000}s old)")
                fx = FxRate("USD", target, snapshot.value, now_ms() - age_ms, f"snapshot:{snapshot.source}")
                return Sourced(
                    fx,
                    fx.source,
                    Freshness.FALLBACK,
                    age_ms,
                    (f"USD/{target} rate is a historical snapshot (age: {age_ms // 1000}s).",),
                )

        fallback = self.fallback_rates.get(target)
        if fallback is None:
            raise UpstreamUnavailable(f"fx:USD/{target}", failure)

        logger.error(f"FX chain exhausted for USD/{target}, using hardcoded rate {fallback.value}")
        fx = FxRate("USD", target, fallback.value, now_ms(), "fallback:hardcoded")
        return Sourced(
            fx,
            fx.source,
            Freshness.FALLBACK,
            0,
            (
                f"USD/{target} exchange rate is using a hardcoded fallback value "
                f"({fallback.reason}); actual rate may differ significantly.",
            ),
        )

    def _plausible(self, currency: str, rate: float) -> bool:
        try:
            check_bounds({currency: rate}, self.bounds)
        except ImplausibleValue:
            logger.warning(f"Discarding implausible FX snapshot USD/{currency}={rate}")
            return False
        return True


def _merge(*groups: tuple[str, ...]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for group in groups:
        for warning in group:
            seen.setdefault(warning, None)
    return tuple(seen)
