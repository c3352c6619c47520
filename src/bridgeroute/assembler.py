"""Response assembly with mandatory freshness and provenance metadata."""

from datetime import datetime, timezone
from typing import Iterable, Optional, TypeVar

from bridgeroute.models import (
    Freshness,
    RouteMeta,
    RoutePlan,
    RouteRequest,
    RouteResult,
    Sourced,
)
from bridgeroute.router import SearchOutcome

T = TypeVar("T")

# Source names that describe an absence or a fixed conversion, not an upstream
NON_SOURCES = frozenset({"none", "peg"})


class Provenance:
    """Request-scoped record of every fact used in a computation.

    Freshness only ever gets worse as facts are recorded, so a response can
    never claim ``live`` if any input was cached, stale or a fallback.
    """

    def __init__(self):
        self._freshness = Freshness.LIVE
        self._sources: dict[str, None] = {}
        self._warnings: dict[str, None] = {}

    def record(self, sourced: Sourced[T]) -> T:
        """Note a fact's freshness, source and warnings; return its value."""
        self.degrade(sourced.freshness)
        if sourced.source not in NON_SOURCES:
            for name in sourced.source.split("+"):
                self._sources.setdefault(name, None)
        for warning in sourced.warnings:
            self.warn(warning)
        return sourced.value

    def degrade(self, freshness: Freshness) -> None:
        self._freshness = Freshness.worst([self._freshness, freshness])

    def warn(self, message: str) -> None:
        self._warnings.setdefault(message, None)

    @property
    def freshness(self) -> Freshness:
        return self._freshness

    @property
    def sources(self) -> tuple[str, ...]:
        return tuple(self._sources)

    @property
    def warnings(self) -> tuple[str, ...]:
        return tuple(self._warnings)

    def meta(self, **extra) -> RouteMeta:
        """Build response metadata from everything recorded so far."""
        return RouteMeta(
            data_freshness=self.freshness,
            sources_used=self.sources,
            warnings=self.warnings,
            generated_at=datetime.now(timezone.utc).isoformat(),
            **extra,
        )


def assemble(
    request: RouteRequest,
    outcome: SearchOutcome,
    provenance: Provenance,
    plans: Optional[Iterable[RoutePlan]] = None,
    bridge_assets_total: int = 0,
    fees_source: str = "repository",
) -> RouteResult:
    """Package the ranked plans with their metadata.

    Args:
        plans: Ranked plans to return (defaults to ``outcome.ranked``), e.g.
            after decision signals have been attached
    """
    ranked = tuple(plans if plans is not None else outcome.ranked)

    if any(p.uses_fallback_fees for p in ranked):
        fees_source = "fallback"
        provenance.degrade(Freshness.FALLBACK)
        provenance.warn("Some fees are catalog defaults (no stored fee row); actual fees may differ.")
    for asset, reason in outcome.skipped.items():
        provenance.warn(f"Skipped bridge asset {asset}: {reason}")
    if any(not p.liquidity_known for p in ranked):
        provenance.warn(
            "Orderbook unavailable for at least one leg; a conservative slippage was assumed."
        )

    meta = provenance.meta(
        routes_evaluated=len(outcome.evaluated),
        bridge_assets_total=bridge_assets_total,
        evaluated_assets=outcome.evaluated,
        skipped_assets=tuple(outcome.skipped),
        fees_source=fees_source,
    )
    return RouteResult(
        request=request,
        optimal=ranked[0] if ranked else None,
        alternatives=ranked[1:],
        meta=meta,
        no_route=outcome.no_route,
    )
