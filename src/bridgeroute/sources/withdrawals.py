"""Withdrawal suspension status per venue and asset."""

import logging
from abc import ABC, abstractmethod
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bridgeroute.cache import CacheCoalescer
from bridgeroute.config import Settings, get_settings
from bridgeroute.errors import UpstreamUnavailable
from bridgeroute.models import Freshness, Sourced
from bridgeroute.sources.base import FallbackChain, WithdrawalStatusProvider, freshness_of
from bridgeroute.storage.database import session_scope
from bridgeroute.storage.repository import MarketDataRepository

logger = logging.getLogger(__name__)


class WithdrawalStatusSource(ABC):
    """Answers whether withdrawals of an asset are suspended at a venue."""

    @abstractmethod
    async def is_suspended(self, venue: str, asset: str) -> Sourced[bool]:
        pass

    async def suspended_among(self, venue: str, assets: Sequence[str]) -> Sourced[frozenset[str]]:
        """Which of ``assets`` are suspended at ``venue``."""
        statuses = [await self.is_suspended(venue, a) for a in assets]
        return _combine(
            frozenset(a.upper() for a, s in zip(assets, statuses) if s.value),
            statuses,
        )


def _combine(value: frozenset[str], parts: Sequence[Sourced]) -> Sourced[frozenset[str]]:
    if not parts:
        return Sourced(value, "none", Freshness.LIVE)
    warnings: dict[str, None] = {}
    for part in parts:
        for warning in part.warnings:
            warnings.setdefault(warning, None)
    sources = sorted({p.source for p in parts})
    return Sourced(
        value,
        "+".join(sources),
        Freshness.worst([p.freshness for p in parts]),
        max(p.age_ms for p in parts),
        tuple(warnings),
    )


class StaticWithdrawalStatusSource(WithdrawalStatusSource):
    """In-memory set of suspended (venue, asset) pairs."""

    def __init__(self, suspended: Iterable[tuple[str, str]] = ()):
        self._suspended = {(v.lower(), a.upper()) for v, a in suspended}

    def suspend(self, venue: str, asset: str) -> None:
        self._suspended.add((venue.lower(), asset.upper()))

    def resume(self, venue: str, asset: str) -> None:
        self._suspended.discard((venue.lower(), asset.upper()))

    async def is_suspended(self, venue: str, asset: str) -> Sourced[bool]:
        return Sourced((venue.lower(), asset.upper()) in self._suspended, "static", Freshness.LIVE)


class RepositoryWithdrawalStatusSource(WithdrawalStatusSource):
    """The ``suspended`` flag on withdrawal fee rows, cached through the coalescer."""

    def __init__(
        self,
        cache: CacheCoalescer,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self._session_factory = session_factory
        self.settings = settings or get_settings()

    async def suspended_assets(self, venue: str) -> Sourced[frozenset[str]]:
        async def fetch() -> dict[str, set[str]]:
            async with session_scope(self._session_factory) as session:
                return await MarketDataRepository(session).get_suspensions()

        try:
            hit = await self.cache.get(
                "withdrawal:persisted",
                fetch,
                self.settings.withdrawal_status_ttl,
                self.settings.withdrawal_status_ttl,
            )
        except UpstreamUnavailable as e:
            logger.error(f"Suspension flags unreadable: {e}")
            return Sourced(frozenset(), "repository", Freshness.FALLBACK, 0, (
                "Withdrawal suspension status unavailable; assuming withdrawals are open.",
            ))
        assets = frozenset(hit.value.get(venue.lower(), set()))
        return Sourced(assets, "repository", freshness_of(hit.from_cache, hit.stale), hit.age_ms)

    async def is_suspended(self, venue: str, asset: str) -> Sourced[bool]:
        sourced = await self.suspended_assets(venue)
        return Sourced(
            asset.upper() in sourced.value, sourced.source, sourced.freshness, sourced.age_ms, sourced.warnings
        )

    async def suspended_among(self, venue: str, assets: Sequence[str]) -> Sourced[frozenset[str]]:
        sourced = await self.suspended_assets(venue)
        wanted = {a.upper() for a in assets}
        return Sourced(sourced.value & wanted, sourced.source, sourced.freshness, sourced.age_ms, sourced.warnings)


class LiveWithdrawalStatusSource(WithdrawalStatusSource):
    """Venue-published status where an API exists, the persisted flag otherwise.

    An asset missing from a venue's live response falls back to the persisted
    flag for that asset.
    """

    def __init__(
        self,
        cache: CacheCoalescer,
        providers: Sequence[WithdrawalStatusProvider],
        persisted: WithdrawalStatusSource,
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self.providers = list(providers)
        self.persisted = persisted
        self.settings = settings or get_settings()

    async def is_suspended(self, venue: str, asset: str) -> Sourced[bool]:
        venue, asset = venue.lower(), asset.upper()
        live = await self._live_statuses(venue)
        if live is None or asset not in live.value:
            return await self.persisted.is_suspended(venue, asset)
        return Sourced(live.value[asset], live.source, live.freshness, live.age_ms)

    async def suspended_among(self, venue: str, assets: Sequence[str]) -> Sourced[frozenset[str]]:
        venue = venue.lower()
        assets = [a.upper() for a in assets]
        live = await self._live_statuses(venue)
        if live is None:
            return await self.persisted.suspended_among(venue, assets)

        statuses = live.value
        answered = Sourced(
            frozenset(a for a in assets if statuses.get(a)), live.source, live.freshness, live.age_ms
        )
        missing = [a for a in assets if a not in statuses]
        if not missing:
            return answered
        persisted = await self.persisted.suspended_among(venue, missing)
        return _combine(answered.value | persisted.value, [answered, persisted])

    async def _live_statuses(self, venue: str) -> Optional[Sourced[dict[str, bool]]]:
        providers = [p for p in self.providers if p.supports_venue(venue)]
        if not providers:
            return None

        chain = FallbackChain(f"withdrawal:{venue}", providers, self.settings.provider_timeout_seconds)

        async def fetch() -> dict[str, bool]:
            result = await chain.fetch(lambda p: p.fetch_statuses(venue))
            return {k.upper(): bool(v) for k, v in result.value.items()}

        try:
            hit = await self.cache.get(
                f"withdrawal:{venue}",
                fetch,
                self.settings.withdrawal_status_ttl,
                self.settings.withdrawal_status_ttl,
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Live withdrawal status for {venue} unavailable, using persisted flags: {e}")
            return None
        return Sourced(hit.value, f"{venue}:assetsstatus", freshness_of(hit.from_cache, hit.stale), hit.age_ms)
