"""Fee table access with tagged catalog defaults."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bridgeroute.cache import CacheCoalescer
from bridgeroute.catalog import (
    DEFAULT_TRADING_FEES,
    FallbackValue,
    default_tradeable_assets,
    default_withdrawal_fee,
)
from bridgeroute.config import Settings, get_settings
from bridgeroute.errors import UpstreamUnavailable
from bridgeroute.models import FeeTable, FeeValue
from bridgeroute.storage.database import session_scope
from bridgeroute.storage.repository import MarketDataRepository

logger = logging.getLogger(__name__)

FEE_CACHE_PREFIX = "fees:"


def _from_default(default: FallbackValue[float]) -> FeeValue:
    return FeeValue(default.value, is_fallback=True, source=f"fallback:{default.reason}")


class FeeSource(ABC):
    """Trading and withdrawal fees for venues."""

    name: str = "fees"

    @abstractmethod
    async def get_trading_fee(self, venue: str) -> FeeValue:
        """Trading fee % for a venue.

        Raises:
            KeyError: Neither a row nor a catalog default exists
        """
        pass

    @abstractmethod
    async def get_withdrawal_fee(self, venue: str, asset: str) -> Optional[FeeValue]:
        """Fixed withdrawal fee in asset units, or None when the venue does not list the asset."""
        pass

    @abstractmethod
    async def tradeable_assets(self, venue: str) -> frozenset[str]:
        """Assets that can be withdrawn from the venue."""
        pass

    async def fee_table(self, venues: Iterable[str], assets: Iterable[str]) -> FeeTable:
        """Collect the fee rows a request needs into one value object."""
        assets = [a.upper() for a in assets]
        trading: dict[str, FeeValue] = {}
        withdrawal: dict[tuple[str, str], FeeValue] = {}
        for venue in venues:
            venue = venue.lower()
            trading[venue] = await self.get_trading_fee(venue)
            for asset in assets:
                fee = await self.get_withdrawal_fee(venue, asset)
                if fee is not None:
                    withdrawal[(venue, asset)] = fee
        return FeeTable(trading=trading, withdrawal=withdrawal)

    def invalidate(self) -> None:
        """Drop any cached fee rows."""
        pass


class StaticFeeSource(FeeSource):
    """Catalog defaults with optional explicit overrides.

    Overrides are treated as authoritative configuration, so they are not
    tagged as fallback. Catalog defaults always are.
    """

    name = "static"

    def __init__(
        self,
        trading_fees: Optional[Mapping[str, float]] = None,
        withdrawal_fees: Optional[Mapping[str, Mapping[str, float]]] = None,
        use_catalog_defaults: bool = True,
    ):
        self._trading = {k.lower(): float(v) for k, v in (trading_fees or {}).items()}
        self._withdrawal = {
            venue.lower(): {asset.upper(): float(fee) for asset, fee in fees.items()}
            for venue, fees in (withdrawal_fees or {}).items()
        }
        self._use_defaults = use_catalog_defaults

    async def get_trading_fee(self, venue: str) -> FeeValue:
        venue = venue.lower()
        if venue in self._trading:
            return FeeValue(self._trading[venue], is_fallback=False, source=self.name)
        default = DEFAULT_TRADING_FEES.get(venue) if self._use_defaults else None
        if default is None:
            raise KeyError(f"No trading fee for venue {venue}")
        return _from_default(default)

    async def get_withdrawal_fee(self, venue: str, asset: str) -> Optional[FeeValue]:
        venue, asset = venue.lower(), asset.upper()
        fee = self._withdrawal.get(venue, {}).get(asset)
        if fee is not None:
            return FeeValue(fee, is_fallback=False, source=self.name)
        if not self._use_defaults:
            return None
        default = default_withdrawal_fee(venue, asset)
        return _from_default(default) if default is not None else None

    async def tradeable_assets(self, venue: str) -> frozenset[str]:
        venue = venue.lower()
        if venue in self._withdrawal:
            return frozenset(self._withdrawal[venue])
        if not self._use_defaults:
            return frozenset()
        return default_tradeable_assets(venue)


@dataclass(frozen=True)
class _FeeRows:
    trading: dict[str, float] = field(default_factory=dict)
    withdrawal: dict[str, dict[str, float]] = field(default_factory=dict)


class RepositoryFeeSource(FeeSource):
    """Fees read from the database, cached through the coalescer.

    A missing row falls back to the catalog default for that row only and is
    tagged as fallback. If the database cannot be read at all, every fee is a
    tagged catalog default.
    """

    name = "repository"

    def __init__(
        self,
        cache: CacheCoalescer,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[Settings] = None,
    ):
        self.cache = cache
        self._session_factory = session_factory
        self.settings = settings or get_settings()

    async def _rows(self) -> _FeeRows:
        async def fetch() -> _FeeRows:
            async with session_scope(self._session_factory) as session:
                repo = MarketDataRepository(session)
                return _FeeRows(await repo.get_trading_fees(), await repo.get_withdrawal_fees())

        try:
            hit = await self.cache.get(
                f"{FEE_CACHE_PREFIX}table", fetch, self.settings.fee_ttl, self.settings.fee_ttl
            )
        except UpstreamUnavailable as e:
            logger.error(f"Fee table unreadable, using catalog defaults: {e}")
            return _FeeRows()
        return hit.value

    async def get_trading_fee(self, venue: str) -> FeeValue:
        venue = venue.lower()
        rows = await self._rows()
        if venue in rows.trading:
            return FeeValue(rows.trading[venue], is_fallback=False, source=self.name)
        default = DEFAULT_TRADING_FEES.get(venue)
        if default is None:
            raise KeyError(f"No trading fee for venue {venue}")
        return _from_default(default)

    async def get_withdrawal_fee(self, venue: str, asset: str) -> Optional[FeeValue]:
        venue, asset = venue.lower(), asset.upper()
        rows = await self._rows()
        fee = rows.withdrawal.get(venue, {}).get(asset)
        if fee is not None:
            return FeeValue(fee, is_fallback=False, source=self.name)
        default = default_withdrawal_fee(venue, asset)
        return _from_default(default) if default is not None else None

    async def tradeable_assets(self, venue: str) -> frozenset[str]:
        venue = venue.lower()
        rows = await self._rows()
        if rows.withdrawal.get(venue):
            return frozenset(rows.withdrawal[venue])
        return default_tradeable_assets(venue)

    def invalidate(self) -> None:
        self.cache.invalidate(FEE_CACHE_PREFIX)
