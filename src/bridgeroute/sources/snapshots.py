"""Last-resort historical snapshots."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bridgeroute.storage.database import session_scope
from bridgeroute.storage.repository import MarketDataRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """A persisted historical value and when it was captured."""

    value: float
    currency: str
    source: str
    captured_at: datetime

    def age_ms(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        captured = self.captured_at
        if captured.tzinfo is None:
            captured = captured.replace(tzinfo=timezone.utc)
        return max(0, int((now - captured).total_seconds() * 1000))


class SnapshotStore(ABC):
    """Read access to historical prices and FX rates."""

    @abstractmethod
    async def latest_price(self, venue: str, asset: str) -> Optional[Snapshot]:
        pass

    @abstractmethod
    async def latest_fx_rate(self, currency: str) -> Optional[Snapshot]:
        """Latest units of ``currency`` per one USD."""
        pass

    async def price_history(self, venue: str, asset: str, since: datetime) -> list[Snapshot]:
        """Prices captured at or after ``since``, oldest first. Stores without history return none."""
        return []


class RepositorySnapshotStore(SnapshotStore):
    """Snapshot store backed by the SQLAlchemy repository.

    Database errors are logged and reported as "no snapshot": this store is
    the end of the fallback chain and must not mask the original failure.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def latest_price(self, venue: str, asset: str) -> Optional[Snapshot]:
        try:
            async with session_scope(self._session_factory) as session:
                row = await MarketDataRepository(session).latest_price_snapshot(venue, asset)
        except Exception as e:
            logger.warning(f"Price snapshot lookup failed for {venue}:{asset}: {e}")
            return None
        if row is None:
            return None
        return Snapshot(row.price, row.currency, row.source, row.captured_at)

    async def latest_fx_rate(self, currency: str) -> Optional[Snapshot]:
        try:
            async with session_scope(self._session_factory) as session:
                row = await MarketDataRepository(session).latest_fx_snapshot(currency)
        except Exception as e:
            logger.warning(f"FX snapshot lookup failed for {currency}: {e}")
            return None
        if row is None:
            return None
        return Snapshot(row.rate, row.currency, row.source, row.captured_at)

    async def price_history(self, venue: str, asset: str, since: datetime) -> list[Snapshot]:
        try:
            async with session_scope(self._session_factory) as session:
                rows = await MarketDataRepository(session).price_snapshots_since(venue, asset, since)
        except Exception as e:
            logger.warning(f"Price history lookup failed for {venue}:{asset}: {e}")
            return []
        return [Snapshot(row.price, row.currency, row.source, row.captured_at) for row in rows]
