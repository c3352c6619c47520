"""Repository for fee tables and market snapshots."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bridgeroute.catalog import DEFAULT_TRADING_FEES, DEFAULT_WITHDRAWAL_FEES
from bridgeroute.storage.models import FxSnapshot, PriceSnapshot, TradingFee, WithdrawalFee


class MarketDataRepository:
    """Repository for all fee and snapshot database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Trading fees
    async def get_trading_fees(self) -> dict[str, float]:
        """All trading fee rows as venue -> fee %."""
        result = await self.session.execute(select(TradingFee))
        fees: dict[str, float] = {}
        for row in result.scalars().all():
            venue = row.venue.strip().lower()
            if venue and row.fee_pct is not None and row.fee_pct >= 0:
                fees[venue] = float(row.fee_pct)
        return fees

    async def set_trading_fee(self, venue: str, fee_pct: float) -> TradingFee:
        """Insert or update a venue's trading fee."""
        if fee_pct < 0:
            raise ValueError("fee_pct must be non-negative")
        row = await self.session.get(TradingFee, venue.lower())
        if row is None:
            row = TradingFee(venue=venue.lower(), fee_pct=fee_pct)
            self.session.add(row)
        else:
            row.fee_pct = fee_pct
        await self.session.flush()
        return row

    # Withdrawal fees and suspensions
    async def get_withdrawal_fees(self) -> dict[str, dict[str, float]]:
        """All withdrawal fee rows as venue -> asset -> fee (asset units)."""
        result = await self.session.execute(select(WithdrawalFee))
        fees: dict[str, dict[str, float]] = {}
        for row in result.scalars().all():
            venue = row.venue.strip().lower()
            asset = row.asset.strip().upper()
            if not venue or not asset or row.fee is None or row.fee < 0:
                continue
            fees.setdefault(venue, {})[asset] = float(row.fee)
        return fees

    async def set_withdrawal_fee(self, venue: str, asset: str, fee: float) -> WithdrawalFee:
        """Insert or update a withdrawal fee row."""
        if fee < 0:
            raise ValueError("fee must be non-negative")
        row = await self.session.get(WithdrawalFee, (venue.lower(), asset.upper()))
        if row is None:
            row = WithdrawalFee(venue=venue.lower(), asset=asset.upper(), fee=fee, suspended=False)
            self.session.add(row)
        else:
            row.fee = fee
        await self.session.flush()
        return row

    async def get_suspensions(self) -> dict[str, set[str]]:
        """Suspended withdrawals as venue -> set of assets."""
        stmt = select(WithdrawalFee.venue, WithdrawalFee.asset).where(WithdrawalFee.suspended.is_(True))
        result = await self.session.execute(stmt)
        by_venue: dict[str, set[str]] = {}
        for venue, asset in result.all():
            by_venue.setdefault(venue.strip().lower(), set()).add(asset.strip().upper())
        return by_venue

    async def set_withdrawal_suspended(self, venue: str, asset: str, suspended: bool) -> bool:
        """Flip the suspension flag. Returns True if a row changed."""
        row = await self.session.get(WithdrawalFee, (venue.lower(), asset.upper()))
        if row is None or row.suspended == suspended:
            return False
        row.suspended = suspended
        await self.session.flush()
        return True

    async def seed_default_fees(self) -> int:
        """Populate empty fee tables from the catalog defaults.

        Only runs per table when that table has no rows, so operator edits are
        never overwritten. Returns the number of rows inserted.
        """
        inserted = 0
        trading_count = await self.session.scalar(select(func.count()).select_from(TradingFee))
        if not trading_count:
            for venue, fee in DEFAULT_TRADING_FEES.items():
                self.session.add(TradingFee(venue=venue, fee_pct=fee.value))
                inserted += 1

        withdrawal_count = await self.session.scalar(select(func.count()).select_from(WithdrawalFee))
        if not withdrawal_count:
            for venue, assets in DEFAULT_WITHDRAWAL_FEES.items():
                for asset, fee in assets.items():
                    self.session.add(WithdrawalFee(venue=venue, asset=asset, fee=fee.value))
                    inserted += 1

        await self.session.flush()
        return inserted

    # Snapshots
    async def record_price_snapshot(
        self,
        venue: str,
        asset: str,
        currency: str,
        price: float,
        source: str = "unknown",
        captured_at: Optional[datetime] = None,
    ) -> PriceSnapshot:
        """Store a historical price."""
        snapshot = PriceSnapshot(
            venue=venue.lower(),
            asset=asset.upper(),
            currency=currency.upper(),
            price=price,
            source=source,
            captured_at=captured_at or datetime.now(timezone.utc),
        )
        self.session.add(snapshot)
        await self.session.flush()
        return snapshot

    async def latest_price_snapshot(self, venue: str, asset: str) -> Optional[PriceSnapshot]:
        """Most recent stored price for a venue and asset."""
        stmt = (
            select(PriceSnapshot)
            .where(PriceSnapshot.venue == venue.lower(), PriceSnapshot.asset == asset.upper())
            .order_by(PriceSnapshot.captured_at.desc(), PriceSnapshot.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def price_snapshots_since(self, venue: str, asset: str, since: datetime) -> list[PriceSnapshot]:
        """Stored prices for a venue and asset captured at or after ``since``, oldest first."""
        stmt = (
            select(PriceSnapshot)
            .where(
                PriceSnapshot.venue == venue.lower(),
                PriceSnapshot.asset == asset.upper(),
                PriceSnapshot.captured_at >= since,
            )
            .order_by(PriceSnapshot.captured_at.asc(), PriceSnapshot.id.asc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def record_fx_snapshot(
        self,
        currency: str,
        rate: float,
        source: str = "unknown",
        captured_at: Optional[datetime] = None,
    ) -> FxSnapshot:
        """Store a historical USD FX rate."""
        snapshot = FxSnapshot(
            currency=currency.upper(),
            rate=rate,
            source=source,
            captured_at=captured_at or datetime.now(timezone.utc),
        )
        self.session.add(snapshot)
        await self.session.flush()
        return snapshot

    async def latest_fx_snapshot(self, currency: str) -> Optional[FxSnapshot]:
        """Most recent stored USD FX rate for a currency."""
        stmt = (
            select(FxSnapshot)
            .where(FxSnapshot.currency == currency.upper())
            .order_by(FxSnapshot.captured_at.desc(), FxSnapshot.id.desc())
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
