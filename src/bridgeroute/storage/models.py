"""SQLAlchemy models for fee tables and market snapshots."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TradingFee(Base):
    """Trading fee (%) per venue, edited by operators."""

    __tablename__ = "exchange_trading_fees"

    venue: Mapped[str] = mapped_column(String(32), primary_key=True)
    fee_pct: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<TradingFee {self.venue} {self.fee_pct}%>"


class WithdrawalFee(Base):
    """Fixed withdrawal fee (asset units) and suspension flag per venue and asset."""

    __tablename__ = "exchange_withdrawal_fees"

    venue: Mapped[str] = mapped_column(String(32), primary_key=True)
    asset: Mapped[str] = mapped_column(String(20), primary_key=True)
    fee: Mapped[float] = mapped_column(Float, nullable=False)
    suspended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        flag = " suspended" if self.suspended else ""
        return f"<WithdrawalFee {self.venue}:{self.asset} {self.fee}{flag}>"


class PriceSnapshot(Base):
    """Historical spot price, read only as a last-resort fallback."""

    __tablename__ = "price_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    venue: Mapped[str] = mapped_column(String(32), nullable=False)
    asset: Mapped[str] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="unknown")
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_price_snapshots_lookup", "venue", "asset", "captured_at"),)


class FxSnapshot(Base):
    """Historical USD FX rate, read only as a last-resort fallback."""

    __tablename__ = "fx_snapshots"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    rate: Mapped[float] = mapped_column(Float, nullable=False)
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="unknown")
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (Index("ix_fx_snapshots_lookup", "currency", "captured_at"),)
