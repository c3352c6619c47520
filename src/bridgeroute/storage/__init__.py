"""Fee tables and market snapshots (SQLAlchemy)."""

from bridgeroute.storage.database import close_db, init_db, session_scope
from bridgeroute.storage.models import Base, FxSnapshot, PriceSnapshot, TradingFee, WithdrawalFee
from bridgeroute.storage.repository import MarketDataRepository

__all__ = [
    # Models
    "Base",
    "TradingFee",
    "WithdrawalFee",
    "PriceSnapshot",
    "FxSnapshot",
    # Database
    "session_scope",
    "init_db",
    "close_db",
    "MarketDataRepository",
]
