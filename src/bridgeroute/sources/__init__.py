"""Fallback-chained market data sources.

Each source runs an ordered provider chain through the shared
``CacheCoalescer`` and tags what it returns with its freshness:
- PriceSource: spot price boards per venue
- FxSource: USD-based fiat rates with plausibility bounds
- OrderbookSource: depth for slippage estimates (absent book allowed)
- FeeSource: trading and withdrawal fees
- WithdrawalStatusSource: per-asset withdrawal suspensions
"""

from bridgeroute.sources.base import (
    AllProvidersFailed,
    FallbackChain,
    FxProvider,
    OrderbookProvider,
    PriceProvider,
    WithdrawalStatusProvider,
)
from bridgeroute.sources.fees import FeeSource, RepositoryFeeSource, StaticFeeSource
from bridgeroute.sources.fx import FxSource
from bridgeroute.sources.orderbooks import OrderbookSource
from bridgeroute.sources.prices import PriceSource
from bridgeroute.sources.snapshots import RepositorySnapshotStore, Snapshot, SnapshotStore
from bridgeroute.sources.withdrawals import (
    LiveWithdrawalStatusSource,
    RepositoryWithdrawalStatusSource,
    StaticWithdrawalStatusSource,
    WithdrawalStatusSource,
)

__all__ = [
    # Provider interfaces
    "PriceProvider",
    "OrderbookProvider",
    "FxProvider",
    "WithdrawalStatusProvider",
    "FallbackChain",
    "AllProvidersFailed",
    # Sources
    "PriceSource",
    "FxSource",
    "OrderbookSource",
    "FeeSource",
    "StaticFeeSource",
    "RepositoryFeeSource",
    "WithdrawalStatusSource",
    "StaticWithdrawalStatusSource",
    "RepositoryWithdrawalStatusSource",
    "LiveWithdrawalStatusSource",
    # Snapshots
    "SnapshotStore",
    "Snapshot",
    "RepositorySnapshotStore",
]
