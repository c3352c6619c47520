"""Upstream market data adapters.

Available providers:
- Binance, OKX, Bybit: global USDT venues (prices and orderbooks)
- Bithumb, Upbit, Coinone: Korean KRW venues (Bithumb also publishes withdrawal status)
- bitFlyer, WazirX: JPY and INR venues
- CryptoCompare, CoinGecko: market-wide USD prices
- open.er-api.com, Frankfurter: USD-based FX rates
- Simulated: reproducible offline market for dry runs and tests
"""

from bridgeroute.providers.aggregators import (
    CoinGeckoProvider,
    CryptoCompareProvider,
    FxDerivedPriceProvider,
)
from bridgeroute.providers.factory import (
    create_fx_providers,
    create_price_providers,
    create_routing_engine,
    create_venue_providers,
)
from bridgeroute.providers.fx import ErApiFxProvider, FrankfurterFxProvider
from bridgeroute.providers.global_venues import BinanceProvider, BybitProvider, OkxProvider
from bridgeroute.providers.http import HttpProvider, UpstreamFormatError
from bridgeroute.providers.korea import BithumbProvider, CoinoneProvider, UpbitProvider
from bridgeroute.providers.regional import BitflyerProvider, WazirxProvider
from bridgeroute.providers.simulated import (
    SimulatedFxProvider,
    SimulatedMarket,
    SimulatedPriceProvider,
    SimulatedWithdrawalStatusProvider,
)

__all__ = [
    # Base
    "HttpProvider",
    "UpstreamFormatError",
    # Venues
    "BinanceProvider",
    "OkxProvider",
    "BybitProvider",
    "BithumbProvider",
    "UpbitProvider",
    "CoinoneProvider",
    "BitflyerProvider",
    "WazirxProvider",
    # Aggregators
    "CryptoCompareProvider",
    "CoinGeckoProvider",
    "FxDerivedPriceProvider",
    # FX
    "ErApiFxProvider",
    "FrankfurterFxProvider",
    # Simulated
    "SimulatedMarket",
    "SimulatedPriceProvider",
    "SimulatedFxProvider",
    "SimulatedWithdrawalStatusProvider",
    # Factory
    "create_venue_providers",
    "create_price_providers",
    "create_fx_providers",
    "create_routing_engine",
]
