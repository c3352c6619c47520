"""Application configuration using pydantic-settings.

Every TTL, timeout and limit the routing engine uses lives here so that a
deployment can tune upstream pressure without touching code.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="BRIDGEROUTE_",
        extra="ignore",
    )

    # ======================
    # Database
    # ======================
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/bridgeroute.db",
        description="Database connection URL (fee tables and price snapshots)",
    )

    # ======================
    # Environment
    # ======================
    environment: str = Field(default="development", description="Runtime environment")
    debug: bool = Field(default=False, description="Enable debug mode")
    dry_run: bool = Field(
        default=False, description="Use simulated market providers instead of live APIs"
    )

    # ======================
    # Upstream providers
    # ======================
    provider_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Timeout for a single upstream provider call"
    )
    user_agent: str = Field(default="bridgeroute/0.3.0", description="HTTP User-Agent")
    binance_base_urls: list[str] = Field(
        default_factory=lambda: [
            "https://api.binance.com",
            "https://api1.binance.com",
            "https://data-api.binance.vision",
        ],
        description="Binance REST hosts, tried in order",
    )
    okx_base_url: str = Field(default="https://www.okx.com", description="OKX REST host")
    bybit_base_url: str = Field(default="https://api.bybit.com", description="Bybit REST host")
    bithumb_base_url: str = Field(default="https://api.bithumb.com", description="Bithumb REST host")
    upbit_base_url: str = Field(default="https://api.upbit.com", description="Upbit REST host")
    coinone_base_url: str = Field(
        default="https://api.coinone.co.kr", description="Coinone REST host"
    )
    bitflyer_base_url: str = Field(
        default="https://api.bitflyer.com", description="bitFlyer REST host"
    )
    wazirx_base_url: str = Field(default="https://api.wazirx.com", description="WazirX REST host")
    cryptocompare_base_url: str = Field(
        default="https://min-api.cryptocompare.com", description="CryptoCompare REST host"
    )
    coingecko_base_url: str = Field(
        default="https://api.coingecko.com", description="CoinGecko REST host"
    )
    er_api_base_url: str = Field(default="https://open.er-api.com", description="FX provider")
    frankfurter_base_url: str = Field(
        default="https://api.frankfurter.app", description="Secondary FX provider"
    )

    # ======================
    # Cache TTLs (seconds)
    # ======================
    price_success_ttl: float = Field(default=10.0, description="Price board TTL after success")
    price_failure_ttl: float = Field(default=5.0, description="Price board TTL after failure")
    fx_success_ttl: float = Field(default=300.0, description="FX TTL after success")
    fx_failure_ttl: float = Field(default=60.0, description="FX TTL after failure")
    orderbook_success_ttl: float = Field(default=5.0, description="Orderbook TTL after success")
    orderbook_failure_ttl: float = Field(default=2.0, description="Orderbook TTL after failure")
    fee_ttl: float = Field(default=300.0, description="Fee table TTL")
    withdrawal_status_ttl: float = Field(default=60.0, description="Withdrawal status TTL")
    delayed_price_warning_seconds: float = Field(
        default=30.0, description="Warn when a served price is older than this"
    )

    # ======================
    # Routing
    # ======================
    max_concurrent_fetches: int = Field(
        default=8, ge=1, description="Cap on simultaneous upstream calls per request"
    )
    max_alternatives: int = Field(default=10, ge=0, description="Alternatives returned")
    unknown_liquidity_slippage_pct: float = Field(
        default=2.0, ge=0, description="Slippage assumed when no orderbook is available"
    )
    spread_notional_usd: float = Field(
        default=10000.0, gt=0, description="Notional used to express fixed fees in spread scoring"
    )
    probe_timeout_seconds: float = Field(default=4.5, gt=0, description="Venue health probe timeout")
    premium_history_hours: float = Field(
        default=6.0, gt=0, description="Window of stored prices used for spread volatility"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def get_safe_dict(self) -> dict:
        """Return settings dict with secrets redacted."""
        return {
            "environment": self.environment,
            "debug": self.debug,
            "dry_run": self.dry_run,
            "database_url": self._redact_url(self.database_url),
            "provider_timeout_seconds": self.provider_timeout_seconds,
            "ttl": {
                "price": [self.price_success_ttl, self.price_failure_ttl],
                "fx": [self.fx_success_ttl, self.fx_failure_ttl],
                "orderbook": [self.orderbook_success_ttl, self.orderbook_failure_ttl],
                "fee": self.fee_ttl,
                "withdrawal_status": self.withdrawal_status_ttl,
            },
            "routing": {
                "max_concurrent_fetches": self.max_concurrent_fetches,
                "max_alternatives": self.max_alternatives,
                "unknown_liquidity_slippage_pct": self.unknown_liquidity_slippage_pct,
                "premium_history_hours": self.premium_history_hours,
            },
        }

    @staticmethod
    def _redact_url(url: str) -> str:
        """Redact sensitive parts of database URL."""
        if "://" in url and "@" in url:
            proto, rest = url.split("://", 1)
            if "@" in rest:
                creds, host = rest.rsplit("@", 1)
                if ":" in creds:
                    user, _ = creds.split(":", 1)
                    return f"{proto}://{user}:***@{host}"
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
