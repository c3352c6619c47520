"""Tests for fallback chains and the price, FX and orderbook sources."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from bridgeroute.errors import ImplausibleValue, UpstreamUnavailable
from bridgeroute.models import Freshness
from bridgeroute.sources.base import AllProvidersFailed, FallbackChain, clean_prices
from bridgeroute.sources.fx import FxSource, check_bounds
from bridgeroute.sources.orderbooks import OrderbookSource
from bridgeroute.sources.prices import PriceSource
from bridgeroute.sources.snapshots import Snapshot, SnapshotStore

from conftest import StubFxProvider, StubOrderbookProvider, StubPriceProvider, make_book


class MemorySnapshotStore(SnapshotStore):
    """Snapshot store backed by dicts."""

    def __init__(self, prices=None, fx=None):
        self.prices = dict(prices or {})
        self.fx = dict(fx or {})

    async def latest_price(self, venue: str, asset: str) -> Optional[Snapshot]:
        return self.prices.get((venue, asset))

    async def latest_fx_rate(self, currency: str) -> Optional[Snapshot]:
        return self.fx.get(currency)


def snapshot(value: float, currency: str, seconds_old: int) -> Snapshot:
    captured = datetime.now(timezone.utc) - timedelta(seconds=seconds_old)
    return Snapshot(value, currency, "recorder", captured)


class TestFallbackChain:
    """Tests for FallbackChain."""

    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        """Test the first healthy provider is used without warnings."""
        a = StubPriceProvider("a", {"binance"}, {"BTC": 1.0})
        b = StubPriceProvider("b", {"binance"}, {"BTC": 2.0})
        chain = FallbackChain("prices:binance", [a, b], timeout=1)

        result = await chain.fetch(lambda p: p.fetch_prices("binance", ["BTC"]))

        assert result.value == {"BTC": 1.0}
        assert result.provider == "a"
        assert result.hops == 0
        assert result.warnings == ()
        assert b.calls == 0

    @pytest.mark.asyncio
    async def test_failure_moves_to_next_provider_with_warning(self):
        """Test an exception in one provider produces a warning and a hop."""
        a = StubPriceProvider("a", {"binance"}, error=RuntimeError("HTTP 503"))
        b = StubPriceProvider("b", {"binance"}, {"BTC": 2.0})
        chain = FallbackChain("prices:binance", [a, b], timeout=1)

        result = await chain.fetch(lambda p: p.fetch_prices("binance", ["BTC"]))

        assert result.provider == "b"
        assert result.hops == 1
        assert any("a failed" in w and "HTTP 503" in w for w in result.warnings)
        assert any("fallback provider b" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(self):
        """Test a slow provider is abandoned after the per-provider timeout."""
        slow = StubPriceProvider("slow", {"binance"}, {"BTC": 1.0}, delay=1.0)
        fast = StubPriceProvider("fast", {"binance"}, {"BTC": 2.0})
        chain = FallbackChain("prices:binance", [slow, fast], timeout=0.05)

        result = await chain.fetch(lambda p: p.fetch_prices("binance", ["BTC"]))

        assert result.provider == "fast"
        assert any("timeout" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_empty_response_counts_as_failure(self):
        """Test an empty board is not accepted."""
        empty = StubPriceProvider("empty", {"binance"}, {})
        full = StubPriceProvider("full", {"binance"}, {"BTC": 2.0})
        chain = FallbackChain("prices:binance", [empty, full], timeout=1)

        result = await chain.fetch(lambda p: p.fetch_prices("binance", ["BTC"]))

        assert result.provider == "full"
        assert any("empty_response" in w for w in result.warnings)

    @pytest.mark.asyncio
    async def test_all_providers_failed(self):
        """Test exhaustion raises AllProvidersFailed carrying every hop's warning."""
        a = StubPriceProvider("a", {"binance"}, error=RuntimeError("down"))
        b = StubPriceProvider("b", {"binance"}, error=ValueError("bad json"))
        chain = FallbackChain("prices:binance", [a, b], timeout=1)

        with pytest.raises(AllProvidersFailed) as exc_info:
            await chain.fetch(lambda p: p.fetch_prices("binance", ["BTC"]))

        assert len(exc_info.value.warnings) == 2
        assert isinstance(exc_info.value, UpstreamUnavailable)

    @pytest.mark.asyncio
    async def test_no_providers(self):
        """Test an empty chain fails immediately."""
        chain = FallbackChain("prices:gopax", [], timeout=1)

        with pytest.raises(AllProvidersFailed, match="no provider configured"):
            await chain.fetch(lambda p: p.fetch_prices("gopax", ["BTC"]))


class TestPriceHelpers:
    """Tests for price cleaning."""

    def test_clean_prices_drops_invalid(self):
        """Test non-numeric, negative and non-finite prices are dropped."""
        cleaned = clean_prices({"btc": "100", "eth": -1, "xrp": "abc", "sol": float("nan"), "trx": 0})

        assert cleaned == {"BTC": 100.0}


class TestPriceSource:
    """Tests for PriceSource."""

    @pytest.mark.asyncio
    async def test_live_then_cached(self, cache, settings, clock):
        """Test freshness is live on fetch and cached on reuse."""
        provider = StubPriceProvider("bithumb", {"bithumb"}, {"XRP": 3400.0})
        source = PriceSource(cache, [provider], settings=settings)

        first = await source.get_spot_price("bithumb", "xrp")
        clock.advance(2)
        second = await source.get_spot_price("bithumb", "XRP")

        assert first.value.price == 3400.0
        assert first.value.currency == "KRW"
        assert first.freshness == Freshness.LIVE
        assert first.source == "bithumb"
        assert second.freshness == Freshness.CACHED
        assert second.age_ms == 2000
        assert provider.calls == 1

    @pytest.mark.asyncio
    async def test_global_venue_quotes_in_usd(self, cache, settings):
        """Test global venues report their board in USD."""
        provider = StubPriceProvider("binance", {"binance"}, {"BTC": 100000.0})
        source = PriceSource(cache, [provider], settings=settings)

        quote = await source.get_spot_price("binance", "BTC")

        assert quote.value.currency == "USD"

    @pytest.mark.asyncio
    async def test_stale_after_refresh_failure(self, cache, settings, clock):
        """Test a failed refresh re-serves the old board tagged stale."""
        provider = StubPriceProvider("bithumb", {"bithumb"}, {"XRP": 3400.0})
        source = PriceSource(cache, [provider], settings=settings)
        await source.get_spot_price("bithumb", "XRP")

        provider.error = RuntimeError("HTTP 500")
        clock.advance(settings.price_success_ttl + 1)
        quote = await source.get_spot_price("bithumb", "XRP")

        assert quote.freshness == Freshness.STALE
        assert quote.value.price == 3400.0
        assert any("stale" in w for w in quote.warnings)

    @pytest.mark.asyncio
    async def test_snapshot_last_resort(self, cache, settings):
        """Test the snapshot is used when nothing live or cached exists."""
        provider = StubPriceProvider("bithumb", {"bithumb"}, error=RuntimeError("down"))
        store = MemorySnapshotStore(prices={("bithumb", "XRP"): snapshot(3300.0, "KRW", 600)})
        source = PriceSource(cache, [provider], snapshots=store, settings=settings)

        quote = await source.get_spot_price("bithumb", "XRP")

        assert quote.freshness == Freshness.FALLBACK
        assert quote.value.price == 3300.0
        assert quote.source == "snapshot:recorder"
        assert quote.age_ms >= 600_000
        assert "historical snapshot" in quote.warnings[0]
        assert "age: 60" in quote.warnings[0]

    @pytest.mark.asyncio
    async def test_unavailable_without_snapshot(self, cache, settings):
        """Test UpstreamUnavailable when chain, cache and snapshots are all empty."""
        provider = StubPriceProvider("bithumb", {"bithumb"}, error=RuntimeError("down"))
        source = PriceSource(cache, [provider], snapshots=MemorySnapshotStore(), settings=settings)

        with pytest.raises(UpstreamUnavailable):
            await source.get_spot_price("bithumb", "XRP")

    @pytest.mark.asyncio
    async def test_asset_missing_from_board(self, cache, settings):
        """Test an asset the venue does not list raises after the board succeeds."""
        provider = StubPriceProvider("bitflyer", {"bitflyer"}, {"BTC": 15_000_000.0})
        source = PriceSource(cache, [provider], settings=settings)

        with pytest.raises(UpstreamUnavailable, match="SOL not on bitflyer board"):
            await source.get_spot_price("bitflyer", "SOL")

    @pytest.mark.asyncio
    async def test_invalid_price_is_never_served(self, cache, settings):
        """Test a non-positive upstream price is treated as missing."""
        provider = StubPriceProvider("upbit", {"upbit"}, {"BTC": -5.0, "XRP": 3400.0})
        source = PriceSource(cache, [provider], settings=settings)

        with pytest.raises(UpstreamUnavailable):
            await source.get_spot_price("upbit", "BTC")
        quote = await source.get_spot_price("upbit", "XRP")
        assert quote.value.price == 3400.0

    @pytest.mark.asyncio
    async def test_chain_only_uses_providers_for_venue(self, cache, settings):
        """Test providers for other venues are skipped."""
        other = StubPriceProvider("upbit", {"upbit"}, {"XRP": 1.0})
        right = StubPriceProvider("bithumb", {"bithumb"}, {"XRP": 3400.0})
        source = PriceSource(cache, [other, right], settings=settings)

        quote = await source.get_spot_price("bithumb", "XRP")

        assert quote.source == "bithumb"
        assert other.calls == 0

    @pytest.mark.asyncio
    async def test_spot_prices_share_one_board(self, cache, settings):
        """Test a batch lookup fetches the board once and omits unpriced assets."""
        provider = StubPriceProvider("bithumb", {"bithumb"}, {"XRP": 3400.0, "BTC": 145_000_000.0})
        store = MemorySnapshotStore(prices={("bithumb", "SOL"): snapshot(330_000.0, "KRW", 60)})
        source = PriceSource(cache, [provider], snapshots=store, settings=settings)

        quotes = await source.get_spot_prices("bithumb", ["xrp", "BTC", "SOL", "DOT"])

        assert set(quotes) == {"XRP", "BTC", "SOL"}
        assert quotes["XRP"].freshness == Freshness.LIVE
        assert quotes["BTC"].freshness == Freshness.LIVE
        assert quotes["SOL"].freshness == Freshness.FALLBACK
        assert provider.calls == 1


class TestFxBounds:
    """Tests for check_bounds."""

    def test_rate_within_bounds(self):
        """Test plausible rates pass."""
        check_bounds({"KRW": 1450.0, "JPY": 150.0})

    def test_rate_outside_bounds(self):
        """Test an off-by-100 KRW rate is rejected."""
        with pytest.raises(ImplausibleValue) as exc_info:
            check_bounds({"KRW": 14.5})

        assert exc_info.value.lower == 500.0
        assert exc_info.value.upper == 5000.0


class TestFxSource:
    """Tests for FxSource."""

    @pytest.mark.asyncio
    async def test_live_rate(self, cache, settings):
        """Test a plausible live rate is returned as live."""
        source = FxSource(cache, [StubFxProvider("er-api", {"KRW": 1450.0})], settings=settings)

        rate = await source.get_usd_rate("KRW")

        assert rate.value.rate == 1450.0
        assert rate.value.pair == "USD/KRW"
        assert rate.freshness == Freshness.LIVE
        assert rate.source == "er-api"

    @pytest.mark.asyncio
    async def test_implausible_rate_triggers_next_provider(self, cache, settings):
        """Test bounds rejection moves the chain to the next provider."""
        bad = StubFxProvider("primary", {"KRW": 14.5})
        good = StubFxProvider("secondary", {"KRW": 1450.0})
        source = FxSource(cache, [bad, good], settings=settings)

        rate = await source.get_usd_rate("KRW")

        assert rate.value.rate == 1450.0
        assert rate.source == "secondary"
        assert any("implausible" in w for w in rate.warnings)
        assert bad.calls == 1
        assert good.calls == 1

    @pytest.mark.asyncio
    async def test_pegged_currency(self, cache, settings):
        """Test USD-pegged currencies convert 1:1 without calling upstream."""
        provider = StubFxProvider("er-api", {"KRW": 1450.0})
        source = FxSource(cache, [provider], settings=settings)

        rate = await source.get_usd_rate("USDT")

        assert rate.value.rate == 1.0
        assert rate.source == "peg"
        assert provider.calls == 0

    @pytest.mark.asyncio
    async def test_snapshot_when_chain_exhausted(self, cache, settings):
        """Test a plausible FX snapshot is served as fallback."""
        provider = StubFxProvider("er-api", error=RuntimeError("down"))
        store = MemorySnapshotStore(fx={"KRW": snapshot(1440.0, "KRW", 3600)})
        source = FxSource(cache, [provider], snapshots=store, settings=settings)

        rate = await source.get_usd_rate("KRW")

        assert rate.value.rate == 1440.0
        assert rate.freshness == Freshness.FALLBACK
        assert "historical snapshot" in rate.warnings[0]

    @pytest.mark.asyncio
    async def test_hardcoded_fallback(self, cache, settings):
        """Test the hardcoded table is the last resort and is tagged."""
        provider = StubFxProvider("er-api", error=RuntimeError("down"))
        store = MemorySnapshotStore(fx={"KRW": snapshot(12.0, "KRW", 60)})
        source = FxSource(cache, [provider], snapshots=store, settings=settings)

        rate = await source.get_usd_rate("KRW")

        assert rate.value.rate == 1450.0
        assert rate.source == "fallback:hardcoded"
        assert rate.freshness == Freshness.FALLBACK
        assert "hardcoded fallback" in rate.warnings[0]

    @pytest.mark.asyncio
    async def test_unknown_currency_without_fallback(self, cache, settings):
        """Test a currency with no rate anywhere raises."""
        source = FxSource(cache, [StubFxProvider("er-api", {"KRW": 1450.0})], settings=settings)

        with pytest.raises(UpstreamUnavailable):
            await source.get_usd_rate("EUR")

    @pytest.mark.asyncio
    async def test_cross_rate(self, cache, settings):
        """Test a cross rate goes through USD and keeps the worst freshness."""
        source = FxSource(cache, [StubFxProvider("er-api", {"KRW": 1450.0, "JPY": 145.0})], settings=settings)

        krw_to_usdt = await source.get_rate("KRW", "USDT")
        jpy_to_krw = await source.get_rate("JPY", "KRW")

        assert krw_to_usdt.value.rate == pytest.approx(1 / 1450.0)
        assert krw_to_usdt.source == "er-api"
        assert jpy_to_krw.value.rate == pytest.approx(10.0)
        assert jpy_to_krw.freshness == Freshness.CACHED


class TestOrderbookSource:
    """Tests for OrderbookSource."""

    @pytest.mark.asyncio
    async def test_book_returned(self, cache, settings):
        """Test a fetched book is returned live."""
        book = make_book("upbit", "XRP", 3400.0, 1000.0)
        source = OrderbookSource(cache, [StubOrderbookProvider("upbit", {("upbit", "XRP"): book})], settings)

        sourced = await source.get_orderbook("upbit", "xrp")

        assert sourced.value is book
        assert sourced.freshness == Freshness.LIVE

    @pytest.mark.asyncio
    async def test_no_provider_is_unknown_liquidity(self, cache, settings):
        """Test a venue without a book provider yields None, not an error."""
        source = OrderbookSource(cache, [], settings)

        sourced = await source.get_orderbook("gopax", "XRP")

        assert sourced.value is None
        assert sourced.source == "none"
        assert sourced.freshness == Freshness.LIVE

    @pytest.mark.asyncio
    async def test_failed_fetch_is_unknown_liquidity(self, cache, settings):
        """Test a failed book fetch yields None with a warning."""
        provider = StubOrderbookProvider(
            "upbit", {("upbit", "XRP"): None}, error=RuntimeError("HTTP 429")
        )
        source = OrderbookSource(cache, [provider], settings)

        sourced = await source.get_orderbook("upbit", "XRP")

        assert sourced.value is None
        assert "Orderbook unavailable" in sourced.warnings[0]
