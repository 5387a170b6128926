# backend/tests/services/test_coingecko_oracle.py
"""
Tests for CoinGeckoPriceOracle.

The HTTP layer is replaced by httpx.MockTransport, so these tests cover
request shaping, response parsing and error mapping without network.

Test Coverage:
- /simple/price batching and parsing
- /coins/{id}/history parsing and 404 misses
- market_chart/range: one price per UTC day, earliest point kept
- Symbol resolution through /coins/list
- 429 -> RateLimitError, 5xx -> ProviderUnavailableError, bounded retries
"""

from datetime import date
from decimal import Decimal

import httpx
import pytest

from cryptofolio.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    SymbolNotFoundError,
)
from cryptofolio.services.market_data.coingecko import CoinGeckoPriceOracle

BASE_URL = "https://cg.test/api/v3"

# 2024-01-01T00:00:00Z in milliseconds
JAN_1_MS = 1704067200000
HOUR_MS = 3600 * 1000
DAY_MS = 24 * HOUR_MS


class FastCoinGecko(CoinGeckoPriceOracle):
    """No backoff between retries."""
    RETRY_MIN_WAIT = 0
    RETRY_MAX_WAIT = 0


def make_oracle(handler) -> tuple[FastCoinGecko, list[httpx.Request]]:
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(recording_handler))
    oracle = FastCoinGecko(base_url=BASE_URL, min_interval=0, client=client)
    return oracle, requests


# =============================================================================
# CURRENT PRICES
# =============================================================================

class TestCurrentPrices:
    """Tests for /simple/price."""

    def test_batched_quotes(self):
        def handler(request):
            assert request.url.path == "/api/v3/simple/price"
            assert request.url.params["ids"] == "bitcoin,ethereum"
            return httpx.Response(200, json={
                "bitcoin": {"usd": 60000.5, "usd_24h_change": -1.25},
                "ethereum": {"usd": 3000},
            })

        oracle, requests = make_oracle(handler)
        prices = oracle.current_prices(["btc", "ETH"])

        assert len(requests) == 1
        assert prices["BTC"].usd == Decimal("60000.5")
        assert prices["BTC"].change_24h == Decimal("-1.25")
        assert prices["ETH"].change_24h is None

    def test_missing_quote_is_omitted(self):
        oracle, _ = make_oracle(lambda r: httpx.Response(200, json={"bitcoin": {"usd": 1}}))

        prices = oracle.current_prices(["BTC", "ETH"])

        assert set(prices) == {"BTC"}

    def test_current_price_single(self):
        oracle, _ = make_oracle(lambda r: httpx.Response(200, json={"solana": {"usd": 150}}))
        assert oracle.current_price("sol").usd == Decimal("150")

    def test_empty_symbols_make_no_request(self):
        oracle, requests = make_oracle(lambda r: httpx.Response(500))
        assert oracle.current_prices([" ", ""]) == {}
        assert requests == []


# =============================================================================
# HISTORICAL PRICES
# =============================================================================

class TestHistoricalPrice:
    """Tests for /coins/{id}/history."""

    def test_snapshot_price(self):
        def handler(request):
            assert request.url.path == "/api/v3/coins/bitcoin/history"
            assert request.url.params["date"] == "15-03-2024"
            return httpx.Response(200, json={"market_data": {"current_price": {"usd": 71000.12}}})

        oracle, _ = make_oracle(handler)

        assert oracle.historical_price("BTC", date(2024, 3, 15)) == Decimal("71000.12")

    def test_no_market_data_is_miss(self):
        oracle, _ = make_oracle(lambda r: httpx.Response(200, json={"id": "bitcoin"}))
        assert oracle.historical_price("BTC", date(2009, 1, 1)) is None

    def test_404_is_miss(self):
        oracle, _ = make_oracle(lambda r: httpx.Response(404, json={"error": "coin not found"}))
        assert oracle.historical_price("BTC", date(2024, 1, 1)) is None


class TestHistoricalRange:
    """Tests for /coins/{id}/market_chart/range."""

    def test_earliest_point_per_day(self):
        def handler(request):
            assert request.url.path == "/api/v3/coins/ethereum/market_chart/range"
            assert request.url.params["from"] == str(JAN_1_MS // 1000)
            return httpx.Response(200, json={"prices": [
                [JAN_1_MS, 2300.0],
                [JAN_1_MS + HOUR_MS, 2350.0],
                [JAN_1_MS + DAY_MS, 2400.0],
                [JAN_1_MS + 5 * DAY_MS, 9999.0],  # outside the range
                ["garbage"],
            ]})

        oracle, requests = make_oracle(handler)
        prices = oracle.historical_prices("ETH", date(2024, 1, 1), date(2024, 1, 2))

        assert len(requests) == 1
        assert prices == {
            date(2024, 1, 1): Decimal("2300.0"),
            date(2024, 1, 2): Decimal("2400.0"),
        }

    def test_unknown_symbol_is_empty(self):
        def handler(request):
            if request.url.path.endswith("/coins/list"):
                return httpx.Response(200, json=[])
            raise AssertionError("range must not be requested")

        oracle, _ = make_oracle(handler)
        assert oracle.historical_prices("NOPE", date(2024, 1, 1), date(2024, 1, 2)) == {}


# =============================================================================
# SYMBOL RESOLUTION
# =============================================================================

class TestSymbolResolution:
    """Tests for resolve_coin_id."""

    def test_static_map_needs_no_request(self):
        oracle, requests = make_oracle(lambda r: httpx.Response(500))
        assert oracle.resolve_coin_id(" btc ") == "bitcoin"
        assert requests == []

    def test_coin_list_lookup_is_cached(self):
        coins = [
            {"id": "pepe-wrapped", "symbol": "pepe"},
            {"id": "pepe", "symbol": "pepe"},
            {"id": "arbitrum", "symbol": "arb"},
        ]
        oracle, requests = make_oracle(lambda r: httpx.Response(200, json=coins))

        assert oracle.resolve_coin_id("PEPE") == "pepe"
        assert oracle.resolve_coin_id("arb") == "arbitrum"
        assert len(requests) == 1

    def test_unknown_symbol_raises(self):
        oracle, _ = make_oracle(lambda r: httpx.Response(200, json=[]))
        with pytest.raises(SymbolNotFoundError):
            oracle.resolve_coin_id("ZZZ")


# =============================================================================
# ERROR MAPPING
# =============================================================================

class TestErrorMapping:
    """HTTP failures map onto MarketDataError subclasses with bounded retry."""

    def test_rate_limit(self):
        oracle, requests = make_oracle(lambda r: httpx.Response(429, headers={"Retry-After": "30"}))

        with pytest.raises(RateLimitError) as exc_info:
            oracle.current_prices(["BTC"])

        assert exc_info.value.retry_after == 30
        assert len(requests) == FastCoinGecko.MAX_RETRY_ATTEMPTS

    def test_server_error(self):
        oracle, requests = make_oracle(lambda r: httpx.Response(503))

        with pytest.raises(ProviderUnavailableError):
            oracle.historical_price("BTC", date(2024, 1, 1))
        assert len(requests) == 2

    def test_retry_recovers(self):
        responses = iter([
            httpx.Response(502),
            httpx.Response(200, json={"bitcoin": {"usd": 5}}),
        ])
        oracle, _ = make_oracle(lambda r: next(responses))

        assert oracle.current_prices(["BTC"])["BTC"].usd == Decimal("5")

    def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        oracle, _ = make_oracle(handler)
        with pytest.raises(ProviderUnavailableError, match="ConnectError"):
            oracle.current_prices(["ETH"])

    def test_invalid_json(self):
        oracle, _ = make_oracle(lambda r: httpx.Response(200, content=b"<html>"))
        with pytest.raises(ProviderUnavailableError, match="invalid JSON"):
            oracle.current_prices(["ETH"])
