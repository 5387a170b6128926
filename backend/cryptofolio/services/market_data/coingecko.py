# backend/cryptofolio/services/market_data/coingecko.py
"""
CoinGecko implementation of PriceOracle.

Endpoints used (API docs: https://docs.coingecko.com/reference):
    /simple/price                     Current USD price + 24h change, batched
    /coins/{id}/history               USD price snapshot for one day (00:00 UTC)
    /coins/{id}/market_chart/range    USD prices for a date range
    /coins/list                       Symbol -> coin id resolution

Rate limiting:
    The free tier allows roughly one call per second. All calls of one
    oracle instance go through a RequestThrottle that spaces them by
    `min_interval` seconds. Retries (inherited from PriceOracle) are
    capped at two attempts and also pass through the throttle.

Error mapping:
    HTTP 429                  -> RateLimitError (retryable)
    HTTP 5xx, transport error -> ProviderUnavailableError (retryable)
    HTTP 404 on a coin        -> miss (None)
    Unknown symbol            -> miss (None / omitted)
"""

import logging
import threading
import time
from datetime import date, datetime, time as dt_time, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from cryptofolio.config import settings
from cryptofolio.services.constants import QUOTE_CURRENCY
from cryptofolio.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
    SymbolNotFoundError,
)
from cryptofolio.services.market_data.base import CurrentPrice, PriceOracle

logger = logging.getLogger(__name__)


class RequestThrottle:
    """
    Thread-safe minimum spacing between outgoing requests.

    Callers block inside wait() until `min_interval` seconds have passed
    since the previous request of this throttle. The lock is held while
    sleeping so concurrent callers queue up instead of bursting.
    """

    def __init__(self, min_interval: float) -> None:
        self._min_interval = min_interval
        self._last_call = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            elapsed = time.monotonic() - self._last_call
            remaining = self._min_interval - elapsed
            if remaining > 0:
                time.sleep(remaining)
            self._last_call = time.monotonic()


class CoinGeckoPriceOracle(PriceOracle):
    """
    CoinGecko price oracle over httpx.

    Configuration:
        base_url: API root (default: settings.coingecko_base_url)
        api_key: Optional key, sent as x-cg-demo-api-key
        timeout: Per-request timeout in seconds
        min_interval: Minimum spacing between requests in seconds
        client: Pre-built httpx.Client (tests inject a MockTransport client)

    Example:
        oracle = CoinGeckoPriceOracle()
        oracle.current_prices(["BTC", "ETH"])
        oracle.historical_price("SOL", date(2024, 3, 1))
    """

    # Well-known symbols, resolved without a /coins/list round trip
    SYMBOL_TO_ID: dict[str, str] = {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "BNB": "binancecoin",
        "ADA": "cardano",
        "SOL": "solana",
        "XRP": "ripple",
        "DOT": "polkadot",
        "DOGE": "dogecoin",
        "AVAX": "avalanche-2",
        "SHIB": "shiba-inu",
        "MATIC": "matic-network",
        "LTC": "litecoin",
        "UNI": "uniswap",
        "LINK": "chainlink",
        "ATOM": "cosmos",
        "XLM": "stellar",
        "BCH": "bitcoin-cash",
        "ALGO": "algorand",
        "VET": "vechain",
        "ICP": "internet-computer",
        "FIL": "filecoin",
        "TRX": "tron",
        "ETC": "ethereum-classic",
        "XMR": "monero",
        "HBAR": "hedera-hashgraph",
        "APE": "apecoin",
        "NEAR": "near",
        "FLOW": "flow",
        "MANA": "decentraland",
        "SAND": "the-sandbox",
    }

    def __init__(
            self,
            base_url: str | None = None,
            api_key: str | None = None,
            timeout: float | None = None,
            min_interval: float | None = None,
            coin_list_ttl_seconds: int | None = None,
            client: httpx.Client | None = None,
    ) -> None:
        self._base_url = (base_url or settings.coingecko_base_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.coingecko_api_key
        self._timeout = timeout if timeout is not None else settings.coingecko_timeout_seconds
        self._throttle = RequestThrottle(
            min_interval if min_interval is not None else settings.coingecko_min_interval_seconds
        )
        self._coin_list_ttl = (
            coin_list_ttl_seconds if coin_list_ttl_seconds is not None
            else settings.coin_list_cache_ttl_seconds
        )
        self._coin_ids: dict[str, str] | None = None
        self._coin_ids_fetched_at = 0.0
        self._coin_ids_lock = threading.Lock()

        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["x-cg-demo-api-key"] = self._api_key
        self._client = client or httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(self._timeout),
            headers=headers,
        )
        logger.info(f"CoinGeckoPriceOracle initialized (timeout={self._timeout}s)")

    @property
    def name(self) -> str:
        return "coingecko"

    def close(self) -> None:
        self._client.close()

    # =========================================================================
    # CURRENT PRICES
    # =========================================================================

    def current_prices(self, symbols: list[str]) -> dict[str, CurrentPrice]:
        """
        Fetch latest quotes for several symbols with one /simple/price call.

        Symbols that cannot be resolved to a coin id are omitted.
        """
        ids_by_symbol: dict[str, str] = {}
        for symbol in {s.strip().upper() for s in symbols if s and s.strip()}:
            coin_id = self._resolve_or_none(symbol)
            if coin_id is not None:
                ids_by_symbol[symbol] = coin_id

        if not ids_by_symbol:
            return {}

        data = self._execute_with_retry(
            self._get_json,
            "/simple/price",
            {
                "ids": ",".join(sorted(set(ids_by_symbol.values()))),
                "vs_currencies": QUOTE_CURRENCY,
                "include_24hr_change": "true",
            },
        )

        prices: dict[str, CurrentPrice] = {}
        for symbol, coin_id in ids_by_symbol.items():
            quote = (data or {}).get(coin_id) or {}
            usd = self._to_decimal(quote.get(QUOTE_CURRENCY))
            if usd is None:
                logger.debug(f"No current price for {symbol} ({coin_id})")
                continue
            prices[symbol] = CurrentPrice(
                symbol=symbol,
                usd=usd,
                change_24h=self._to_decimal(quote.get(f"{QUOTE_CURRENCY}_24h_change")),
            )
        return prices

    # =========================================================================
    # HISTORICAL PRICES
    # =========================================================================

    def historical_price(self, symbol: str, day: date) -> Decimal | None:
        """Fetch the 00:00 UTC snapshot price of `symbol` on `day`."""
        coin_id = self._resolve_or_none(symbol.strip().upper())
        if coin_id is None:
            return None

        data = self._execute_with_retry(
            self._get_json,
            f"/coins/{coin_id}/history",
            {"date": day.strftime("%d-%m-%Y"), "localization": "false"},
        )
        if not data:
            return None

        market_data = data.get("market_data") or {}
        return self._to_decimal((market_data.get("current_price") or {}).get(QUOTE_CURRENCY))

    def historical_prices(self, symbol: str, start: date, end: date) -> dict[date, Decimal]:
        """
        Fetch daily prices for [start, end] with one market_chart/range call.

        The range endpoint returns several points per day for short ranges;
        the earliest point of each UTC day is kept, matching the 00:00
        snapshot semantics of historical_price().
        """
        coin_id = self._resolve_or_none(symbol.strip().upper())
        if coin_id is None:
            return {}

        range_start = datetime.combine(start, dt_time.min, tzinfo=timezone.utc)
        range_end = datetime.combine(end + timedelta(days=1), dt_time.min, tzinfo=timezone.utc)

        data = self._execute_with_retry(
            self._get_json,
            f"/coins/{coin_id}/market_chart/range",
            {
                "vs_currency": QUOTE_CURRENCY,
                "from": int(range_start.timestamp()),
                "to": int(range_end.timestamp()) - 1,
            },
        )
        if not data:
            return {}

        prices: dict[date, Decimal] = {}
        for point in data.get("prices") or []:
            try:
                timestamp_ms, raw_price = point
            except (TypeError, ValueError):
                continue
            day = datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc).date()
            price = self._to_decimal(raw_price)
            if price is None or day < start or day > end or day in prices:
                continue
            prices[day] = price

        logger.debug(f"Fetched {len(prices)} daily prices for {symbol} ({start} to {end})")
        return prices

    # =========================================================================
    # SYMBOL RESOLUTION
    # =========================================================================

    def resolve_coin_id(self, symbol: str) -> str:
        """
        Map a token symbol to a CoinGecko coin id.

        Raises:
            SymbolNotFoundError: If neither the static map nor /coins/list knows it
        """
        symbol = symbol.strip().upper()
        if symbol in self.SYMBOL_TO_ID:
            return self.SYMBOL_TO_ID[symbol]

        coin_id = self._coin_list().get(symbol)
        if coin_id is None:
            raise SymbolNotFoundError(symbol=symbol, provider=self.name)
        return coin_id

    def _resolve_or_none(self, symbol: str) -> str | None:
        try:
            return self.resolve_coin_id(symbol)
        except SymbolNotFoundError:
            logger.debug(f"Symbol {symbol} not listed on {self.name}")
            return None

    def _coin_list(self) -> dict[str, str]:
        """Symbol -> coin id from /coins/list, cached for coin_list_ttl seconds."""
        with self._coin_ids_lock:
            fresh = time.monotonic() - self._coin_ids_fetched_at < self._coin_list_ttl
            if self._coin_ids is not None and fresh:
                return self._coin_ids

            coins = self._execute_with_retry(self._get_json, "/coins/list", None) or []
            coin_ids: dict[str, str] = {}
            for coin in coins:
                symbol = str(coin.get("symbol", "")).upper()
                coin_id = coin.get("id")
                if not symbol or not coin_id:
                    continue
                # Several coins share a symbol; prefer the one whose id is the symbol itself
                if symbol not in coin_ids or coin_id.upper() == symbol:
                    coin_ids[symbol] = coin_id

            self._coin_ids = coin_ids
            self._coin_ids_fetched_at = time.monotonic()
            logger.info(f"Loaded {len(coin_ids)} symbols from {self.name} coin list")
            return coin_ids

    # =========================================================================
    # HTTP
    # =========================================================================

    def _get_json(self, path: str, params: dict[str, Any] | None) -> Any:
        """
        Perform one throttled GET and map failures onto MarketDataError.

        Returns:
            Decoded JSON body, or None on 404
        """
        self._throttle.wait()
        start = time.monotonic()
        try:
            response = self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise ProviderUnavailableError(provider=self.name, reason=f"timeout on {path}: {e}")
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(provider=self.name, reason=f"{type(e).__name__} on {path}: {e}")

        latency_ms = (time.monotonic() - start) * 1000

        if response.status_code == 429:
            retry_after = response.headers.get("Retry-After")
            logger.warning(f"{self.name} rate limited on {path}")
            raise RateLimitError(
                provider=self.name,
                retry_after=int(retry_after) if retry_after and retry_after.isdigit() else None,
            )
        if response.status_code == 404:
            logger.debug(f"{self.name} returned 404 for {path}")
            return None
        if response.status_code >= 500:
            raise ProviderUnavailableError(
                provider=self.name,
                reason=f"HTTP {response.status_code} on {path}",
            )
        if response.status_code != 200:
            logger.warning(
                f"{self.name} API error on {path}: "
                f"status={response.status_code} body={response.text[:200]}"
            )
            raise ProviderUnavailableError(
                provider=self.name,
                reason=f"HTTP {response.status_code} on {path}",
            )

        logger.debug(f"{self.name} GET {path} in {latency_ms:.1f}ms")
        try:
            return response.json()
        except ValueError as e:
            raise ProviderUnavailableError(provider=self.name, reason=f"invalid JSON on {path}: {e}")

    @staticmethod
    def _to_decimal(value: Any) -> Decimal | None:
        """Convert a JSON number to Decimal, returning None for missing/invalid values."""
        if value is None or isinstance(value, bool):
            return None
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError):
            return None
        return result if result.is_finite() else None
