# backend/cryptofolio/services/market_data/cache.py
"""
Price caching for the price oracle.

- PriceCache: thread-safe bounded LRU with per-entry TTL
- CachedPriceOracle: decorates any PriceOracle with a PriceCache

The cache is an explicit dependency: whoever builds the oracle decides
whether it is shared (one per process) or private (one per test). There
is no module-level instance.

TTLs:
    Current prices        settings.price_cache_ttl_seconds (60s)
    Past historical days  settings.historical_price_cache_ttl_seconds (24h)
    Today's "historical"  current-price TTL, the day is still moving

Only hits are cached. A miss is re-asked next time, so a symbol that
gets listed later is picked up without waiting for a TTL.
"""

import logging
import threading
import time
from collections import OrderedDict
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any

from cryptofolio.config import settings
from cryptofolio.services.constants import (
    CURRENT_PRICE_CACHE_PREFIX,
    HISTORICAL_PRICE_CACHE_PREFIX,
)
from cryptofolio.services.market_data.base import CurrentPrice, PriceOracle

logger = logging.getLogger(__name__)


class PriceCache:
    """
    Thread-safe bounded LRU cache with TTL.

    Memory Safety:
        Holds at most `max_size` entries. When full, the least recently
        used entry is evicted to make room.

    Thread Safety:
        All access goes through one threading.Lock; price lookups for one
        report run on several threads at once.
    """

    def __init__(
            self,
            ttl_seconds: int | None = None,
            max_size: int | None = None,
    ) -> None:
        """
        Args:
            ttl_seconds: Default time-to-live for entries
            max_size: Maximum number of entries
        """
        self._default_ttl = ttl_seconds if ttl_seconds is not None else settings.price_cache_ttl_seconds
        self._max_size = max_size if max_size is not None else settings.price_cache_max_size
        # key -> (expires_at monotonic, value)
        self._cache: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if time.monotonic() >= expires_at:
                del self._cache[key]
                logger.debug(f"Cache expired for {key}")
                return None
            self._cache.move_to_end(key)
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        """Store a value, evicting least recently used entries when full."""
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        with self._lock:
            if key in self._cache:
                del self._cache[key]
            while len(self._cache) >= self._max_size:
                oldest_key = next(iter(self._cache))
                del self._cache[oldest_key]
                logger.debug(f"Cache evicted {oldest_key} (LRU)")
            self._cache[key] = (time.monotonic() + ttl, value)

    def purge_expired(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed
        """
        now = time.monotonic()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._cache.items() if now >= expires_at]
            for key in expired:
                del self._cache[key]
        if expired:
            logger.debug(f"Purged {len(expired)} expired price cache entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            count = len(self._cache)
            self._cache.clear()
        logger.debug(f"Cleared {count} cache entries")

    def size(self) -> int:
        with self._lock:
            return len(self._cache)


class CachedPriceOracle(PriceOracle):
    """
    PriceOracle decorator that serves repeated lookups from a PriceCache.

    Example:
        oracle = CachedPriceOracle(CoinGeckoPriceOracle(), PriceCache())
    """

    def __init__(
            self,
            inner: PriceOracle,
            cache: PriceCache,
            current_ttl_seconds: int | None = None,
            historical_ttl_seconds: int | None = None,
    ) -> None:
        self._inner = inner
        self._cache = cache
        self._current_ttl = (
            current_ttl_seconds if current_ttl_seconds is not None
            else settings.price_cache_ttl_seconds
        )
        self._historical_ttl = (
            historical_ttl_seconds if historical_ttl_seconds is not None
            else settings.historical_price_cache_ttl_seconds
        )

    @property
    def name(self) -> str:
        return self._inner.name

    @property
    def cache(self) -> PriceCache:
        return self._cache

    def current_prices(self, symbols: list[str]) -> dict[str, CurrentPrice]:
        result: dict[str, CurrentPrice] = {}
        missing: list[str] = []

        for symbol in {s.upper() for s in symbols}:
            cached = self._cache.get(f"{CURRENT_PRICE_CACHE_PREFIX}:{symbol}")
            if cached is not None:
                result[symbol] = cached
            else:
                missing.append(symbol)

        if missing:
            fetched = self._inner.current_prices(sorted(missing))
            for symbol, quote in fetched.items():
                self._cache.set(f"{CURRENT_PRICE_CACHE_PREFIX}:{symbol}", quote, self._current_ttl)
            result.update(fetched)

        return result

    def historical_price(self, symbol: str, day: date) -> Decimal | None:
        key = self._historical_key(symbol, day)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        price = self._inner.historical_price(symbol, day)
        if price is not None:
            self._cache.set(key, price, self._ttl_for_day(day))
        return price

    def historical_prices(self, symbol: str, start: date, end: date) -> dict[date, Decimal]:
        """Serve the range from cache only when every day of it is cached."""
        cached: dict[date, Decimal] = {}
        day = start
        while day <= end:
            price = self._cache.get(self._historical_key(symbol, day))
            if price is None:
                break
            cached[day] = price
            day += timedelta(days=1)
        else:
            return cached

        prices = self._inner.historical_prices(symbol, start, end)
        for price_day, price in prices.items():
            self._cache.set(self._historical_key(symbol, price_day), price, self._ttl_for_day(price_day))
        return prices

    @staticmethod
    def _historical_key(symbol: str, day: date) -> str:
        return f"{HISTORICAL_PRICE_CACHE_PREFIX}:{symbol.upper()}:{day.isoformat()}"

    def _ttl_for_day(self, day: date) -> int:
        today = datetime.now(timezone.utc).date()
        return self._current_ttl if day >= today else self._historical_ttl
