# backend/cryptofolio/services/market_data/base.py
"""
Abstract interface for price oracles.

This module defines the contract that every price source must follow.
The analytics engine depends on this abstraction (or the structural
PriceOracleProtocol), never on a concrete provider, so tests substitute
a deterministic fake and production wraps CoinGecko in a cache.

Contract:
- A miss (unknown symbol, no price for a date) is a normal outcome:
  None from single lookups, absent keys from batch lookups.
- A provider failure raises a MarketDataError subclass.
- Retries are bounded (MAX_RETRY_ATTEMPTS) so callers never trigger a
  retry storm against a rate-limited API.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import TypeVar, Callable, Any

from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

from cryptofolio.services.constants import PRICE_ORACLE_MAX_ATTEMPTS
from cryptofolio.services.exceptions import (
    ProviderUnavailableError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class CurrentPrice:
    """
    Latest quote for one token.

    Attributes:
        symbol: Token symbol, uppercase (e.g., "BTC")
        usd: Price in USD
        change_24h: 24 hour change in percent (None if the provider omits it)
    """

    symbol: str
    usd: Decimal
    change_24h: Decimal | None = None

    def __post_init__(self) -> None:
        if self.usd < 0:
            raise ValueError(f"price must not be negative, got {self.usd}")


# =============================================================================
# ABSTRACT BASE CLASS
# =============================================================================

class PriceOracle(ABC):
    """
    Abstract base class for price oracles.

    Retry Behavior:
        `_execute_with_retry` wraps a provider call with exponential backoff
        on ProviderUnavailableError and RateLimitError. Subclasses tune it
        through class attributes:

        - MAX_RETRY_ATTEMPTS: Total attempts (default: 2)
        - RETRY_MIN_WAIT: Minimum wait in seconds (default: 1)
        - RETRY_MAX_WAIT: Maximum wait in seconds (default: 10)
        - RETRY_MULTIPLIER: Exponential multiplier (default: 1)
    """

    MAX_RETRY_ATTEMPTS: int = PRICE_ORACLE_MAX_ATTEMPTS
    RETRY_MIN_WAIT: float = 1
    RETRY_MAX_WAIT: float = 10
    RETRY_MULTIPLIER: float = 1

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name used in logs and errors (e.g., "coingecko")."""
        pass

    @abstractmethod
    def current_prices(self, symbols: list[str]) -> dict[str, CurrentPrice]:
        """
        Fetch latest quotes for several symbols in one call.

        Args:
            symbols: Token symbols (any case)

        Returns:
            Dict keyed by uppercase symbol; symbols without a quote are absent

        Raises:
            ProviderUnavailableError: Network or API error
            RateLimitError: Rate limit exceeded
        """
        pass

    @abstractmethod
    def historical_price(self, symbol: str, day: date) -> Decimal | None:
        """
        Fetch the USD price of a token on a given day.

        Returns:
            Price, or None if the provider has no price for that day

        Raises:
            ProviderUnavailableError: Network or API error
            RateLimitError: Rate limit exceeded
        """
        pass

    def current_price(self, symbol: str) -> CurrentPrice | None:
        """Latest quote for one symbol, or None on a miss."""
        return self.current_prices([symbol]).get(symbol.upper())

    def historical_prices(self, symbol: str, start: date, end: date) -> dict[date, Decimal]:
        """
        Fetch daily prices for an inclusive date range.

        Default implementation calls historical_price() once per day.
        Providers with a range endpoint should override this.

        Returns:
            Dict keyed by day; days without a price are absent
        """
        prices: dict[date, Decimal] = {}
        day = start
        while day <= end:
            price = self.historical_price(symbol, day)
            if price is not None:
                prices[day] = price
            day += timedelta(days=1)
        return prices

    # =========================================================================
    # RETRY HELPER METHOD
    # =========================================================================

    def _execute_with_retry(
            self,
            func: Callable[..., T],
            *args: Any,
            **kwargs: Any,
    ) -> T:
        """
        Execute a provider call with bounded retry for transient failures.

        Retries ProviderUnavailableError and RateLimitError only; anything
        else (including SymbolNotFoundError) propagates on the first attempt.

        Raises:
            The last exception if all attempts fail
        """

        @retry(
            stop=stop_after_attempt(self.MAX_RETRY_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.RETRY_MULTIPLIER,
                min=self.RETRY_MIN_WAIT,
                max=self.RETRY_MAX_WAIT,
            ),
            retry=retry_if_exception_type((ProviderUnavailableError, RateLimitError)),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        def _inner() -> T:
            return func(*args, **kwargs)

        return _inner()
