# backend/cryptofolio/services/valuation/history_calculator.py
"""
Historical valuation of a user's portfolio.

This module answers "what was the portfolio worth on day D?":
1. Replay the user's ledger up to D into per-symbol (amount, cost basis)
2. Price every open position with the oracle's historical price for D
3. Fall back to the position's cost basis when no price is available

Two entry points:
    value_at(user_id, day)           one point, one oracle call per open symbol
    value_series(user_id, start, end) a window, one range call per symbol

value_series uses the Rolling State pattern: transactions are applied once
while walking the sorted dates, O(D + T) instead of O(D * T).

Oracle calls run on a thread pool and every call is bounded by
settings.price_lookup_timeout_seconds. A miss, an error or a timeout for
one symbol degrades that symbol to its cost basis and never aborts the
valuation.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from cryptofolio.config import settings
from cryptofolio.services.constants import HUNDRED, ZERO
from cryptofolio.services.exceptions import ValidationError
from cryptofolio.services.valuation.calculators import PositionCalculator
from cryptofolio.services.valuation.types import DailyReturnPoint, PositionState
from cryptofolio.utils.context import submit_with_context

if TYPE_CHECKING:
    from cryptofolio.services.protocols import LedgerRepositoryProtocol, PriceOracleProtocol

logger = logging.getLogger(__name__)


def utc_today() -> date:
    """Current calendar day in UTC, the day boundary used for every series."""
    return datetime.now(timezone.utc).date()


# =============================================================================
# HISTORICAL VALUATION ESTIMATOR
# =============================================================================

class HistoricalValuationEstimator:
    """
    Estimates portfolio value at past dates.

    The estimate is a market valuation where historical prices exist and
    a cost-basis valuation where they don't. It is never cached: each
    call re-reads the ledger and re-asks the oracle (which may cache).

    Attributes:
        _repository: Ledger access
        _oracle: Historical prices
        _executor: Pool for concurrent oracle calls
        _lookup_timeout: Seconds allowed for one batch of oracle calls
    """

    def __init__(
            self,
            repository: LedgerRepositoryProtocol,
            price_oracle: PriceOracleProtocol,
            executor: Executor | None = None,
            lookup_timeout: float | None = None,
    ) -> None:
        """
        Args:
            repository: Ledger repository
            price_oracle: Price oracle (cached or not)
            executor: Shared pool. If None, the estimator owns a private one
                      and shuts it down in close().
            lookup_timeout: Per-lookup timeout in seconds
        """
        self._repository = repository
        self._oracle = price_oracle
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=settings.analytics_max_workers,
            thread_name_prefix="price-lookup",
        )
        self._lookup_timeout = (
            lookup_timeout if lookup_timeout is not None
            else settings.price_lookup_timeout_seconds
        )

    def close(self) -> None:
        """Shut down the private pool, if this estimator created one."""
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def value_at(self, user_id: int, target: date) -> Decimal:
        """
        Estimate the user's portfolio value at the end of `target`.

        Args:
            user_id: Portfolio owner
            target: Valuation day (transactions on that day are included)

        Returns:
            Sum over open positions of amount * price, or the position's
            cost basis where no price could be obtained
        """
        transactions = self._repository.list_transactions(user_id=user_id, end=target)
        positions = PositionCalculator.replay(transactions)
        self._warn_negative_positions(user_id, positions, target)

        open_positions = {s: p for s, p in positions.items() if p.is_open}
        if not open_positions:
            return ZERO

        futures = {
            symbol: submit_with_context(self._executor, self._oracle.historical_price, symbol, target)
            for symbol in open_positions
        }
        deadline = time.monotonic() + self._lookup_timeout

        total = ZERO
        for symbol in sorted(open_positions):
            position = open_positions[symbol]
            price = self._await_result(futures[symbol], deadline, symbol, target)
            if price is None:
                logger.debug(f"No price for {symbol} on {target}, using cost basis {position.cost_basis}")
                total += position.cost_basis
            else:
                total += position.amount * price

        return total

    def value_series(self, user_id: int, start: date, end: date) -> list[tuple[date, Decimal]]:
        """
        Estimate the portfolio value for every day in [start, end].

        Same valuation rules as value_at(), but prices come from one
        historical_prices() range call per symbol and the ledger is
        replayed once.

        Returns:
            (day, value) pairs in chronological order, one per calendar day.
            Empty when the user has no transactions up to `end`, there is
            nothing to value.
        """
        if start > end:
            raise ValidationError(f"start {start} is after end {end}", field="start")

        # Step 1: All transactions up to end, sorted by date
        transactions = self._repository.list_transactions(user_id=user_id, end=end)
        if not transactions:
            logger.debug(f"User {user_id} has no transactions up to {end}, empty series")
            return []

        # Step 2: One range lookup per symbol, concurrently
        symbols = sorted({txn.token_symbol for txn in transactions})
        price_maps = self._fetch_price_ranges(symbols, start, end)

        # Step 3: Rolling state over the sorted dates
        positions: dict[str, PositionState] = {}
        txn_index = 0
        num_txns = len(transactions)
        series: list[tuple[date, Decimal]] = []

        day = start
        while day <= end:
            while txn_index < num_txns and transactions[txn_index].day <= day:
                PositionCalculator.apply_transaction(positions, transactions[txn_index])
                txn_index += 1

            series.append((day, self._snapshot_value(positions, price_maps, day)))
            day += timedelta(days=1)

        self._warn_negative_positions(user_id, positions, end)
        return series

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _fetch_price_ranges(
            self,
            symbols: list[str],
            start: date,
            end: date,
    ) -> dict[str, dict[date, Decimal]]:
        """Fetch [start, end] prices for each symbol. A failed symbol maps to {}."""
        futures = {
            symbol: submit_with_context(self._executor, self._oracle.historical_prices, symbol, start, end)
            for symbol in symbols
        }
        deadline = time.monotonic() + self._lookup_timeout

        price_maps: dict[str, dict[date, Decimal]] = {}
        for symbol in symbols:
            prices = self._await_result(futures[symbol], deadline, symbol, start)
            price_maps[symbol] = prices or {}
        return price_maps

    @staticmethod
    def _snapshot_value(
            positions: dict[str, PositionState],
            price_maps: dict[str, dict[date, Decimal]],
            day: date,
    ) -> Decimal:
        total = ZERO
        for symbol, position in positions.items():
            if not position.is_open:
                continue
            price = price_maps.get(symbol, {}).get(day)
            if price is None:
                total += position.cost_basis
            else:
                total += position.amount * price
        return total

    def _await_result(self, future: Future, deadline: float, symbol: str, day: date):
        """
        Wait for one oracle call until the shared deadline.

        Returns the call's result, or None on timeout or error.
        """
        remaining = max(0.0, deadline - time.monotonic())
        try:
            return future.result(timeout=remaining)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(
                f"Price lookup for {symbol} ({day}) timed out after "
                f"{self._lookup_timeout}s, falling back to cost basis"
            )
        except Exception as e:
            logger.warning(f"Price lookup for {symbol} ({day}) failed: {e}, falling back to cost basis")
        return None

    @staticmethod
    def _warn_negative_positions(user_id: int, positions: dict[str, PositionState], day: date) -> None:
        for symbol, position in positions.items():
            if position.amount < ZERO:
                logger.warning(
                    f"User {user_id} has negative reconstructed {symbol} amount "
                    f"{position.amount} on {day}"
                )


# =============================================================================
# DAILY RETURN SERIES
# =============================================================================

def compute_daily_returns(values: list[tuple[date, Decimal]]) -> list[DailyReturnPoint]:
    """
    Turn (day, value) pairs into return points.

    Formula:
        return[i] = (value[i] - value[i-1]) / value[i-1] * 100   if value[i-1] > 0
                  = 0                                           otherwise
    The first point has no baseline and always returns 0.
    """
    points: list[DailyReturnPoint] = []
    previous: Decimal | None = None

    for day, value in values:
        if previous is not None and previous > ZERO:
            return_pct = (value - previous) / previous * HUNDRED
        else:
            return_pct = ZERO
        points.append(DailyReturnPoint(date=day, value=value, return_pct=return_pct))
        previous = value

    return points


class DailyReturnSeriesBuilder:
    """
    Builds the trailing daily return series for a user.

    The series is recomputed on every call. Callers that need it more
    than once per report should build it once and pass it around.
    """

    def __init__(self, estimator: HistoricalValuationEstimator) -> None:
        self._estimator = estimator

    def daily_series(
            self,
            user_id: int,
            window_days: int | None = None,
            as_of: date | None = None,
    ) -> list[DailyReturnPoint]:
        """
        One point per calendar day over [as_of - window_days, as_of].

        Args:
            user_id: Portfolio owner
            window_days: Trailing window (default settings.analytics_window_days)
            as_of: Last day of the window (default today, UTC)

        Returns:
            window_days + 1 points in chronological order, or an empty list
            for a user without transactions

        Raises:
            ValidationError: If window_days < 1
        """
        window = window_days if window_days is not None else settings.analytics_window_days
        if window < 1:
            raise ValidationError(f"window_days must be at least 1, got {window}", field="window_days")

        end = as_of or utc_today()
        start = end - timedelta(days=window)

        started = time.perf_counter()
        values = self._estimator.value_series(user_id, start, end)
        points = compute_daily_returns(values)

        logger.debug(
            f"Built {len(points)}-point daily series for user {user_id} "
            f"in {time.perf_counter() - started:.2f}s"
        )
        return points
