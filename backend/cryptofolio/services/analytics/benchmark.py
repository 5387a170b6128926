# backend/cryptofolio/services/analytics/benchmark.py
"""
Benchmark comparison for the Analytics Service.

This module compares the portfolio's return over the report window with
reference crypto assets (BTC and ETH by default):
- Total return: first vs. last value of the window
- Outperformance: portfolio return - benchmark return
- Beta: Systematic risk relative to the benchmark
- Correlation: How closely the portfolio tracks the benchmark
- Alpha: Return above what beta predicts

Benchmark prices come from the price oracle: one historical_prices()
range call per benchmark gives both the start/end prices and the daily
benchmark series used for beta and correlation.

Formulas:
    Beta = Cov(R_p, R_b) / Var(R_b)

    Alpha = R_p - β * R_b              (β = 1 when beta is unknown)

    Correlation = Cov(R_p, R_b) / (σ_p * σ_b)
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Executor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date, timedelta
from decimal import Decimal
from statistics import mean, stdev
from typing import TYPE_CHECKING

from cryptofolio.config import settings
from cryptofolio.services.analytics.types import BenchmarkComparison
from cryptofolio.services.constants import HUNDRED, MIN_BENCHMARK_OBSERVATIONS, ZERO
from cryptofolio.services.exceptions import PriceLookupTimeoutError
from cryptofolio.services.valuation.types import DailyReturnPoint
from cryptofolio.utils.context import submit_with_context

if TYPE_CHECKING:
    from cryptofolio.services.protocols import PriceOracleProtocol

logger = logging.getLogger(__name__)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _covariance(x: list[float], y: list[float]) -> float:
    """Calculate sample covariance between two series."""
    if len(x) != len(y) or len(x) < 2:
        return 0.0

    mean_x = mean(x)
    mean_y = mean(y)

    cov = sum((x[i] - mean_x) * (y[i] - mean_y) for i in range(len(x)))
    return cov / (len(x) - 1)


def _variance(x: list[float]) -> float:
    """Calculate sample variance of a series."""
    if len(x) < 2:
        return 0.0

    return stdev(x) ** 2


# =============================================================================
# RETURNS
# =============================================================================

def calculate_total_return(start_value: Decimal | None, end_value: Decimal | None) -> Decimal | None:
    """(end - start) / start * 100, or None if either is unknown or start <= 0."""
    if start_value is None or end_value is None or start_value <= ZERO:
        return None
    return (end_value - start_value) / start_value * HUNDRED


def calculate_price_returns(prices: dict[date, Decimal]) -> dict[date, Decimal]:
    """
    Daily percentage returns of a price series.

    A return is only produced for day d when both d and d - 1 have a
    positive price, gaps are never bridged.
    """
    returns: dict[date, Decimal] = {}
    for day in sorted(prices):
        previous = prices.get(day - timedelta(days=1))
        if previous is not None and previous > ZERO:
            returns[day] = (prices[day] - previous) / previous * HUNDRED
    return returns


def align_returns(
        series: list[DailyReturnPoint],
        benchmark_returns: dict[date, Decimal],
) -> tuple[list[Decimal], list[Decimal]]:
    """
    Pair portfolio and benchmark returns on the days both exist.

    A day counts only when the previous day's value is positive. The first
    point and days before the first purchase carry a placeholder 0, not an
    observation.
    """
    portfolio_aligned: list[Decimal] = []
    benchmark_aligned: list[Decimal] = []
    for previous, point in zip(series, series[1:]):
        if previous.value <= ZERO:
            continue
        benchmark_return = benchmark_returns.get(point.date)
        if benchmark_return is not None:
            portfolio_aligned.append(point.return_pct)
            benchmark_aligned.append(benchmark_return)
    return portfolio_aligned, benchmark_aligned


# =============================================================================
# BETA, CORRELATION, ALPHA
# =============================================================================

def calculate_beta(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
) -> Decimal | None:
    """
    Calculate Beta (systematic risk).

    Beta measures how much the portfolio moves relative to the benchmark.

    Formula: β = Cov(R_p, R_b) / Var(R_b)

    Args:
        portfolio_returns: Portfolio daily returns
        benchmark_returns: Benchmark daily returns (same length, same days)

    Returns:
        Beta as Decimal, or None if fewer than MIN_BENCHMARK_OBSERVATIONS
        pairs or the benchmark never moved
    """
    if len(portfolio_returns) != len(benchmark_returns):
        logger.warning("Portfolio and benchmark return series must be same length")
        return None

    if len(portfolio_returns) < MIN_BENCHMARK_OBSERVATIONS:
        return None

    p_returns = [float(r) for r in portfolio_returns]
    b_returns = [float(r) for r in benchmark_returns]

    var_benchmark = _variance(b_returns)
    if var_benchmark == 0:
        return None

    return Decimal(str(_covariance(p_returns, b_returns) / var_benchmark))


def calculate_correlation(
        portfolio_returns: list[Decimal],
        benchmark_returns: list[Decimal],
) -> Decimal | None:
    """
    Calculate Pearson correlation coefficient.

    Returns:
        Correlation (-1 to 1), or None if fewer than
        MIN_BENCHMARK_OBSERVATIONS pairs or either series is flat
    """
    if len(portfolio_returns) != len(benchmark_returns):
        return None

    if len(portfolio_returns) < MIN_BENCHMARK_OBSERVATIONS:
        return None

    p_returns = [float(r) for r in portfolio_returns]
    b_returns = [float(r) for r in benchmark_returns]

    std_p = stdev(p_returns)
    std_b = stdev(b_returns)
    if std_p == 0 or std_b == 0:
        return None

    return Decimal(str(_covariance(p_returns, b_returns) / (std_p * std_b)))


def calculate_alpha(
        portfolio_return: Decimal,
        benchmark_return: Decimal,
        beta: Decimal | None,
) -> Decimal:
    """
    Return above what the benchmark exposure explains.

    Formula: α = R_p - β * R_b, with β = 1 when beta is unknown
    """
    effective_beta = beta if beta is not None else Decimal("1")
    return portfolio_return - benchmark_return * effective_beta


# =============================================================================
# BENCHMARK COMPARATOR
# =============================================================================

class BenchmarkComparator:
    """
    Compares a portfolio return series with benchmark assets.

    One oracle range call per benchmark, all issued concurrently and
    bounded by one lookup timeout. A benchmark whose prices can't be
    fetched still gets an entry, with its benchmark fields None.
    """

    def __init__(
            self,
            price_oracle: PriceOracleProtocol,
            executor: Executor,
            lookup_timeout: float | None = None,
    ) -> None:
        self._oracle = price_oracle
        self._executor = executor
        self._lookup_timeout = (
            lookup_timeout if lookup_timeout is not None
            else settings.price_lookup_timeout_seconds
        )

    def compare(
            self,
            series: list[DailyReturnPoint],
            benchmark_symbols: list[str] | None = None,
    ) -> list[BenchmarkComparison]:
        """
        Compare the series with each benchmark over the series' own window.

        Args:
            series: Portfolio daily return series (chronological)
            benchmark_symbols: Symbols to compare with (default settings.benchmark_symbol_list)

        Returns:
            One BenchmarkComparison per symbol, in the given order.
            Empty if the series is empty.
        """
        symbols = benchmark_symbols if benchmark_symbols is not None else settings.benchmark_symbol_list
        if not series or not symbols:
            return []

        start, end = series[0].date, series[-1].date
        portfolio_return = calculate_total_return(series[0].value, series[-1].value)

        futures = {
            symbol: submit_with_context(self._executor, self._oracle.historical_prices, symbol, start, end)
            for symbol in symbols
        }
        deadline = time.monotonic() + self._lookup_timeout

        comparisons: list[BenchmarkComparison] = []
        for symbol in symbols:
            comparison = BenchmarkComparison(benchmark_name=symbol, portfolio_return=portfolio_return)
            try:
                remaining = max(0.0, deadline - time.monotonic())
                try:
                    prices = futures[symbol].result(timeout=remaining)
                except FuturesTimeoutError:
                    futures[symbol].cancel()
                    raise PriceLookupTimeoutError(symbol, self._lookup_timeout)
                self._fill_comparison(comparison, series, prices, start, end)
            except Exception as e:
                logger.warning(f"Benchmark comparison against {symbol} failed: {e}")
            comparisons.append(comparison)

        return comparisons

    @staticmethod
    def _fill_comparison(
            comparison: BenchmarkComparison,
            series: list[DailyReturnPoint],
            prices: dict[date, Decimal],
            start: date,
            end: date,
    ) -> None:
        benchmark_return = calculate_total_return(prices.get(start), prices.get(end))
        if benchmark_return is None:
            logger.info(
                f"No {comparison.benchmark_name} price for {start} or {end}, "
                f"benchmark return unavailable"
            )
            return

        portfolio_aligned, benchmark_aligned = align_returns(series, calculate_price_returns(prices))

        comparison.benchmark_return = benchmark_return
        comparison.observations = len(portfolio_aligned)
        comparison.beta = calculate_beta(portfolio_aligned, benchmark_aligned)
        comparison.correlation = calculate_correlation(portfolio_aligned, benchmark_aligned)

        if comparison.portfolio_return is not None:
            comparison.outperformance = comparison.portfolio_return - benchmark_return
            comparison.alpha = calculate_alpha(comparison.portfolio_return, benchmark_return, comparison.beta)
