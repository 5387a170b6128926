# backend/cryptofolio/services/analytics/advanced.py
"""
Advanced performance metrics for the Analytics Service.

Pure functions over a daily return series (returns in percent):
- Average return: mean daily return, annualized
- Volatility: population std of daily returns, annualized
- Sharpe Ratio: annualized return per unit of volatility
- Max Drawdown: largest peak-to-trough decline of the value series
- Win Rate and best/worst day

Crypto trades every calendar day, so annualization uses 365 days.

Formulas:
    Average return (annualized) = mean(r) * 365

    Volatility (annualized) = σ(r) * √365         σ = population std

    Sharpe Ratio = (R_p - R_f) / σ_p              R_f = 0

    Drawdown(t) = (Peak(t) - V(t)) / Peak(t) * 100
"""

import logging
from decimal import Decimal

from cryptofolio.services.analytics.stats import decimal_mean, decimal_population_stdev
from cryptofolio.services.analytics.types import AdvancedMetrics, DayReturn, DrawdownPeriod
from cryptofolio.services.constants import (
    CALENDAR_DAYS_PER_YEAR,
    HUNDRED,
    RISK_FREE_RATE,
    SQRT_DAYS_PER_YEAR,
    ZERO,
)
from cryptofolio.services.valuation.types import DailyReturnPoint

logger = logging.getLogger(__name__)


# =============================================================================
# RETURN & VOLATILITY
# =============================================================================

def calculate_average_return(daily_returns: list[Decimal]) -> Decimal | None:
    """Annualized mean daily return, or None for an empty series."""
    mean_val = decimal_mean(daily_returns)
    if mean_val is None:
        return None
    return mean_val * CALENDAR_DAYS_PER_YEAR


def calculate_volatility(daily_returns: list[Decimal]) -> Decimal | None:
    """
    Annualized volatility by the square-root-of-time rule.

    Args:
        daily_returns: Daily returns in percent

    Returns:
        σ(r) * √365, or None for an empty series
    """
    std = decimal_population_stdev(daily_returns)
    if std is None:
        return None
    return std * SQRT_DAYS_PER_YEAR


def calculate_sharpe_ratio(
        average_return: Decimal | None,
        volatility: Decimal | None,
        risk_free_rate: Decimal = RISK_FREE_RATE,
) -> Decimal | None:
    """
    Calculate Sharpe Ratio.

    Formula: Sharpe = (R_p - R_f) / σ_p

    Args:
        average_return: Annualized average return
        volatility: Annualized volatility

    Returns:
        Sharpe ratio, or None if volatility is zero or unknown
    """
    if average_return is None or volatility is None or volatility == ZERO:
        return None
    return (average_return - risk_free_rate) / volatility


# =============================================================================
# DRAWDOWN
# =============================================================================

def calculate_max_drawdown(
        series: list[DailyReturnPoint],
) -> tuple[Decimal | None, DrawdownPeriod | None]:
    """
    Largest decline from a running peak, in percent.

    The peak moves only on a strictly higher value, so a flat stretch
    after a peak keeps the earlier peak date.

    Args:
        series: Daily points in chronological order

    Returns:
        Tuple of:
        - max_drawdown: Positive percentage (10 = 10%), None if the value never declined
        - period: Peak and trough dates of that drawdown
    """
    if not series:
        return None, None

    peak_value = series[0].value
    peak_date = series[0].date
    max_drawdown = ZERO
    period: DrawdownPeriod | None = None

    for point in series:
        if point.value > peak_value:
            peak_value = point.value
            peak_date = point.date
            continue

        if peak_value <= ZERO:
            continue

        drawdown = (peak_value - point.value) / peak_value * HUNDRED
        if drawdown > max_drawdown:
            max_drawdown = drawdown
            period = DrawdownPeriod(start=peak_date, end=point.date)

    if max_drawdown == ZERO:
        return None, None
    return max_drawdown, period


# =============================================================================
# WIN/LOSS STATISTICS
# =============================================================================

def calculate_win_rate(daily_returns: list[Decimal]) -> Decimal | None:
    """Share of strictly positive days in percent, or None for an empty series."""
    if not daily_returns:
        return None
    winning_days = sum(1 for r in daily_returns if r > ZERO)
    return Decimal(winning_days) / Decimal(len(daily_returns)) * HUNDRED


def find_best_and_worst_days(
        series: list[DailyReturnPoint],
) -> tuple[DayReturn | None, DayReturn | None]:
    """Days with the highest and lowest return. Ties go to the earliest day."""
    if not series:
        return None, None

    best = max(series, key=lambda p: p.return_pct)
    worst = min(series, key=lambda p: p.return_pct)
    return (
        DayReturn(date=best.date, return_pct=best.return_pct),
        DayReturn(date=worst.date, return_pct=worst.return_pct),
    )


# =============================================================================
# COMBINED CALCULATOR
# =============================================================================

class AdvancedMetricsCalculator:
    """
    Calculator for all advanced metrics at once.

    Never raises on data shape: an empty series yields AdvancedMetrics.empty().
    """

    @staticmethod
    def calculate(series: list[DailyReturnPoint]) -> AdvancedMetrics:
        """
        Args:
            series: Daily return series in chronological order, first point included

        Returns:
            AdvancedMetrics
        """
        if not series:
            return AdvancedMetrics.empty()

        daily_returns = [p.return_pct for p in series]

        average_return = calculate_average_return(daily_returns)
        volatility = calculate_volatility(daily_returns)
        max_drawdown, drawdown_period = calculate_max_drawdown(series)
        best_day, worst_day = find_best_and_worst_days(series)

        result = AdvancedMetrics(
            average_return=average_return,
            volatility=volatility,
            sharpe_ratio=calculate_sharpe_ratio(average_return, volatility),
            max_drawdown=max_drawdown,
            max_drawdown_period=drawdown_period,
            win_rate=calculate_win_rate(daily_returns),
            best_day=best_day,
            worst_day=worst_day,
            total_trading_days=len(series),
        )

        logger.debug(
            f"Advanced metrics over {len(series)} days: vol={volatility}, "
            f"sharpe={result.sharpe_ratio}, max_dd={max_drawdown}"
        )
        return result
