# backend/cryptofolio/services/analytics/risk.py
"""
Risk calculation functions for the Analytics Service.

This module contains pure functions for tail-risk metrics over a daily
return series (returns in percent):
- Value at Risk (VaR): Return threshold at a confidence level
- Conditional VaR (CVaR): Mean return in the tail at/below VaR
- Downside deviation: Dispersion of negative returns only
- Sortino Ratio: Downside risk-adjusted return

All functions are stateless and operate on Decimal values for precision.

Formulas:
    VaR_c = sorted(r)[floor(n * (100 - c) / 100)]     historical simulation

    CVaR_95 = mean(sorted(r)[0 .. index(VaR_95)])

    σ_down = sqrt(Σ r² / m)   over the m returns with r < 0

    Sortino = (mean(r) * 365) / (σ_down * √365)
"""

import logging
from decimal import Decimal

from cryptofolio.services.analytics.stats import decimal_mean, root_mean_square
from cryptofolio.services.analytics.types import RiskMetrics
from cryptofolio.services.constants import (
    CALENDAR_DAYS_PER_YEAR,
    RISK_FREE_RATE,
    SQRT_DAYS_PER_YEAR,
    VAR_95_TAIL_PERCENT,
    VAR_99_TAIL_PERCENT,
    ZERO,
)
from cryptofolio.services.valuation.types import DailyReturnPoint

logger = logging.getLogger(__name__)


# =============================================================================
# VALUE AT RISK (VaR)
# =============================================================================

def _percentile_index(count: int, tail_percent: int) -> int:
    """floor(count * tail / 100), clamped into [0, count - 1]."""
    index = count * tail_percent // 100
    return max(0, min(index, count - 1))


def calculate_var(
        daily_returns: list[Decimal],
        tail_percent: int = VAR_95_TAIL_PERCENT,
) -> Decimal | None:
    """
    Calculate Value at Risk using the historical method.

    Args:
        daily_returns: List of daily returns
        tail_percent: Tail size in percent (5 for 95% confidence, 1 for 99%)

    Returns:
        The return at the tail percentile (negative = loss), None if no data
    """
    if not daily_returns:
        return None

    sorted_returns = sorted(daily_returns)
    return sorted_returns[_percentile_index(len(sorted_returns), tail_percent)]


def calculate_cvar(
        daily_returns: list[Decimal],
        tail_percent: int = VAR_95_TAIL_PERCENT,
) -> Decimal | None:
    """
    Calculate Conditional Value at Risk (Expected Shortfall).

    Mean of the sorted returns from the worst up to and including the
    VaR observation.

    Returns:
        CVaR, or None if no data
    """
    if not daily_returns:
        return None

    sorted_returns = sorted(daily_returns)
    index = _percentile_index(len(sorted_returns), tail_percent)
    return decimal_mean(sorted_returns[:index + 1])


# =============================================================================
# DOWNSIDE DEVIATION & SORTINO
# =============================================================================

def calculate_downside_deviation(daily_returns: list[Decimal]) -> Decimal | None:
    """
    Calculate downside deviation (semi-deviation against a 0 target).

    Only negative returns enter the mean, and the mean is over those
    returns alone.

    Returns:
        Daily downside deviation, or None if no return is negative
    """
    negative_returns = [r for r in daily_returns if r < ZERO]
    return root_mean_square(negative_returns)


def calculate_sortino_ratio(
        average_return: Decimal | None,
        downside_deviation: Decimal | None,
        risk_free_rate: Decimal = RISK_FREE_RATE,
) -> Decimal | None:
    """
    Calculate Sortino Ratio.

    Like Sharpe but only penalizes downside volatility.

    Formula: Sortino = (R_p * 365 - R_f) / (σ_down * √365)

    Args:
        average_return: Mean daily return (not annualized)
        downside_deviation: Daily downside deviation

    Returns:
        Sortino ratio, or None if downside deviation is zero or unknown
    """
    if average_return is None or downside_deviation is None or downside_deviation == ZERO:
        return None

    annualized_return = average_return * CALENDAR_DAYS_PER_YEAR - risk_free_rate
    return annualized_return / (downside_deviation * SQRT_DAYS_PER_YEAR)


# =============================================================================
# COMBINED RISK CALCULATOR
# =============================================================================

class RiskMetricsCalculator:
    """
    Calculator for all risk metrics at once.

    An empty series yields RiskMetrics.empty(): every field None. A value
    that was computed as zero stays zero.
    """

    @staticmethod
    def calculate(series: list[DailyReturnPoint]) -> RiskMetrics:
        if not series:
            return RiskMetrics.empty()

        daily_returns = [p.return_pct for p in series]
        downside_deviation = calculate_downside_deviation(daily_returns)

        result = RiskMetrics(
            value_at_risk_95=calculate_var(daily_returns, VAR_95_TAIL_PERCENT),
            value_at_risk_99=calculate_var(daily_returns, VAR_99_TAIL_PERCENT),
            conditional_value_at_risk=calculate_cvar(daily_returns, VAR_95_TAIL_PERCENT),
            downside_deviation=downside_deviation,
            sortino_ratio=calculate_sortino_ratio(decimal_mean(daily_returns), downside_deviation),
        )

        logger.debug(
            f"Risk metrics over {len(series)} days: var95={result.value_at_risk_95}, "
            f"cvar={result.conditional_value_at_risk}, sortino={result.sortino_ratio}"
        )
        return result
