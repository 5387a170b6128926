# backend/cryptofolio/services/analytics/performance.py
"""
Trailing-period performance (1D, 7D, 30D, 90D, 1Y, YTD).

The end value of every period is the current portfolio value from the
summary. The start value is the historical estimate at today - N days,
so it follows the estimator's cost-basis fallback rules.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from cryptofolio.services.analytics.types import TimeBasedPerformance
from cryptofolio.services.constants import HUNDRED, PERFORMANCE_PERIODS, YTD_PERIOD, ZERO
from cryptofolio.services.valuation.history_calculator import utc_today

if TYPE_CHECKING:
    from cryptofolio.services.valuation.history_calculator import HistoricalValuationEstimator

logger = logging.getLogger(__name__)


def performance_periods(today: date) -> list[tuple[str, int]]:
    """Named periods with their length in days, YTD last."""
    ytd_days = (today - date(today.year, 1, 1)).days
    return [*PERFORMANCE_PERIODS, (YTD_PERIOD, ytd_days)]


def calculate_period_return(
        period: str,
        start_value: Decimal,
        end_value: Decimal,
        start_date: date,
        end_date: date,
) -> TimeBasedPerformance:
    """Absolute and percentage return between two values."""
    absolute_return = end_value - start_value
    percentage_return = absolute_return / start_value * HUNDRED if start_value > ZERO else None
    return TimeBasedPerformance(
        period=period,
        start_value=start_value,
        end_value=end_value,
        absolute_return=absolute_return,
        percentage_return=percentage_return,
        start_date=start_date,
        end_date=end_date,
    )


class TimeBasedPerformanceCalculator:
    """Returns over the standard trailing periods."""

    def __init__(self, estimator: HistoricalValuationEstimator) -> None:
        self._estimator = estimator

    def calculate(
            self,
            user_id: int,
            end_value: Decimal,
            today: date | None = None,
    ) -> list[TimeBasedPerformance]:
        """
        Args:
            user_id: Portfolio owner
            end_value: Current portfolio value
            today: End of every period (default today, UTC)

        Returns:
            One entry per period, in PERFORMANCE_PERIODS order then YTD
        """
        end_date = today or utc_today()
        results: list[TimeBasedPerformance] = []

        for period, days in performance_periods(end_date):
            start_date = end_date - timedelta(days=days)
            start_value = self._estimator.value_at(user_id, start_date)
            results.append(calculate_period_return(period, start_value, end_value, start_date, end_date))

        logger.debug(f"Computed {len(results)} performance periods for user {user_id}")
        return results
