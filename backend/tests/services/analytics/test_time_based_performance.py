# backend/tests/services/analytics/test_time_based_performance.py
"""
Tests for trailing-period performance.

The estimator is mocked: these tests cover period boundaries and the
return arithmetic, not historical valuation.
"""

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from cryptofolio.services.analytics.performance import (
    TimeBasedPerformanceCalculator,
    calculate_period_return,
    performance_periods,
)

TODAY = date(2024, 6, 15)


class TestPerformancePeriods:
    """Tests for performance_periods."""

    def test_order_and_lengths(self):
        periods = performance_periods(TODAY)

        assert [name for name, _ in periods] == ["1D", "7D", "30D", "90D", "1Y", "YTD"]
        assert dict(periods)["1Y"] == 365
        # Jan 1 to Jun 15 in a leap year
        assert dict(periods)["YTD"] == 166

    def test_ytd_on_new_year(self):
        assert dict(performance_periods(date(2024, 1, 1)))["YTD"] == 0


class TestPeriodReturn:
    """Tests for calculate_period_return."""

    def test_gain(self):
        result = calculate_period_return("7D", Decimal("800"), Decimal("1000"), date(2024, 6, 8), TODAY)

        assert result.absolute_return == Decimal("200")
        assert result.percentage_return == Decimal("25")

    @pytest.mark.parametrize("start_value", [Decimal("0"), Decimal("-5")])
    def test_non_positive_start(self, start_value):
        result = calculate_period_return("1Y", start_value, Decimal("1000"), date(2023, 6, 16), TODAY)

        assert result.absolute_return == Decimal("1000") - start_value
        assert result.percentage_return is None


class TestTimeBasedPerformanceCalculator:
    """Tests for TimeBasedPerformanceCalculator.calculate."""

    def test_values_each_period_start(self):
        estimator = MagicMock()
        estimator.value_at.return_value = Decimal("500")

        results = TimeBasedPerformanceCalculator(estimator).calculate(1, Decimal("1000"), today=TODAY)

        assert len(results) == 6
        assert all(r.end_date == TODAY for r in results)
        assert all(r.percentage_return == Decimal("100") for r in results)
        requested = [call.args[1] for call in estimator.value_at.call_args_list]
        assert requested == [
            date(2024, 6, 14),
            date(2024, 6, 8),
            date(2024, 5, 16),
            date(2024, 3, 17),
            date(2023, 6, 16),
            date(2024, 1, 1),
        ]

    def test_empty_history(self):
        estimator = MagicMock()
        estimator.value_at.return_value = Decimal("0")

        results = TimeBasedPerformanceCalculator(estimator).calculate(1, Decimal("0"), today=TODAY)

        assert all(r.percentage_return is None for r in results)
        assert all(r.absolute_return == Decimal("0") for r in results)
