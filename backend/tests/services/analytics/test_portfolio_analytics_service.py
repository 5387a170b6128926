# backend/tests/services/analytics/test_portfolio_analytics_service.py
"""
Integration tests for PortfolioAnalyticsService.

These run the whole engine against a SQLite ledger and the fake oracle.

Test Coverage:
- Enhanced report: every section present, one correlation ID
- Leaf sections run concurrently
- Degradation: a failing or slow section yields its empty form plus a warning
- Users without transactions get null metrics, not zeros
- Individual section entry points and holding maintenance pass-throughs
"""

import threading
import time
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from cryptofolio.models import TransactionType
from cryptofolio.services.analytics import PortfolioAnalyticsService
from cryptofolio.services.analytics.types import AdvancedMetrics, RiskMetrics
from cryptofolio.services.exceptions import ValidationError
from cryptofolio.services.valuation.history_calculator import compute_daily_returns, utc_today

SERVICE_MODULE = "cryptofolio.services.analytics.service"


@pytest.fixture
def service(repository, oracle):
    svc = PortfolioAnalyticsService(repository, oracle, max_workers=4, section_timeout=30, lookup_timeout=5)
    yield svc
    svc.close()


@pytest.fixture
def invested_user(make_user, make_holding, make_transaction, oracle):
    """
    BTC bought 40 days ago, half sold 10 days ago; ETH bought 20 days ago.
    Daily prices exist for the last 40 days.
    """
    today = utc_today()
    user = make_user()
    btc = make_holding(user, "BTC")
    eth = make_holding(user, "ETH")
    make_transaction(btc, TransactionType.BUY, "1", today - timedelta(days=40), price="40000")
    make_transaction(btc, TransactionType.SELL, "0.5", today - timedelta(days=10), price="45000")
    make_transaction(eth, TransactionType.BUY, "10", today - timedelta(days=20), price="2000",
                     exchange_name="Kraken")

    start = today - timedelta(days=40)
    oracle.set_historical_range("BTC", start, [str(40000 + 100 * i + (300 if i % 3 else -200)) for i in range(41)])
    oracle.set_historical_range("ETH", start, [str(2000 + 10 * i - (50 if i % 2 else 0)) for i in range(41)])
    oracle.set_current("BTC", "44000")
    oracle.set_current("ETH", "2400")
    return user


# =============================================================================
# ENHANCED REPORT
# =============================================================================

class TestEnhancedMetrics:
    """Tests for get_enhanced_portfolio_metrics."""

    def test_complete_report(self, service, invested_user):
        service.recompute_user_holdings(invested_user.id)
        service.refresh_holding_prices(invested_user.id)

        report = service.get_enhanced_portfolio_metrics(invested_user.id)

        assert report.warnings == []
        assert report.correlation_id.startswith("report-")
        assert report.generated_at is not None
        # 0.5 * 44000 + 10 * 2400
        assert report.summary.total_value == Decimal("46000")
        assert report.summary.holdings_count == 2
        assert [p.period for p in report.time_based_performance] == ["1D", "7D", "30D", "90D", "1Y", "YTD"]
        assert report.advanced_metrics.total_trading_days == 366
        assert report.advanced_metrics.volatility is not None
        assert report.risk_metrics.value_at_risk_95 is not None
        assert [c.benchmark_name for c in report.benchmark_comparisons] == ["BTC", "ETH"]

    def test_user_without_transactions(self, service, make_user, make_holding):
        user = make_user()
        make_holding(user, "BTC")

        report = service.get_enhanced_portfolio_metrics(user.id)

        assert report.warnings == []
        assert report.summary.holdings_count == 1
        assert report.summary.total_value == Decimal("0")
        assert report.advanced_metrics == AdvancedMetrics.empty()
        assert report.risk_metrics == RiskMetrics.empty()
        assert report.benchmark_comparisons == []
        assert all(p.percentage_return is None for p in report.time_based_performance)

    def test_series_failure_degrades_dependents(self, service, invested_user):
        with patch.object(service._series_builder, "daily_series", side_effect=RuntimeError("ledger offline")):
            report = service.get_enhanced_portfolio_metrics(invested_user.id)

        assert "daily return series failed: ledger offline" in report.warnings
        assert "advanced metrics unavailable: daily return series failed" in report.warnings
        assert "risk metrics unavailable: daily return series failed" in report.warnings
        assert "benchmark comparisons unavailable: daily return series failed" in report.warnings
        assert report.advanced_metrics == AdvancedMetrics.empty()
        assert report.benchmark_comparisons == []
        assert len(report.time_based_performance) == 6

    def test_failing_section_is_isolated(self, service, invested_user):
        with patch(f"{SERVICE_MODULE}.RiskMetricsCalculator.calculate", side_effect=RuntimeError("boom")):
            report = service.get_enhanced_portfolio_metrics(invested_user.id)

        assert report.warnings == ["risk metrics failed: boom"]
        assert report.risk_metrics == RiskMetrics.empty()
        assert report.advanced_metrics.total_trading_days == 366

    def test_slow_section_times_out(self, repository, oracle, invested_user):
        series = compute_daily_returns([(date(2024, 1, d), Decimal(100 + d)) for d in range(1, 20)])

        def slow(_series):
            time.sleep(2)
            return AdvancedMetrics.empty()

        service = PortfolioAnalyticsService(repository, oracle, max_workers=4, section_timeout=0.5)
        try:
            with patch.object(service._series_builder, "daily_series", return_value=series), \
                    patch.object(service._performance, "calculate", return_value=[]), \
                    patch(f"{SERVICE_MODULE}.AdvancedMetricsCalculator.calculate", side_effect=slow):
                report = service.get_enhanced_portfolio_metrics(invested_user.id)
        finally:
            service.close()

        assert report.warnings == ["advanced metrics timed out"]
        assert report.advanced_metrics == AdvancedMetrics.empty()
        assert report.risk_metrics.value_at_risk_95 is not None

    def test_leaf_sections_run_concurrently(self, repository, oracle, invested_user):
        """All four leaf sections are in flight at once; none waits on another."""
        series = compute_daily_returns([(date(2024, 1, d), Decimal(100 + d)) for d in range(1, 20)])
        barrier = threading.Barrier(4, timeout=5)

        def meet(result):
            def section(*_args):
                barrier.wait()
                return result
            return section

        service = PortfolioAnalyticsService(repository, oracle, max_workers=4, section_timeout=10)
        try:
            with patch.object(service._series_builder, "daily_series", return_value=series), \
                    patch.object(service._performance, "calculate", side_effect=meet([])), \
                    patch.object(service._benchmarks, "compare", side_effect=meet([])), \
                    patch(f"{SERVICE_MODULE}.AdvancedMetricsCalculator.calculate",
                          side_effect=meet(AdvancedMetrics.empty())), \
                    patch(f"{SERVICE_MODULE}.RiskMetricsCalculator.calculate",
                          side_effect=meet(RiskMetrics.empty())):
                started = time.monotonic()
                report = service.get_enhanced_portfolio_metrics(invested_user.id)
                elapsed = time.monotonic() - started
        finally:
            service.close()

        assert report.warnings == []
        assert not barrier.broken
        assert elapsed < 5

    def test_oracle_outage_still_complete(self, service, oracle, invested_user):
        oracle.fail_symbol("BTC")
        oracle.fail_symbol("ETH")

        report = service.get_enhanced_portfolio_metrics(invested_user.id)

        # Valuation falls back to cost basis, benchmarks report None
        assert report.warnings == []
        assert report.advanced_metrics.total_trading_days == 366
        assert [c.benchmark_name for c in report.benchmark_comparisons] == ["BTC", "ETH"]
        assert all(c.benchmark_return is None for c in report.benchmark_comparisons)

    def test_summary_errors_propagate(self, service):
        with patch.object(service._repository, "list_holdings", side_effect=RuntimeError("db down")):
            with pytest.raises(RuntimeError, match="db down"):
                service.get_enhanced_portfolio_metrics(1)


# =============================================================================
# INDIVIDUAL SECTIONS
# =============================================================================

class TestIndividualSections:
    """Tests for the per-section entry points."""

    def test_daily_return_series(self, service, invested_user):
        series = service.get_daily_return_series(invested_user.id, window_days=30)

        assert len(series) == 31
        assert series[-1].date == utc_today()
        assert series[0].return_pct == Decimal("0")

    def test_daily_return_series_rejects_bad_window(self, service, invested_user):
        with pytest.raises(ValidationError):
            service.get_daily_return_series(invested_user.id, window_days=0)

    def test_benchmark_comparisons(self, service, invested_user):
        comparisons = service.calculate_benchmark_comparisons(invested_user.id, ["ETH"], window_days=30)

        [eth] = comparisons
        assert eth.benchmark_return is not None
        assert eth.observations == 30
        assert eth.beta is not None

    def test_time_based_performance(self, service, invested_user):
        service.recompute_user_holdings(invested_user.id)
        service.refresh_holding_prices(invested_user.id)

        periods = {p.period: p for p in service.calculate_time_based_performance(invested_user.id)}

        # A year ago nothing was held
        assert periods["1Y"].start_value == Decimal("0")
        assert periods["1Y"].percentage_return is None
        assert periods["1D"].end_value == Decimal("46000")

    def test_advanced_and_risk(self, service, invested_user):
        advanced = service.calculate_advanced_metrics(invested_user.id)
        risk = service.calculate_risk_metrics(invested_user.id)

        assert advanced.total_trading_days == 366
        assert risk.value_at_risk_99 <= risk.value_at_risk_95

    def test_portfolio_insights(self, service, invested_user):
        service.recompute_user_holdings(invested_user.id)
        service.refresh_holding_prices(invested_user.id)

        insights = service.get_portfolio_insights(invested_user.id)

        assert [a.symbol for a in insights.allocation_by_value] == ["ETH", "BTC"]
        assert insights.recent_activity[0].transaction_type == TransactionType.SELL
        assert len(insights.recent_activity) == 3

    def test_transaction_analytics_range(self, service, invested_user):
        today = utc_today()

        everything = service.get_transaction_analytics(invested_user.id)
        recent = service.get_transaction_analytics(invested_user.id, start=today - timedelta(days=20), end=today)

        assert everything.total_transactions == 3
        assert everything.most_active_exchange == "Kraken"
        assert recent.total_transactions == 2

    def test_recompute_holding(self, service, repository, invested_user):
        [btc_id, _] = repository.list_holding_ids(invested_user.id)

        fields = service.recompute_holding(btc_id)

        assert fields.current_amount == Decimal("0.5")
        assert fields.realized_pnl == Decimal("2500")

    def test_context_manager_closes_pools(self, repository, oracle):
        with PortfolioAnalyticsService(repository, oracle, max_workers=1) as svc:
            pass
        with pytest.raises(RuntimeError):
            svc._section_executor.submit(print)
