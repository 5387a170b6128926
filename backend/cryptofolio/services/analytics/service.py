# backend/cryptofolio/services/analytics/service.py
"""
Analytics Service orchestrator.

This is the main entry point of the portfolio analytics engine. It:
1. Builds the trailing daily return series once per report
2. Delegates to specialized calculators (advanced, risk, benchmark, periods)
3. Runs independent sections concurrently on a bounded thread pool
4. Isolates every section: a failure or timeout yields the section's
   empty form and a warning, never a broken report

Architecture:
    PortfolioAnalyticsService
        ├── uses → LedgerRepository (holdings, transactions)
        ├── uses → HistoricalValuationEstimator (value_at, value_series)
        ├── uses → DailyReturnSeriesBuilder
        ├── uses → TimeBasedPerformanceCalculator
        ├── uses → AdvancedMetricsCalculator
        ├── uses → RiskMetricsCalculator
        ├── uses → BenchmarkComparator (price oracle)
        ├── uses → CostBasisTracker (holding recompute)
        └── uses → HoldingPriceRefresher (current prices)

Report Flow:
    summary (persisted fields, always computed, errors propagate)
        ↓
    ┌──────────────────────┐   ┌──────────────────────────┐
    │ daily return series  │   │ time-based performance   │
    └──────────────────────┘   └──────────────────────────┘
        ↓
    ┌──────────┐ ┌──────────┐ ┌────────────┐
    │ advanced │ │ risk     │ │ benchmarks │
    └──────────┘ └──────────┘ └────────────┘
        ↓
    EnhancedMetrics

Two pools are used: one for report sections, one for price lookups.
Sections submit lookups but never other sections, so a full section
pool can't starve the lookups it is waiting for.

Usage:
    from cryptofolio.services.analytics import PortfolioAnalyticsService

    service = PortfolioAnalyticsService(repository, oracle)
    report = service.get_enhanced_portfolio_metrics(user_id=1)
    service.close()
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Any, TypeVar

from cryptofolio.config import settings
from cryptofolio.services.analytics.advanced import AdvancedMetricsCalculator
from cryptofolio.services.analytics.benchmark import BenchmarkComparator
from cryptofolio.services.analytics.insights import (
    build_portfolio_insights,
    build_portfolio_summary,
    build_transaction_analytics,
)
from cryptofolio.services.analytics.performance import TimeBasedPerformanceCalculator
from cryptofolio.services.analytics.risk import RiskMetricsCalculator
from cryptofolio.services.analytics.types import (
    AdvancedMetrics,
    BenchmarkComparison,
    EnhancedMetrics,
    PortfolioInsights,
    PortfolioSummary,
    RiskMetrics,
    TimeBasedPerformance,
    TransactionAnalytics,
)
from cryptofolio.services.constants import RECENT_ACTIVITY_SIZE
from cryptofolio.services.ledger.types import HoldingDerivedFields
from cryptofolio.services.valuation import (
    CostBasisTracker,
    DailyReturnPoint,
    DailyReturnSeriesBuilder,
    HistoricalValuationEstimator,
    HoldingPriceRefresher,
    PriceRefreshResult,
)
from cryptofolio.utils.context import correlation_scope, new_correlation_id, submit_with_context

if TYPE_CHECKING:
    from cryptofolio.services.protocols import LedgerRepositoryProtocol, PriceOracleProtocol

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PortfolioAnalyticsService:
    """
    Main orchestrator for portfolio analytics.

    Thread-safe: holds no per-user state, so one instance serves
    concurrent reports for different users.

    Attributes:
        _repository: Ledger access
        _oracle: Price oracle (inject a CachedPriceOracle in production)
        _section_executor: Pool running report sections
        _lookup_executor: Pool running price oracle calls
        _section_timeout: Seconds a section may run before it is abandoned
    """

    def __init__(
            self,
            repository: LedgerRepositoryProtocol,
            price_oracle: PriceOracleProtocol,
            max_workers: int | None = None,
            section_timeout: float | None = None,
            lookup_timeout: float | None = None,
    ) -> None:
        """
        Args:
            repository: Ledger repository
            price_oracle: Price oracle
            max_workers: Size of each pool (default settings.analytics_max_workers)
            section_timeout: Per-section deadline (default settings.analytics_section_timeout_seconds)
            lookup_timeout: Per-lookup deadline (default settings.price_lookup_timeout_seconds)
        """
        workers = max_workers or settings.analytics_max_workers
        self._repository = repository
        self._oracle = price_oracle
        self._section_timeout = (
            section_timeout if section_timeout is not None
            else settings.analytics_section_timeout_seconds
        )

        self._section_executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="analytics")
        self._lookup_executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price-lookup")

        self._estimator = HistoricalValuationEstimator(
            repository, price_oracle, executor=self._lookup_executor, lookup_timeout=lookup_timeout
        )
        self._series_builder = DailyReturnSeriesBuilder(self._estimator)
        self._performance = TimeBasedPerformanceCalculator(self._estimator)
        self._benchmarks = BenchmarkComparator(price_oracle, self._lookup_executor, lookup_timeout)
        self._tracker = CostBasisTracker(repository)
        self._price_refresher = HoldingPriceRefresher(repository, price_oracle)

        logger.info(f"PortfolioAnalyticsService initialized ({workers} workers per pool)")

    def close(self) -> None:
        """Shut down both pools. In-flight lookups are abandoned."""
        self._section_executor.shutdown(wait=False, cancel_futures=True)
        self._lookup_executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> PortfolioAnalyticsService:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # =========================================================================
    # HOLDING MAINTENANCE
    # =========================================================================

    def recompute_holding(self, holding_id: int) -> HoldingDerivedFields:
        """Recompute one holding's derived fields. Call after any ledger mutation."""
        return self._tracker.recompute_holding(holding_id)

    def recompute_user_holdings(self, user_id: int) -> int:
        return self._tracker.recompute_user_holdings(user_id)

    def refresh_holding_prices(self, user_id: int) -> PriceRefreshResult:
        return self._price_refresher.refresh_holding_prices(user_id)

    # =========================================================================
    # INDIVIDUAL SECTIONS
    # =========================================================================

    def get_portfolio_summary(self, user_id: int) -> PortfolioSummary:
        """Totals over persisted holding fields. No oracle calls."""
        return build_portfolio_summary(self._repository.list_holdings(user_id))

    def get_daily_return_series(
            self,
            user_id: int,
            window_days: int | None = None,
            as_of: date | None = None,
    ) -> list[DailyReturnPoint]:
        return self._series_builder.daily_series(user_id, window_days, as_of)

    def calculate_time_based_performance(self, user_id: int) -> list[TimeBasedPerformance]:
        """Returns over 1D, 7D, 30D, 90D, 1Y and YTD, ending at the current value."""
        summary = self.get_portfolio_summary(user_id)
        return self._performance.calculate(user_id, summary.total_value)

    def calculate_advanced_metrics(self, user_id: int) -> AdvancedMetrics:
        return AdvancedMetricsCalculator.calculate(self.get_daily_return_series(user_id))

    def calculate_risk_metrics(self, user_id: int) -> RiskMetrics:
        return RiskMetricsCalculator.calculate(self.get_daily_return_series(user_id))

    def calculate_benchmark_comparisons(
            self,
            user_id: int,
            benchmark_symbols: list[str] | None = None,
            window_days: int | None = None,
    ) -> list[BenchmarkComparison]:
        """
        Compare the user's return over the window with each benchmark.

        Args:
            user_id: Portfolio owner
            benchmark_symbols: Default settings.benchmark_symbol_list
            window_days: Default settings.analytics_window_days
        """
        series = self.get_daily_return_series(user_id, window_days)
        return self._benchmarks.compare(series, benchmark_symbols)

    def get_portfolio_insights(self, user_id: int) -> PortfolioInsights:
        holdings = self._repository.list_holdings(user_id)
        recent = self._repository.list_transactions(
            user_id=user_id, newest_first=True, limit=RECENT_ACTIVITY_SIZE
        )
        return build_portfolio_insights(holdings, recent)

    def get_transaction_analytics(
            self,
            user_id: int,
            start: date | None = None,
            end: date | None = None,
    ) -> TransactionAnalytics:
        """Activity statistics, optionally restricted to [start, end] (inclusive days)."""
        transactions = self._repository.list_transactions(user_id=user_id, start=start, end=end)
        return build_transaction_analytics(transactions)

    # =========================================================================
    # AGGREGATED REPORT
    # =========================================================================

    def get_enhanced_portfolio_metrics(self, user_id: int) -> EnhancedMetrics:
        """
        Build the consolidated report.

        The summary is computed first and its errors propagate. Every other
        section runs on the section pool with its own deadline; a failing
        section takes its empty form and adds a message to `warnings`.

        Args:
            user_id: Portfolio owner

        Returns:
            EnhancedMetrics, always structurally complete
        """
        with correlation_scope(new_correlation_id("report")) as correlation_id:
            started = time.perf_counter()
            logger.info(f"Building enhanced metrics for user {user_id}")

            summary = self.get_portfolio_summary(user_id)
            report = EnhancedMetrics(
                summary=summary,
                generated_at=datetime.now(timezone.utc),
                correlation_id=correlation_id,
            )

            # Phase 1: series and period returns are independent
            series_job = self._submit(self._series_builder.daily_series, user_id)
            performance_job = self._submit(self._performance.calculate, user_id, summary.total_value)

            series = self._collect("daily return series", series_job, None, report.warnings)

            # Phase 2: everything derived from the series
            if series is None:
                for section in ("advanced metrics", "risk metrics", "benchmark comparisons"):
                    report.warnings.append(f"{section} unavailable: daily return series failed")
            else:
                advanced_job = self._submit(AdvancedMetricsCalculator.calculate, series)
                risk_job = self._submit(RiskMetricsCalculator.calculate, series)
                benchmark_job = self._submit(self._benchmarks.compare, series)

                report.advanced_metrics = self._collect(
                    "advanced metrics", advanced_job, AdvancedMetrics.empty(), report.warnings
                )
                report.risk_metrics = self._collect(
                    "risk metrics", risk_job, RiskMetrics.empty(), report.warnings
                )
                report.benchmark_comparisons = self._collect(
                    "benchmark comparisons", benchmark_job, [], report.warnings
                )

            report.time_based_performance = self._collect(
                "time-based performance", performance_job, [], report.warnings
            )

            elapsed = time.perf_counter() - started
            if report.warnings:
                logger.warning(
                    f"Enhanced metrics for user {user_id} degraded in {elapsed:.2f}s: "
                    f"{'; '.join(report.warnings)}"
                )
            else:
                logger.info(f"Enhanced metrics for user {user_id} built in {elapsed:.2f}s")
            return report

    # =========================================================================
    # PRIVATE HELPERS
    # =========================================================================

    def _submit(self, fn, *args) -> tuple[Future, float]:
        """Submit a section, remembering when it started for its deadline."""
        return submit_with_context(self._section_executor, fn, *args), time.monotonic()

    def _collect(
            self,
            section: str,
            job: tuple[Future, float],
            default: T,
            warnings: list[str],
    ) -> T:
        """
        Wait for a section until its deadline.

        Returns the section's result, or `default` on timeout or error
        (logged, and recorded in `warnings`).
        """
        future, submitted_at = job
        remaining = max(0.0, self._section_timeout - (time.monotonic() - submitted_at))
        try:
            return future.result(timeout=remaining)
        except FuturesTimeoutError:
            future.cancel()
            logger.error(f"Section '{section}' timed out after {self._section_timeout}s")
            warnings.append(f"{section} timed out")
        except Exception as e:
            logger.error(f"Section '{section}' failed: {e}", exc_info=True)
            warnings.append(f"{section} failed: {e}")
        return default
