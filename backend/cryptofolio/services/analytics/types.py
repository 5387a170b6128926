# backend/cryptofolio/services/analytics/types.py
"""
Data types for the Analytics Service.

This module defines the report sections produced by the analytics engine.
All money and percentage fields use Decimal. Percentages are expressed in
percent units (10 means 10%), matching the daily return series.

Every numeric field that depends on history is nullable: None means "not
computable from the available data", never a sentinel zero.

Architecture:
    - PortfolioSummary: Totals over persisted holding fields
    - TimeBasedPerformance: Return over one named trailing period
    - AdvancedMetrics: Return, volatility, Sharpe, drawdown, win rate
    - RiskMetrics: VaR, CVaR, downside deviation, Sortino
    - BenchmarkComparison: Portfolio vs. one reference asset
    - EnhancedMetrics: The aggregated report
    - PortfolioInsights / TransactionAnalytics: Dashboard views
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from cryptofolio.models import TransactionType


# =============================================================================
# SUMMARY & PERIOD PERFORMANCE
# =============================================================================

@dataclass
class PortfolioSummary:
    """
    Aggregate of persisted holding fields.

    Attributes:
        total_value: Sum of current values (holdings without a price count as 0)
        total_cost_basis: Sum of total cost bases
        total_unrealized_pnl: Sum of unrealized P&L
        total_realized_pnl: Sum of realized P&L
        total_percentage_change: unrealized / cost basis * 100, None if cost basis <= 0
        holdings_count: Number of holdings, open or not
    """
    total_value: Decimal
    total_cost_basis: Decimal
    total_unrealized_pnl: Decimal
    total_realized_pnl: Decimal
    total_percentage_change: Decimal | None
    holdings_count: int


@dataclass
class TimeBasedPerformance:
    """
    Return over one trailing period ending today.

    Attributes:
        period: "1D", "7D", "30D", "90D", "1Y" or "YTD"
        start_value: Estimated value at start_date
        end_value: Current portfolio value
        absolute_return: end_value - start_value
        percentage_return: absolute_return / start_value * 100, None if start_value <= 0
    """
    period: str
    start_value: Decimal
    end_value: Decimal
    absolute_return: Decimal
    percentage_return: Decimal | None
    start_date: date
    end_date: date


# =============================================================================
# ADVANCED METRICS
# =============================================================================

@dataclass(frozen=True)
class DayReturn:
    """A single day's return and its date."""
    date: date
    return_pct: Decimal


@dataclass(frozen=True)
class DrawdownPeriod:
    """
    Peak-to-trough span of the worst drawdown.

    Attributes:
        start: Date of the peak
        end: Date of the trough
    """
    start: date
    end: date


@dataclass
class AdvancedMetrics:
    """
    Return and volatility statistics of the daily return series.

    Attributes:
        average_return: Mean daily return * 365
        volatility: Population std of daily returns * sqrt(365)
        sharpe_ratio: average_return / volatility (0% risk-free rate)
        max_drawdown: Largest (peak - value) / peak * 100, positive, None if no decline
        max_drawdown_period: Peak and trough dates of max_drawdown
        win_rate: Share of days with a positive return, in percent
        best_day / worst_day: Extreme single-day returns
        total_trading_days: Number of return observations
    """
    average_return: Decimal | None = None
    volatility: Decimal | None = None
    sharpe_ratio: Decimal | None = None
    max_drawdown: Decimal | None = None
    max_drawdown_period: DrawdownPeriod | None = None
    win_rate: Decimal | None = None
    best_day: DayReturn | None = None
    worst_day: DayReturn | None = None
    total_trading_days: int = 0

    @classmethod
    def empty(cls) -> "AdvancedMetrics":
        """All-null result for an empty or failed series."""
        return cls()


# =============================================================================
# RISK METRICS
# =============================================================================

@dataclass
class RiskMetrics:
    """
    Tail-risk statistics of the daily return series.

    All values are daily returns in percent, except sortino_ratio.

    Attributes:
        value_at_risk_95: 5th percentile daily return (historical simulation)
        value_at_risk_99: 1st percentile daily return
        conditional_value_at_risk: Mean of the returns at or below VaR95
        downside_deviation: sqrt(mean(r^2)) over negative returns only
        sortino_ratio: annualized mean / annualized downside deviation
    """
    value_at_risk_95: Decimal | None = None
    value_at_risk_99: Decimal | None = None
    conditional_value_at_risk: Decimal | None = None
    downside_deviation: Decimal | None = None
    sortino_ratio: Decimal | None = None

    @classmethod
    def empty(cls) -> "RiskMetrics":
        """All-null result for an empty or failed series."""
        return cls()


# =============================================================================
# BENCHMARK COMPARISON
# =============================================================================

@dataclass
class BenchmarkComparison:
    """
    Portfolio return vs. one benchmark asset over the same window.

    Attributes:
        benchmark_name: Benchmark symbol (e.g., "BTC")
        portfolio_return: (last - first) / first * 100 of the portfolio series
        benchmark_return: Same, from the benchmark's start/end prices
        outperformance: portfolio_return - benchmark_return
        alpha: portfolio_return - benchmark_return * (beta or 1)
        beta: Cov(Rp, Rb) / Var(Rb) over aligned daily returns
        correlation: Pearson correlation over aligned daily returns
        observations: Number of aligned daily returns used for beta/correlation
    """
    benchmark_name: str
    portfolio_return: Decimal | None = None
    benchmark_return: Decimal | None = None
    outperformance: Decimal | None = None
    alpha: Decimal | None = None
    beta: Decimal | None = None
    correlation: Decimal | None = None
    observations: int = 0


# =============================================================================
# AGGREGATED REPORT
# =============================================================================

@dataclass
class EnhancedMetrics:
    """
    The consolidated analytics report.

    Always structurally complete. A section that failed or timed out holds
    its empty form and a message in `warnings` names it.
    """
    summary: PortfolioSummary
    time_based_performance: list[TimeBasedPerformance] = field(default_factory=list)
    advanced_metrics: AdvancedMetrics = field(default_factory=AdvancedMetrics.empty)
    risk_metrics: RiskMetrics = field(default_factory=RiskMetrics.empty)
    benchmark_comparisons: list[BenchmarkComparison] = field(default_factory=list)
    generated_at: datetime | None = None
    correlation_id: str | None = None
    warnings: list[str] = field(default_factory=list)


# =============================================================================
# INSIGHTS
# =============================================================================

@dataclass(frozen=True)
class PerformerEntry:
    symbol: str
    percentage_change: Decimal
    value: Decimal


@dataclass(frozen=True)
class AllocationEntry:
    symbol: str
    percentage: Decimal
    value: Decimal


@dataclass(frozen=True)
class ActivityEntry:
    transaction_type: TransactionType
    symbol: str
    amount: Decimal
    date: datetime


@dataclass
class PortfolioInsights:
    """
    Dashboard view of a portfolio.

    Attributes:
        top_performers: Best holdings by percentage change (max 5)
        worst_performers: Worst holdings by percentage change (max 5)
        allocation_by_value: Share of total value per holding, largest first
        recent_activity: Latest transactions, newest first (max 10)
    """
    summary: PortfolioSummary
    top_performers: list[PerformerEntry] = field(default_factory=list)
    worst_performers: list[PerformerEntry] = field(default_factory=list)
    allocation_by_value: list[AllocationEntry] = field(default_factory=list)
    recent_activity: list[ActivityEntry] = field(default_factory=list)


@dataclass(frozen=True)
class TransactionFrequency:
    per_day: Decimal
    per_week: Decimal
    per_month: Decimal


@dataclass
class TransactionAnalytics:
    """
    Activity statistics over a user's transactions.

    Attributes:
        transactions_by_type: Count per kind, every kind present (0 if unused)
        total_volume: Sum of transaction values
        average_transaction_size: total_volume / total_transactions
        most_active_exchange: Exchange with the most transactions, None if none named
        frequency: Transactions per day/week/month over the observed span
    """
    total_transactions: int
    transactions_by_type: dict[TransactionType, int]
    total_volume: Decimal
    average_transaction_size: Decimal
    most_active_exchange: str | None
    frequency: TransactionFrequency
    earliest_date: datetime | None = None
    latest_date: datetime | None = None
