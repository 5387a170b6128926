# backend/cryptofolio/services/analytics/__init__.py
"""
Analytics Service Package.

This package derives portfolio statistics from the daily return series:
- Advanced metrics (Average Return, Volatility, Sharpe, Max Drawdown, Win Rate)
- Risk metrics (VaR 95/99, CVaR, Downside Deviation, Sortino)
- Benchmark comparison (Outperformance, Alpha, Beta, Correlation)
- Trailing-period performance (1D, 7D, 30D, 90D, 1Y, YTD)
- Summary, insights and transaction analytics

Architecture:
    analytics/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Data classes for results
    ├── stats.py                 # Decimal statistics helpers
    ├── advanced.py              # Return, volatility, Sharpe, drawdown
    ├── risk.py                  # VaR, CVaR, Sortino
    ├── benchmark.py             # Benchmark comparison (Beta, Alpha)
    ├── performance.py           # Trailing-period returns
    ├── insights.py              # Summary, insights, transaction analytics
    └── service.py               # PortfolioAnalyticsService (orchestrator)

Usage:
    from cryptofolio.services.analytics import PortfolioAnalyticsService

    with PortfolioAnalyticsService(repository, oracle) as service:
        report = service.get_enhanced_portfolio_metrics(user_id=1)

    print(f"Sharpe: {report.advanced_metrics.sharpe_ratio}")
    print(f"VaR 95: {report.risk_metrics.value_at_risk_95}")

Data Flow:
    HistoricalValuationEstimator.value_series()
        ↓
    DailyReturnPoint[] (trailing 365 days)
        ↓
    ┌─────────────────────────────────────────┐
    │       PortfolioAnalyticsService         │
    │  ┌─────────────┐  ┌─────────────────┐   │
    │  │ Advanced    │  │ Risk            │   │
    │  │ • Volatility│  │ • VaR / CVaR    │   │
    │  │ • Sharpe    │  │ • Sortino       │   │
    │  │ • Drawdown  │  │                 │   │
    │  └─────────────┘  └─────────────────┘   │
    │  ┌───────────────────────────────────┐  │
    │  │ Benchmark Comparator              │  │
    │  │ • Alpha  • Beta  • Correlation    │  │
    │  └───────────────────────────────────┘  │
    └─────────────────────────────────────────┘
        ↓
    EnhancedMetrics
"""

from cryptofolio.services.analytics.advanced import (
    AdvancedMetricsCalculator,
    calculate_average_return,
    calculate_max_drawdown,
    calculate_sharpe_ratio,
    calculate_volatility,
    calculate_win_rate,
)
from cryptofolio.services.analytics.benchmark import (
    BenchmarkComparator,
    calculate_alpha,
    calculate_beta,
    calculate_correlation,
    calculate_total_return,
)
from cryptofolio.services.analytics.performance import TimeBasedPerformanceCalculator
from cryptofolio.services.analytics.risk import (
    RiskMetricsCalculator,
    calculate_cvar,
    calculate_downside_deviation,
    calculate_sortino_ratio,
    calculate_var,
)
from cryptofolio.services.analytics.service import PortfolioAnalyticsService
from cryptofolio.services.analytics.types import (
    ActivityEntry,
    AdvancedMetrics,
    AllocationEntry,
    BenchmarkComparison,
    DayReturn,
    DrawdownPeriod,
    EnhancedMetrics,
    PerformerEntry,
    PortfolioInsights,
    PortfolioSummary,
    RiskMetrics,
    TimeBasedPerformance,
    TransactionAnalytics,
    TransactionFrequency,
)

__all__ = [
    # Main service
    "PortfolioAnalyticsService",
    # Types
    "PortfolioSummary",
    "TimeBasedPerformance",
    "AdvancedMetrics",
    "DayReturn",
    "DrawdownPeriod",
    "RiskMetrics",
    "BenchmarkComparison",
    "EnhancedMetrics",
    "PortfolioInsights",
    "PerformerEntry",
    "AllocationEntry",
    "ActivityEntry",
    "TransactionAnalytics",
    "TransactionFrequency",
    # Calculators
    "AdvancedMetricsCalculator",
    "RiskMetricsCalculator",
    "BenchmarkComparator",
    "TimeBasedPerformanceCalculator",
    # Functions
    "calculate_average_return",
    "calculate_volatility",
    "calculate_sharpe_ratio",
    "calculate_max_drawdown",
    "calculate_win_rate",
    "calculate_var",
    "calculate_cvar",
    "calculate_downside_deviation",
    "calculate_sortino_ratio",
    "calculate_total_return",
    "calculate_beta",
    "calculate_alpha",
    "calculate_correlation",
]
