# backend/cryptofolio/services/__init__.py
"""
Service layer for business logic.

This package contains the portfolio analytics engine and its
collaborators. Services:
- Have NO knowledge of HTTP (no HTTPException, no status codes)
- Raise domain-specific exceptions
- Receive their repository and price oracle via the constructor
- Are easily testable via dependency injection

Usage:
    from cryptofolio.services import PortfolioAnalyticsService
    from cryptofolio.services import LedgerRepository
    from cryptofolio.services import CachedPriceOracle, CoinGeckoPriceOracle, PriceCache
    from cryptofolio.services import (
        HoldingNotFoundError,
        MarketDataError,
    )

Architecture:
    services/
    ├── __init__.py                  # This file - main exports
    ├── exceptions.py                # Domain exceptions
    ├── constants.py                 # Business constants
    ├── protocols.py                 # Service interfaces (Protocol classes)
    ├── jobs.py                      # Background jobs (bulk refresh, cache sweep)
    ├── ledger/                      # Holdings and transactions access
    │   ├── repository.py            # SQLAlchemy repository
    │   └── types.py                 # Snapshot records
    ├── market_data/                 # Price oracle package
    │   ├── base.py                  # Abstract oracle interface
    │   ├── coingecko.py             # CoinGecko implementation
    │   └── cache.py                 # Price cache and caching decorator
    ├── valuation/                   # Ledger replay
    │   ├── calculators.py           # Cost basis and position replay
    │   ├── history_calculator.py    # Historical valuation, return series
    │   └── service.py               # Holding recompute and price refresh
    └── analytics/                   # Analytics engine
        ├── service.py               # Main analytics orchestrator
        ├── types.py                 # Analytics data types
        ├── advanced.py              # Volatility, Sharpe, drawdown
        ├── risk.py                  # VaR, CVaR, Sortino
        ├── benchmark.py             # Benchmark comparison (Beta, Alpha)
        ├── performance.py           # Trailing-period returns
        └── insights.py              # Summary, insights, transaction analytics
"""

# Analytics Service
from cryptofolio.services.analytics import PortfolioAnalyticsService
# Exceptions
from cryptofolio.services.exceptions import (
    # Base exceptions
    ServiceError,
    ValidationError,
    NotFoundError,
    HoldingNotFoundError,
    # Market data exceptions
    MarketDataError,
    ProviderUnavailableError,
    SymbolNotFoundError,
    RateLimitError,
    PriceLookupTimeoutError,
)
# Background jobs
from cryptofolio.services.jobs import (
    BulkPriceRefreshJob,
    BulkRefreshResult,
    CacheSweepJob,
    PeriodicJobRunner,
)
# Ledger
from cryptofolio.services.ledger import LedgerRepository
# Price oracle
from cryptofolio.services.market_data import (
    CachedPriceOracle,
    CoinGeckoPriceOracle,
    CurrentPrice,
    PriceCache,
    PriceOracle,
)
# Valuation
from cryptofolio.services.valuation import (
    CostBasisTracker,
    DailyReturnSeriesBuilder,
    HistoricalValuationEstimator,
    HoldingPriceRefresher,
)

__all__ = [
    # ==========================================================================
    # Services
    # ==========================================================================
    "PortfolioAnalyticsService",
    "LedgerRepository",
    # Valuation
    "CostBasisTracker",
    "HoldingPriceRefresher",
    "HistoricalValuationEstimator",
    "DailyReturnSeriesBuilder",
    # Price oracle
    "PriceOracle",
    "CurrentPrice",
    "CoinGeckoPriceOracle",
    "CachedPriceOracle",
    "PriceCache",
    # Jobs
    "BulkPriceRefreshJob",
    "BulkRefreshResult",
    "CacheSweepJob",
    "PeriodicJobRunner",

    # ==========================================================================
    # Exceptions
    # ==========================================================================
    # Base
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "HoldingNotFoundError",
    # Market data
    "MarketDataError",
    "ProviderUnavailableError",
    "SymbolNotFoundError",
    "RateLimitError",
    "PriceLookupTimeoutError",
]
