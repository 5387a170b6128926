# backend/cryptofolio/services/constants.py
"""
Centralized constants for the portfolio analytics services.

This module provides a single source of truth for the business constants
used by the analytics engine and the price oracle. Values that operators
may want to tune per deployment live in config.Settings instead.

Usage:
    from cryptofolio.services.constants import (
        CALENDAR_DAYS_PER_YEAR,
        PERFORMANCE_PERIODS,
        ZERO,
    )
"""

from decimal import Decimal


# =============================================================================
# FINANCIAL CALENDAR CONSTANTS
# =============================================================================

# Crypto markets trade every day of the year
# Used for annualizing average return, volatility, Sharpe and Sortino
CALENDAR_DAYS_PER_YEAR: int = 365

# Pre-computed sqrt(365) for the square-root-of-time rule
SQRT_DAYS_PER_YEAR: Decimal = Decimal(CALENDAR_DAYS_PER_YEAR).sqrt()


# =============================================================================
# RISK-FREE RATE
# =============================================================================

# Crypto convention: Sharpe and Sortino assume a 0% risk-free rate
RISK_FREE_RATE: Decimal = Decimal("0")


# =============================================================================
# TIME-BASED PERFORMANCE PERIODS
# =============================================================================

# Named trailing periods and their length in days
# YTD is not listed: its length depends on the current date
PERFORMANCE_PERIODS: tuple[tuple[str, int], ...] = (
    ("1D", 1),
    ("7D", 7),
    ("30D", 30),
    ("90D", 90),
    ("1Y", 365),
)
YTD_PERIOD: str = "YTD"


# =============================================================================
# VALUE AT RISK
# =============================================================================

# Tail fractions for historical-simulation VaR
# Integer percent so the percentile index is exact: floor(n * pct / 100)
VAR_95_TAIL_PERCENT: int = 5
VAR_99_TAIL_PERCENT: int = 1


# =============================================================================
# BENCHMARK COMPARISON
# =============================================================================

# Minimum aligned (portfolio, benchmark) daily returns for beta/correlation
# Fewer points produce an unstable regression, so the fields stay null
MIN_BENCHMARK_OBSERVATIONS: int = 10


# =============================================================================
# PORTFOLIO INSIGHTS
# =============================================================================

# Number of holdings listed as top/worst performers
PERFORMER_LIST_SIZE: int = 5

# Number of transactions listed as recent activity
RECENT_ACTIVITY_SIZE: int = 10


# =============================================================================
# PRICE ORACLE SETTINGS
# =============================================================================

# Retry attempts for one oracle call (first try included)
# Kept small: the oracle is rate limited and the engine has fallbacks
PRICE_ORACLE_MAX_ATTEMPTS: int = 2

# Quote currency for every price
QUOTE_CURRENCY: str = "usd"

# Cache key namespaces
CURRENT_PRICE_CACHE_PREFIX: str = "price:current"
HISTORICAL_PRICE_CACHE_PREFIX: str = "price:history"


# =============================================================================
# DECIMAL PRECISION CONSTANTS
# =============================================================================

# Currency amounts: 2 decimal places (e.g., $1234.56)
CURRENCY_PRECISION: Decimal = Decimal("0.01")

# Token quantities and per-unit prices: 10 decimal places
# Matches Numeric(28, 10) columns on holdings and transactions
TOKEN_PRECISION: Decimal = Decimal("0.0000000001")

# Percentage values: 4 decimal places (e.g., 12.3456%)
PERCENTAGE_PRECISION: Decimal = Decimal("0.0001")


# =============================================================================
# UTILITY CONSTANTS
# =============================================================================

# Type-safe zero for Decimal comparisons
ZERO: Decimal = Decimal("0")

# Percent scale factor
HUNDRED: Decimal = Decimal("100")
