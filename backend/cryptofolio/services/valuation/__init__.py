# backend/cryptofolio/services/valuation/__init__.py
"""
Valuation Package.

This package rebuilds portfolio state from the transaction ledger:
- Holding recompute after a ledger mutation (CostBasisTracker)
- Current price refresh (HoldingPriceRefresher)
- Point-in-time valuation (HistoricalValuationEstimator.value_at)
- Trailing daily return series (DailyReturnSeriesBuilder)

Usage:
    from cryptofolio.services.valuation import (
        CostBasisTracker,
        DailyReturnSeriesBuilder,
        HistoricalValuationEstimator,
    )

    tracker = CostBasisTracker(repository)
    tracker.recompute_holding(holding_id)

    estimator = HistoricalValuationEstimator(repository, oracle)
    value = estimator.value_at(user_id=1, target=date(2024, 6, 30))

    series = DailyReturnSeriesBuilder(estimator).daily_series(user_id=1, window_days=90)

Architecture:
    valuation/
    ├── __init__.py              # This file - package exports
    ├── types.py                 # Replay state and result types
    ├── calculators.py           # Cost-basis and position replay
    ├── history_calculator.py    # Point-in-time valuation and return series
    └── service.py               # Holding write paths

Data Flow:
    Transactions → CostBasisCalculator → CostBasisState → Holding fields
    Transactions → PositionCalculator → PositionState → value_at / value_series
    value_series → compute_daily_returns → DailyReturnPoint[]
"""

from cryptofolio.services.valuation.calculators import (
    CostBasisCalculator,
    PositionCalculator,
    calculate_price_fields,
)
from cryptofolio.services.valuation.history_calculator import (
    DailyReturnSeriesBuilder,
    HistoricalValuationEstimator,
    compute_daily_returns,
    utc_today,
)
from cryptofolio.services.valuation.service import CostBasisTracker, HoldingPriceRefresher
from cryptofolio.services.valuation.types import (
    CostBasisState,
    DailyReturnPoint,
    PositionState,
    PriceRefreshResult,
)

__all__ = [
    # Services
    "CostBasisTracker",
    "HoldingPriceRefresher",
    "HistoricalValuationEstimator",
    "DailyReturnSeriesBuilder",
    # Calculators
    "CostBasisCalculator",
    "PositionCalculator",
    "calculate_price_fields",
    "compute_daily_returns",
    "utc_today",
    # Types
    "CostBasisState",
    "PositionState",
    "PriceRefreshResult",
    "DailyReturnPoint",
]
