# backend/cryptofolio/services/valuation/types.py
"""
Data types for the Valuation Service.

Architecture:
    - CostBasisState: running totals while replaying one holding's ledger
    - PositionState: running (amount, cost basis) of one symbol at a past date
    - PriceRefreshResult: outcome of refreshing current prices for a user
    - DailyReturnPoint: one (date, value, return) entry of a return series

All amounts use Decimal.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from cryptofolio.services.constants import ZERO


@dataclass
class CostBasisState:
    """
    Running average-cost state of one holding.

    Attributes:
        amount: Units held (negative after an oversell, see CostBasisCalculator)
        cost_basis: Cost of the units held
        realized_pnl: Profit/loss locked in by sales
        oversold: True once a sale or transfer took amount below zero
    """
    amount: Decimal = ZERO
    cost_basis: Decimal = ZERO
    realized_pnl: Decimal = ZERO
    oversold: bool = False

    @property
    def average_cost(self) -> Decimal | None:
        """Cost per unit, None when nothing is held."""
        if self.amount > ZERO:
            return self.cost_basis / self.amount
        return None


@dataclass
class PositionState:
    """
    Reconstructed position of one symbol, used for point-in-time valuation.

    Outflows shrink cost basis proportionally to the units removed.
    """
    amount: Decimal = ZERO
    cost_basis: Decimal = ZERO

    @property
    def is_open(self) -> bool:
        return self.amount > ZERO


@dataclass
class PriceRefreshResult:
    """
    Outcome of a current-price refresh over a user's holdings.

    Attributes:
        updated: Holdings written with a fresh price
        failed: Holdings left untouched (no quote, write error)
        errors: One message per failure
    """
    updated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class DailyReturnPoint:
    """
    One day of reconstructed portfolio value.

    Attributes:
        date: Calendar day (UTC)
        value: Estimated portfolio value at the end of that day
        return_pct: Percentage change vs. the previous point (0 for the first)
    """
    date: date
    value: Decimal
    return_pct: Decimal
