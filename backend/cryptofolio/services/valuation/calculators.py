# backend/cryptofolio/services/valuation/calculators.py
"""
Ledger replay calculators.

Each calculator replays transactions one at a time onto a mutable state:
- CostBasisCalculator: average-cost accounting for one holding
  (amount, cost basis, realized P&L)
- PositionCalculator: per-symbol (amount, cost basis) for point-in-time
  valuation of a whole portfolio

Both dispatch on TransactionType.effect, so a new transaction kind has to
be classified once in models.py and every replay follows.

Design Principles:
- Stateless calculators, all state lives in the passed-in objects
- Uses Decimal for ALL financial calculations
- Oversells are logged and kept, never clamped

Usage:
    state = CostBasisCalculator.replay(transactions)
    state.amount, state.cost_basis, state.realized_pnl
"""

import logging
from collections.abc import Iterable
from decimal import Decimal

from cryptofolio.models import PositionEffect
from cryptofolio.services.constants import HUNDRED, ZERO
from cryptofolio.services.ledger.types import LedgerTransaction
from cryptofolio.services.valuation.types import CostBasisState, PositionState

logger = logging.getLogger(__name__)


# =============================================================================
# COST BASIS CALCULATOR
# =============================================================================

class CostBasisCalculator:
    """
    Average-cost accounting for a single holding.

    Rules per effect:
        INFLOW   amount += qty; cost_basis += value
        SALE     cost_of_sold = cost_basis / amount * qty  (only if amount > 0)
                 realized_pnl += value - cost_of_sold
                 cost_basis -= cost_of_sold; amount -= qty
        OUTFLOW  amount -= qty (no sale price, nothing realized)
        NEUTRAL  no change

    Note:
        A sale larger than the tracked amount still follows the formula and
        leaves a negative amount. The state is flagged `oversold` and a
        warning is logged so the ledger can be corrected upstream.
    """

    @staticmethod
    def apply_transaction(state: CostBasisState, txn: LedgerTransaction) -> None:
        """Apply one transaction to `state` (mutates it)."""
        match txn.transaction_type.effect:
            case PositionEffect.INFLOW:
                state.amount += txn.amount
                state.cost_basis += txn.value

            case PositionEffect.SALE:
                if state.amount > ZERO:
                    cost_of_sold = state.cost_basis / state.amount * txn.amount
                    state.realized_pnl += txn.value - cost_of_sold
                    state.cost_basis -= cost_of_sold
                else:
                    logger.warning(
                        f"SELL transaction {txn.id} on holding {txn.holding_id} "
                        f"with nothing held (amount={state.amount}), no P&L realized"
                    )
                state.amount -= txn.amount

            case PositionEffect.OUTFLOW:
                state.amount -= txn.amount

            case PositionEffect.NEUTRAL:
                pass

        if state.amount < ZERO and not state.oversold:
            state.oversold = True
            logger.warning(
                f"Holding {txn.holding_id} ({txn.token_symbol}) oversold by transaction "
                f"{txn.id}: amount is {state.amount}"
            )

    @classmethod
    def replay(cls, transactions: Iterable[LedgerTransaction]) -> CostBasisState:
        """
        Replay a holding's transactions from zero.

        Args:
            transactions: Transactions in chronological order

        Returns:
            Final CostBasisState
        """
        state = CostBasisState()
        for txn in transactions:
            cls.apply_transaction(state, txn)
        return state


# =============================================================================
# POSITION CALCULATOR (POINT-IN-TIME)
# =============================================================================

class PositionCalculator:
    """
    Per-symbol position replay for historical valuation.

    Unlike CostBasisCalculator, every outflow (SALE or OUTFLOW) shrinks
    cost basis proportionally, so that the remaining cost basis stays a
    usable stand-in value when no historical price is available:

        cost_basis *= 1 - qty / amount_before
    """

    @staticmethod
    def apply_transaction(positions: dict[str, PositionState], txn: LedgerTransaction) -> None:
        """Apply one transaction to the symbol's position (mutates positions)."""
        position = positions.setdefault(txn.token_symbol, PositionState())

        match txn.transaction_type.effect:
            case PositionEffect.INFLOW:
                position.amount += txn.amount
                position.cost_basis += txn.value

            case PositionEffect.SALE | PositionEffect.OUTFLOW:
                amount_before = position.amount
                position.amount -= txn.amount
                if amount_before > ZERO:
                    position.cost_basis *= 1 - txn.amount / amount_before

            case PositionEffect.NEUTRAL:
                pass

    @classmethod
    def replay(cls, transactions: Iterable[LedgerTransaction]) -> dict[str, PositionState]:
        """Replay transactions (chronological) into per-symbol positions."""
        positions: dict[str, PositionState] = {}
        for txn in transactions:
            cls.apply_transaction(positions, txn)
        return positions


# =============================================================================
# PRICE-DERIVED FIELDS
# =============================================================================

def calculate_price_fields(
        amount: Decimal,
        cost_basis: Decimal,
        price: Decimal,
) -> tuple[Decimal, Decimal, Decimal | None]:
    """
    Derive market value and unrealized P&L from a price.

    Formulas:
        current_value     = amount * price
        unrealized_pnl    = current_value - cost_basis
        percentage_change = unrealized_pnl / cost_basis * 100  (None if cost_basis <= 0)

    Returns:
        Tuple of (current_value, unrealized_pnl, percentage_change)
    """
    current_value = amount * price
    unrealized_pnl = current_value - cost_basis
    percentage_change = unrealized_pnl / cost_basis * HUNDRED if cost_basis > ZERO else None
    return current_value, unrealized_pnl, percentage_change
