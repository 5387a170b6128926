# backend/cryptofolio/services/valuation/service.py
"""
Holding maintenance services.

These are the engine's only write paths:
- CostBasisTracker: recompute a holding's derived fields from its ledger,
  invoked after any transaction create/update/delete
- HoldingPriceRefresher: write fresh current prices and the values that
  depend on them

Design Principles:
- Dependency Injection: repository and oracle injected via constructor
- No HTTP Knowledge: raises domain exceptions, not HTTPException
- Composable: delegates the arithmetic to calculators.py

Usage:
    from cryptofolio.services.valuation import CostBasisTracker

    tracker = CostBasisTracker(repository)
    tracker.recompute_holding(holding_id=42)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING

from cryptofolio.services.constants import PERCENTAGE_PRECISION, TOKEN_PRECISION
from cryptofolio.services.exceptions import HoldingNotFoundError, MarketDataError
from cryptofolio.services.ledger.types import HoldingDerivedFields, HoldingPriceFields
from cryptofolio.services.valuation.calculators import CostBasisCalculator, calculate_price_fields
from cryptofolio.services.valuation.types import PriceRefreshResult

if TYPE_CHECKING:
    from cryptofolio.services.protocols import LedgerRepositoryProtocol, PriceOracleProtocol

logger = logging.getLogger(__name__)


def _quantize(value: Decimal | None, precision: Decimal = TOKEN_PRECISION) -> Decimal | None:
    """Round to the column scale so a re-read compares equal to what was computed."""
    if value is None:
        return None
    return value.quantize(precision)


class CostBasisTracker:
    """
    Recomputes amount, cost basis and P&L of holdings from their ledger.

    Recomputing is idempotent: the result depends only on the ledger and
    the persisted current price, never on the previous derived fields.
    """

    def __init__(self, repository: LedgerRepositoryProtocol) -> None:
        self._repository = repository

    def recompute_holding(self, holding_id: int) -> HoldingDerivedFields:
        """
        Replay one holding's transactions and write the derived fields.

        If the holding already has a current price, current value,
        unrealized P&L and percentage change are refreshed against the
        new amount and cost basis; otherwise they are cleared.

        Args:
            holding_id: Holding to recompute

        Returns:
            The fields written

        Raises:
            HoldingNotFoundError: If the holding doesn't exist
        """
        holding = self._repository.get_holding(holding_id)
        if holding is None:
            raise HoldingNotFoundError(holding_id)

        transactions = self._repository.list_transactions(holding_id=holding_id)
        state = CostBasisCalculator.replay(transactions)

        current_value = unrealized_pnl = percentage_change = None
        if holding.current_price is not None:
            current_value, unrealized_pnl, percentage_change = calculate_price_fields(
                state.amount, state.cost_basis, holding.current_price
            )

        fields = HoldingDerivedFields(
            current_amount=_quantize(state.amount),
            average_cost_basis=_quantize(state.average_cost),
            total_cost_basis=_quantize(state.cost_basis),
            realized_pnl=_quantize(state.realized_pnl),
            current_value=_quantize(current_value),
            unrealized_pnl=_quantize(unrealized_pnl),
            percentage_change=_quantize(percentage_change, PERCENTAGE_PRECISION),
        )
        self._repository.update_holding_derived_fields(holding_id, fields)

        logger.info(
            f"Recomputed holding {holding_id} ({holding.token_symbol}): "
            f"{len(transactions)} transactions, amount={fields.current_amount}, "
            f"cost_basis={fields.total_cost_basis}, realized={fields.realized_pnl}"
        )
        return fields

    def recompute_user_holdings(self, user_id: int) -> int:
        """
        Recompute every holding of a user.

        Returns:
            Number of holdings recomputed
        """
        holding_ids = self._repository.list_holding_ids(user_id)
        for holding_id in holding_ids:
            self.recompute_holding(holding_id)
        logger.info(f"Recomputed {len(holding_ids)} holdings for user {user_id}")
        return len(holding_ids)


class HoldingPriceRefresher:
    """
    Writes current prices to a user's holdings.

    All symbols are quoted in one oracle call. A symbol without a quote
    leaves its holding untouched and is counted as failed.
    """

    def __init__(
            self,
            repository: LedgerRepositoryProtocol,
            price_oracle: PriceOracleProtocol,
    ) -> None:
        self._repository = repository
        self._oracle = price_oracle

    def refresh_holding_prices(self, user_id: int) -> PriceRefreshResult:
        """
        Refresh current price, value and unrealized P&L of every holding.

        Args:
            user_id: Holdings owner

        Returns:
            PriceRefreshResult with updated/failed counts and error messages
        """
        result = PriceRefreshResult()
        holdings = self._repository.list_holdings(user_id)
        if not holdings:
            return result

        symbols = sorted({h.token_symbol for h in holdings})
        try:
            quotes = self._oracle.current_prices(symbols)
        except MarketDataError as e:
            logger.warning(f"Current price lookup failed for user {user_id}: {e}")
            result.failed = len(holdings)
            result.errors.append(f"Price lookup failed: {e}")
            return result

        now = datetime.now(timezone.utc)
        for holding in holdings:
            quote = quotes.get(holding.token_symbol)
            if quote is None:
                result.failed += 1
                result.errors.append(f"No current price for {holding.token_symbol}")
                continue

            current_value, unrealized_pnl, percentage_change = calculate_price_fields(
                holding.current_amount, holding.total_cost_basis, quote.usd
            )
            fields = HoldingPriceFields(
                current_price=_quantize(quote.usd),
                current_value=_quantize(current_value),
                unrealized_pnl=_quantize(unrealized_pnl),
                percentage_change=_quantize(percentage_change, PERCENTAGE_PRECISION),
                last_price_update=now,
            )
            try:
                self._repository.update_holding_derived_fields(holding.id, fields)
            except HoldingNotFoundError as e:
                # Deleted since list_holdings()
                result.failed += 1
                result.errors.append(str(e))
                continue
            result.updated += 1

        if result.failed:
            logger.warning(
                f"Price refresh for user {user_id}: {result.updated} updated, "
                f"{result.failed} failed ({'; '.join(result.errors)})"
            )
        else:
            logger.info(f"Price refresh for user {user_id}: {result.updated} holdings updated")
        return result
