# backend/cryptofolio/services/analytics/insights.py
"""
Views over persisted holding fields and raw transactions.

Nothing here touches the price oracle:
- build_portfolio_summary: totals of the holdings' derived fields
- build_portfolio_insights: performers, allocation, recent activity
- build_transaction_analytics: activity counts, volume and frequency
"""

import logging
import math
from collections import Counter
from decimal import Decimal

from cryptofolio.models import TransactionType
from cryptofolio.services.analytics.types import (
    ActivityEntry,
    AllocationEntry,
    PerformerEntry,
    PortfolioInsights,
    PortfolioSummary,
    TransactionAnalytics,
    TransactionFrequency,
)
from cryptofolio.services.constants import HUNDRED, PERFORMER_LIST_SIZE, ZERO
from cryptofolio.services.ledger.types import HoldingSnapshot, LedgerTransaction

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400
_DAYS_PER_WEEK = 7
_DAYS_PER_MONTH = 30


# =============================================================================
# SUMMARY
# =============================================================================

def build_portfolio_summary(holdings: list[HoldingSnapshot]) -> PortfolioSummary:
    """
    Totals across holdings. Missing values (no price yet) count as 0.

    Formula:
        total_percentage_change = Σ unrealized / Σ cost basis * 100
    """
    total_value = sum((h.current_value or ZERO for h in holdings), ZERO)
    total_cost_basis = sum((h.total_cost_basis or ZERO for h in holdings), ZERO)
    total_unrealized = sum((h.unrealized_pnl or ZERO for h in holdings), ZERO)
    total_realized = sum((h.realized_pnl or ZERO for h in holdings), ZERO)

    return PortfolioSummary(
        total_value=total_value,
        total_cost_basis=total_cost_basis,
        total_unrealized_pnl=total_unrealized,
        total_realized_pnl=total_realized,
        total_percentage_change=(
            total_unrealized / total_cost_basis * HUNDRED if total_cost_basis > ZERO else None
        ),
        holdings_count=len(holdings),
    )


# =============================================================================
# INSIGHTS
# =============================================================================

def build_portfolio_insights(
        holdings: list[HoldingSnapshot],
        recent_transactions: list[LedgerTransaction],
) -> PortfolioInsights:
    """
    Args:
        holdings: All holdings of the user
        recent_transactions: Latest transactions, newest first

    Returns:
        PortfolioInsights
    """
    summary = build_portfolio_summary(holdings)

    valued = [h for h in holdings if h.current_value is not None and h.current_value > ZERO]
    ranked = sorted(
        (
            PerformerEntry(symbol=h.token_symbol, percentage_change=h.percentage_change, value=h.current_value)
            for h in valued
            if h.percentage_change is not None
        ),
        key=lambda p: p.percentage_change,
    )

    total_value = summary.total_value
    allocation = sorted(
        (
            AllocationEntry(
                symbol=h.token_symbol,
                value=h.current_value,
                percentage=h.current_value / total_value * HUNDRED if total_value > ZERO else ZERO,
            )
            for h in valued
        ),
        key=lambda a: a.value,
        reverse=True,
    )

    return PortfolioInsights(
        summary=summary,
        top_performers=ranked[::-1][:PERFORMER_LIST_SIZE],
        worst_performers=ranked[:PERFORMER_LIST_SIZE],
        allocation_by_value=allocation,
        recent_activity=[
            ActivityEntry(
                transaction_type=txn.transaction_type,
                symbol=txn.token_symbol,
                amount=txn.amount,
                date=txn.date,
            )
            for txn in recent_transactions
        ],
    )


# =============================================================================
# TRANSACTION ANALYTICS
# =============================================================================

def build_transaction_analytics(transactions: list[LedgerTransaction]) -> TransactionAnalytics:
    """
    Activity statistics.

    Frequency is measured over the span between the earliest and latest
    transaction, rounded up to whole days, weeks (7 days) and months
    (30 days), each at least 1.

    Args:
        transactions: Transactions in chronological order
    """
    by_type = {kind: 0 for kind in TransactionType}
    if not transactions:
        return TransactionAnalytics(
            total_transactions=0,
            transactions_by_type=by_type,
            total_volume=ZERO,
            average_transaction_size=ZERO,
            most_active_exchange=None,
            frequency=TransactionFrequency(per_day=ZERO, per_week=ZERO, per_month=ZERO),
        )

    for txn in transactions:
        by_type[txn.transaction_type] += 1

    total = len(transactions)
    total_volume = sum((txn.value for txn in transactions), ZERO)

    exchange_counts = Counter(txn.exchange_name for txn in transactions if txn.exchange_name)
    most_active_exchange = exchange_counts.most_common(1)[0][0] if exchange_counts else None

    earliest = min(txn.date for txn in transactions)
    latest = max(txn.date for txn in transactions)
    span_days = max(1, math.ceil((latest - earliest).total_seconds() / _SECONDS_PER_DAY))
    span_weeks = max(1, math.ceil(span_days / _DAYS_PER_WEEK))
    span_months = max(1, math.ceil(span_days / _DAYS_PER_MONTH))

    count = Decimal(total)
    return TransactionAnalytics(
        total_transactions=total,
        transactions_by_type=by_type,
        total_volume=total_volume,
        average_transaction_size=total_volume / count,
        most_active_exchange=most_active_exchange,
        frequency=TransactionFrequency(
            per_day=count / span_days,
            per_week=count / span_weeks,
            per_month=count / span_months,
        ),
        earliest_date=earliest,
        latest_date=latest,
    )
