# backend/cryptofolio/services/ledger/types.py
"""
Read and write records exchanged with the ledger repository.

The repository hands out immutable snapshots instead of ORM instances so
they can cross thread boundaries (report sections run on a pool) and be
built by hand in tests.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from cryptofolio.models import TransactionType
from cryptofolio.services.constants import ZERO


@dataclass(frozen=True)
class LedgerTransaction:
    """
    One transaction of one holding.

    Attributes:
        token_symbol: Symbol of the owning holding (uppercase)
        date: Effective date (UTC, naive)
        total_value: Explicit value; None means amount * price_per_token
    """
    id: int
    holding_id: int
    token_symbol: str
    transaction_type: TransactionType
    date: datetime
    amount: Decimal
    price_per_token: Decimal | None = None
    total_value: Decimal | None = None
    transaction_fee: Decimal | None = None
    exchange_name: str | None = None

    @property
    def value(self) -> Decimal:
        """Transaction value: explicit total, else amount x price, else 0."""
        if self.total_value is not None:
            return self.total_value
        if self.price_per_token is not None:
            return self.amount * self.price_per_token
        return ZERO

    @property
    def day(self) -> date:
        return self.date.date()


@dataclass(frozen=True)
class HoldingSnapshot:
    """Persisted state of one holding, as last written by the engine."""
    id: int
    user_id: int
    token_symbol: str
    token_name: str
    current_amount: Decimal = ZERO
    average_cost_basis: Decimal | None = None
    total_cost_basis: Decimal = ZERO
    current_price: Decimal | None = None
    current_value: Decimal | None = None
    unrealized_pnl: Decimal | None = None
    realized_pnl: Decimal = ZERO
    percentage_change: Decimal | None = None
    last_price_update: datetime | None = None


@dataclass(frozen=True)
class HoldingDerivedFields:
    """Fields rewritten by the cost-basis tracker after a ledger mutation."""
    current_amount: Decimal
    average_cost_basis: Decimal | None
    total_cost_basis: Decimal
    realized_pnl: Decimal
    current_value: Decimal | None
    unrealized_pnl: Decimal | None
    percentage_change: Decimal | None


@dataclass(frozen=True)
class HoldingPriceFields:
    """Fields rewritten by a current-price refresh."""
    current_price: Decimal
    current_value: Decimal
    unrealized_pnl: Decimal
    percentage_change: Decimal | None
    last_price_update: datetime
