# backend/cryptofolio/services/protocols.py
"""
Protocol interfaces for service dependency injection.

Using typing.Protocol enables structural subtyping:
- LedgerRepository and the price oracles satisfy these without inheritance
- Test fakes work without explicit inheritance
- Clear documentation of required interfaces
"""

from __future__ import annotations

from datetime import date
from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from decimal import Decimal

    from cryptofolio.services.ledger.types import (
        HoldingDerivedFields,
        HoldingPriceFields,
        HoldingSnapshot,
        LedgerTransaction,
    )
    from cryptofolio.services.market_data.base import CurrentPrice


class LedgerRepositoryProtocol(Protocol):
    """Interface required by the cost-basis tracker, estimator and analytics."""

    def get_holding(self, holding_id: int) -> HoldingSnapshot | None:
        ...

    def list_holdings(self, user_id: int) -> list[HoldingSnapshot]:
        ...

    def list_holding_ids(self, user_id: int) -> list[int]:
        ...

    def list_user_ids_with_holdings(self) -> list[int]:
        ...

    def update_holding_derived_fields(
        self,
        holding_id: int,
        fields: HoldingDerivedFields | HoldingPriceFields,
    ) -> None:
        ...

    def list_transactions(
        self,
        *,
        holding_id: int | None = None,
        user_id: int | None = None,
        start: date | None = None,
        end: date | None = None,
        newest_first: bool = False,
        limit: int | None = None,
    ) -> list[LedgerTransaction]:
        ...


class PriceOracleProtocol(Protocol):
    """
    Interface required by valuation, benchmarks and price refresh.

    Misses (unknown symbol, no data for the date) are None / absent keys.
    Provider failures raise MarketDataError subclasses.
    """

    def current_price(self, symbol: str) -> CurrentPrice | None:
        ...

    def current_prices(self, symbols: list[str]) -> dict[str, CurrentPrice]:
        ...

    def historical_price(self, symbol: str, day: date) -> Decimal | None:
        ...

    def historical_prices(self, symbol: str, start: date, end: date) -> dict[date, Decimal]:
        ...
