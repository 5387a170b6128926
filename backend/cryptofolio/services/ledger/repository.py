# backend/cryptofolio/services/ledger/repository.py
"""
SQLAlchemy-backed ledger repository.

The analytics engine reads holdings and transactions through this class
and writes back derived holding fields. Each public method opens and
closes its own session from the injected session factory, so a single
repository instance can be shared by concurrently running report
sections without sharing a Session across threads.

Usage:
    from cryptofolio.database import SessionLocal
    from cryptofolio.services.ledger import LedgerRepository

    repository = LedgerRepository(SessionLocal)
    txns = repository.list_transactions(user_id=1, end=date(2024, 6, 30))
"""

import dataclasses
import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from cryptofolio.models import PortfolioHolding, Transaction
from cryptofolio.services.exceptions import HoldingNotFoundError, ValidationError
from cryptofolio.services.ledger.types import (
    HoldingDerivedFields,
    HoldingPriceFields,
    HoldingSnapshot,
    LedgerTransaction,
)

logger = logging.getLogger(__name__)


class LedgerRepository:
    """
    Read/write access to holdings and transactions.

    Attributes:
        _session_factory: Factory producing short-lived Sessions
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # =========================================================================
    # HOLDINGS
    # =========================================================================

    def get_holding(self, holding_id: int) -> HoldingSnapshot | None:
        with self._session_factory() as db:
            holding = db.get(PortfolioHolding, holding_id)
            return self._to_snapshot(holding) if holding is not None else None

    def list_holdings(self, user_id: int) -> list[HoldingSnapshot]:
        with self._session_factory() as db:
            rows = db.scalars(
                select(PortfolioHolding)
                .where(PortfolioHolding.user_id == user_id)
                .order_by(PortfolioHolding.token_symbol)
            ).all()
            return [self._to_snapshot(h) for h in rows]

    def list_holding_ids(self, user_id: int) -> list[int]:
        with self._session_factory() as db:
            return list(db.scalars(
                select(PortfolioHolding.id)
                .where(PortfolioHolding.user_id == user_id)
                .order_by(PortfolioHolding.id)
            ).all())

    def list_user_ids_with_holdings(self) -> list[int]:
        """Users owning at least one holding, ascending by id."""
        with self._session_factory() as db:
            return list(db.scalars(
                select(PortfolioHolding.user_id)
                .distinct()
                .order_by(PortfolioHolding.user_id)
            ).all())

    def update_holding_derived_fields(
            self,
            holding_id: int,
            fields: HoldingDerivedFields | HoldingPriceFields,
    ) -> None:
        """
        Overwrite engine-owned columns of one holding and commit.

        Raises:
            HoldingNotFoundError: If the holding no longer exists
        """
        with self._session_factory() as db:
            holding = db.get(PortfolioHolding, holding_id)
            if holding is None:
                raise HoldingNotFoundError(holding_id)

            for name, value in dataclasses.asdict(fields).items():
                setattr(holding, name, value)

            db.commit()

        logger.debug(f"Updated {type(fields).__name__} for holding {holding_id}")

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

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
        """
        List transactions of one holding or of all holdings of one user.

        Args:
            holding_id: Restrict to this holding (exclusive with user_id)
            user_id: Restrict to this user's holdings (exclusive with holding_id)
            start: First effective day, inclusive
            end: Last effective day, inclusive
            newest_first: Sort descending instead of ascending
            limit: Maximum rows returned

        Returns:
            Transactions ordered by (date, id)

        Raises:
            ValidationError: If not exactly one of holding_id/user_id is given
        """
        if (holding_id is None) == (user_id is None):
            raise ValidationError(
                "Exactly one of holding_id or user_id is required",
                field="holding_id",
            )

        stmt = (
            select(Transaction, PortfolioHolding.token_symbol)
            .join(PortfolioHolding, Transaction.holding_id == PortfolioHolding.id)
        )
        if holding_id is not None:
            stmt = stmt.where(Transaction.holding_id == holding_id)
        else:
            stmt = stmt.where(PortfolioHolding.user_id == user_id)

        if start is not None:
            stmt = stmt.where(Transaction.date >= datetime.combine(start, time.min))
        if end is not None:
            stmt = stmt.where(Transaction.date < datetime.combine(end + timedelta(days=1), time.min))

        if newest_first:
            stmt = stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
        else:
            stmt = stmt.order_by(Transaction.date.asc(), Transaction.id.asc())

        if limit is not None:
            stmt = stmt.limit(limit)

        with self._session_factory() as db:
            return [
                self._to_ledger_transaction(txn, symbol)
                for txn, symbol in db.execute(stmt).all()
            ]

    # =========================================================================
    # MAPPING
    # =========================================================================

    @staticmethod
    def _to_snapshot(holding: PortfolioHolding) -> HoldingSnapshot:
        return HoldingSnapshot(
            id=holding.id,
            user_id=holding.user_id,
            token_symbol=holding.token_symbol,
            token_name=holding.token_name,
            current_amount=holding.current_amount,
            average_cost_basis=holding.average_cost_basis,
            total_cost_basis=holding.total_cost_basis,
            current_price=holding.current_price,
            current_value=holding.current_value,
            unrealized_pnl=holding.unrealized_pnl,
            realized_pnl=holding.realized_pnl,
            percentage_change=holding.percentage_change,
            last_price_update=holding.last_price_update,
        )

    @staticmethod
    def _to_ledger_transaction(txn: Transaction, token_symbol: str) -> LedgerTransaction:
        return LedgerTransaction(
            id=txn.id,
            holding_id=txn.holding_id,
            token_symbol=token_symbol,
            transaction_type=txn.transaction_type,
            date=txn.date,
            amount=txn.amount,
            price_per_token=txn.price_per_token,
            total_value=txn.total_value,
            transaction_fee=txn.transaction_fee,
            exchange_name=txn.exchange_name,
        )
