# backend/tests/conftest.py
"""
Pytest configuration and fixtures.

This module provides shared fixtures for all tests:
- Database fixtures (SQLite, one fresh database per test)
- Ledger repository over that database
- Deterministic fake price oracle
- Sample data factories (users, holdings, transactions)
"""

import os

# Settings() is built at import time and needs a valid environment
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from cryptofolio.models import (
    Base,
    PortfolioHolding,
    Transaction,
    TransactionType,
    User,
)
from cryptofolio.services.exceptions import ProviderUnavailableError
from cryptofolio.services.ledger import LedgerRepository
from cryptofolio.services.market_data.base import CurrentPrice, PriceOracle


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture(scope="function")
def db_engine(tmp_path):
    """
    Create a file-backed SQLite engine for testing.

    A file (not :memory: with StaticPool) gives every worker thread its own
    connection, which the concurrent report sections need.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture(scope="function")
def db(session_factory) -> Iterator[Session]:
    """Create a database session for arranging test data."""
    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture(scope="function")
def repository(session_factory) -> LedgerRepository:
    return LedgerRepository(session_factory)


# =============================================================================
# FAKE PRICE ORACLE
# =============================================================================

class FakePriceOracle(PriceOracle):
    """
    Deterministic in-memory PriceOracle for testing.

    Prices are configured per symbol (current) and per (symbol, day)
    (historical). Symbols can be made to fail or to block for a while.
    """

    def __init__(self):
        self._current: dict[str, CurrentPrice] = {}
        self._historical: dict[tuple[str, date], Decimal] = {}
        self._failing: set[str] = set()
        self._delays: dict[str, float] = {}
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return "fake"

    def set_current(self, symbol: str, usd: Decimal | str, change_24h: Decimal | None = None) -> None:
        symbol = symbol.upper()
        self._current[symbol] = CurrentPrice(symbol=symbol, usd=Decimal(usd), change_24h=change_24h)

    def set_historical(self, symbol: str, day: date, usd: Decimal | str) -> None:
        self._historical[(symbol.upper(), day)] = Decimal(usd)

    def set_historical_range(self, symbol: str, start: date, prices: list[Decimal | str]) -> None:
        """Set consecutive daily prices starting at `start`."""
        for offset, usd in enumerate(prices):
            self.set_historical(symbol, start + timedelta(days=offset), usd)

    def fail_symbol(self, symbol: str) -> None:
        self._failing.add(symbol.upper())

    def delay_symbol(self, symbol: str, seconds: float) -> None:
        self._delays[symbol.upper()] = seconds

    def _maybe_fail(self, symbol: str) -> None:
        symbol = symbol.upper()
        if symbol in self._delays:
            import time
            time.sleep(self._delays[symbol])
        if symbol in self._failing:
            raise ProviderUnavailableError(provider=self.name, reason=f"{symbol} unavailable")

    def current_prices(self, symbols: list[str]) -> dict[str, CurrentPrice]:
        self.calls.append(("current_prices", ",".join(sorted(symbols))))
        result: dict[str, CurrentPrice] = {}
        for symbol in symbols:
            self._maybe_fail(symbol)
            quote = self._current.get(symbol.upper())
            if quote is not None:
                result[symbol.upper()] = quote
        return result

    def historical_price(self, symbol: str, day: date) -> Decimal | None:
        self.calls.append(("historical_price", symbol.upper()))
        self._maybe_fail(symbol)
        return self._historical.get((symbol.upper(), day))

    def historical_prices(self, symbol: str, start: date, end: date) -> dict[date, Decimal]:
        self.calls.append(("historical_prices", symbol.upper()))
        self._maybe_fail(symbol)
        return {
            day: price
            for (sym, day), price in self._historical.items()
            if sym == symbol.upper() and start <= day <= end
        }


@pytest.fixture
def oracle() -> FakePriceOracle:
    return FakePriceOracle()


# =============================================================================
# SAMPLE DATA FACTORIES
# =============================================================================

@pytest.fixture
def make_user(db) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(email: str | None = None) -> User:
        counter["n"] += 1
        user = User(email=email or f"user{counter['n']}@example.com")
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_holding(db) -> Callable[..., PortfolioHolding]:
    def _make(user: User, symbol: str, **fields) -> PortfolioHolding:
        holding = PortfolioHolding(
            user_id=user.id,
            token_symbol=symbol.upper(),
            token_name=fields.pop("token_name", symbol.title()),
            **fields,
        )
        db.add(holding)
        db.commit()
        return holding

    return _make


@pytest.fixture
def make_transaction(db) -> Callable[..., Transaction]:
    def _make(
            holding: PortfolioHolding,
            transaction_type: TransactionType,
            amount: Decimal | str,
            on: date | datetime,
            price: Decimal | str | None = None,
            total_value: Decimal | str | None = None,
            **fields,
    ) -> Transaction:
        if not isinstance(on, datetime):
            on = datetime.combine(on, datetime.min.time()).replace(hour=12)
        txn = Transaction(
            holding_id=holding.id,
            transaction_type=transaction_type,
            amount=Decimal(amount),
            price_per_token=Decimal(price) if price is not None else None,
            total_value=Decimal(total_value) if total_value is not None else None,
            date=on,
            **fields,
        )
        db.add(txn)
        db.commit()
        return txn

    return _make
