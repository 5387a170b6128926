# backend/cryptofolio/models.py
import enum
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class PositionEffect(str, enum.Enum):
    """
    How a transaction kind moves a position.

    INFLOW   - adds units and their value to cost basis
    SALE     - removes units and realizes P&L against average cost
    OUTFLOW  - removes units without a sale price (nothing realized)
    NEUTRAL  - no change to amount or cost basis
    """
    INFLOW = "INFLOW"
    SALE = "SALE"
    OUTFLOW = "OUTFLOW"
    NEUTRAL = "NEUTRAL"


class TransactionType(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"
    STAKE = "STAKE"
    UNSTAKE = "UNSTAKE"
    REWARD = "REWARD"
    AIRDROP = "AIRDROP"

    @property
    def effect(self) -> PositionEffect:
        """
        Classify this kind for position replay.

        Every consumer (cost basis, historical valuation, analytics) goes
        through this one mapping. Adding a kind without a branch here
        raises instead of being silently ignored.
        """
        match self:
            case TransactionType.BUY | TransactionType.TRANSFER_IN | TransactionType.REWARD | TransactionType.AIRDROP:
                return PositionEffect.INFLOW
            case TransactionType.SELL:
                return PositionEffect.SALE
            case TransactionType.TRANSFER_OUT:
                return PositionEffect.OUTFLOW
            case TransactionType.STAKE | TransactionType.UNSTAKE:
                # Locked/unlocked state is not tracked
                return PositionEffect.NEUTRAL
        raise ValueError(f"Unhandled transaction type: {self!r}")


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    email: Mapped[str] = mapped_column(String, unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    holdings: Mapped[list["PortfolioHolding"]] = relationship(
        back_populates="owner",
        cascade="all, delete-orphan"
    )


class PortfolioHolding(Base):
    """
    One token position of one user.

    The derived columns (amount, cost basis, P&L, value) are owned by the
    analytics engine: they are rewritten from the transaction ledger after
    every transaction mutation and from the price oracle on refresh.

    Invariants whenever the inputs are non-null:
        current_value  ~ current_amount * current_price
        unrealized_pnl ~ current_value - total_cost_basis
    """
    __tablename__ = "portfolio_holdings"
    __table_args__ = (
        UniqueConstraint('user_id', 'token_symbol', name='uq_holding_user_symbol'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True)
    token_symbol: Mapped[str] = mapped_column(String(20))  # Uppercase, e.g. "BTC"
    token_name: Mapped[str] = mapped_column(String(100))

    # Crypto amounts need more than 8 decimals (e.g. SHIB prices, wei-level dust)
    current_amount: Mapped[Decimal] = mapped_column(Numeric(28, 10), default=Decimal(0))
    average_cost_basis: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    total_cost_basis: Mapped[Decimal] = mapped_column(Numeric(28, 10), default=Decimal(0))
    current_price: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    current_value: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    unrealized_pnl: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    realized_pnl: Mapped[Decimal] = mapped_column(Numeric(28, 10), default=Decimal(0))
    percentage_change: Mapped[Decimal | None] = mapped_column(Numeric(18, 8), nullable=True)
    last_price_update: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    owner: Mapped["User"] = relationship(back_populates="holdings")
    transactions: Mapped[list["Transaction"]] = relationship(
        back_populates="holding",
        cascade="all, delete-orphan"
    )


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        # Cost-basis replay: "all transactions of holding X in date order"
        Index('ix_transaction_holding_date', 'holding_id', 'date'),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    holding_id: Mapped[int] = mapped_column(ForeignKey("portfolio_holdings.id"), index=True)
    transaction_type: Mapped[TransactionType] = mapped_column(Enum(TransactionType))
    date: Mapped[datetime] = mapped_column(DateTime, index=True)  # Effective date (UTC, naive)

    amount: Mapped[Decimal] = mapped_column(Numeric(28, 10))
    price_per_token: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    # When absent, value is amount * price_per_token
    total_value: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    transaction_fee: Mapped[Decimal | None] = mapped_column(Numeric(28, 10), nullable=True)
    fee_token_symbol: Mapped[str | None] = mapped_column(String(10), nullable=True)

    exchange_name: Mapped[str | None] = mapped_column(String(50), nullable=True)
    transaction_hash: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    holding: Mapped["PortfolioHolding"] = relationship(back_populates="transactions")
