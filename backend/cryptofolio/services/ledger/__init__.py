# backend/cryptofolio/services/ledger/__init__.py
"""
Ledger access for the analytics engine.

Holdings and transactions are created by the CRUD layer; the engine only
reads them and writes back derived holding fields.
"""

from cryptofolio.services.ledger.repository import LedgerRepository
from cryptofolio.services.ledger.types import (
    HoldingDerivedFields,
    HoldingPriceFields,
    HoldingSnapshot,
    LedgerTransaction,
)

__all__ = [
    "LedgerRepository",
    "HoldingDerivedFields",
    "HoldingPriceFields",
    "HoldingSnapshot",
    "LedgerTransaction",
]
