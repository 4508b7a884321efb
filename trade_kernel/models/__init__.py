"""ORM models for the trade kernel."""

from trade_kernel.models.account import Account, AccountType, NormalBalance
from trade_kernel.models.batch import Batch, BatchStatus
from trade_kernel.models.invoice import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    InvoiceType,
    PaymentStatus,
)
from trade_kernel.models.ledger_entry import LedgerEntry, PostingKind
from trade_kernel.models.party import Party, PartyType, RegistrationType
from trade_kernel.models.sequence import SequenceCounter
from trade_kernel.models.stock_movement import MovementType, StockDirection, StockMovement
from trade_kernel.models.tax_config import TaxConfig, TaxType

__all__ = [
    "Account",
    "AccountType",
    "NormalBalance",
    "Batch",
    "BatchStatus",
    "Invoice",
    "InvoiceLine",
    "InvoiceStatus",
    "InvoiceType",
    "PaymentStatus",
    "LedgerEntry",
    "PostingKind",
    "Party",
    "PartyType",
    "RegistrationType",
    "SequenceCounter",
    "StockMovement",
    "StockDirection",
    "MovementType",
    "TaxConfig",
    "TaxType",
]
