"""Flush-only repositories over the trade kernel models."""

from trade_kernel.repositories.account import AccountRepository
from trade_kernel.repositories.batch import BatchRepository
from trade_kernel.repositories.invoice import InvoiceRepository
from trade_kernel.repositories.ledger import LedgerRepository
from trade_kernel.repositories.party import PartyRepository
from trade_kernel.repositories.stock_movement import StockMovementRepository
from trade_kernel.repositories.tax_config import TaxConfigRepository

__all__ = [
    "AccountRepository",
    "BatchRepository",
    "InvoiceRepository",
    "LedgerRepository",
    "PartyRepository",
    "StockMovementRepository",
    "TaxConfigRepository",
]
