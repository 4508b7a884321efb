"""
Stateful services of the invoice posting engine.

Every service works over a caller-supplied SQLAlchemy Session and only
flushes; InvoiceStateMachine is the one component that commits.
"""

from trade_services.credit_limit import CreditCheckResult, CreditLimitValidator
from trade_services.invoice_drafts import InvoiceDraftService, line_input_from_row
from trade_services.invoice_state_machine import InvoiceStateMachine, ReturnLineRequest
from trade_services.ledger_poster import LedgerPoster, PostingLine, PostingResult
from trade_services.reversal_engine import ReversalEngine, ReversalResult
from trade_services.stock_allocator import StockAllocator
from trade_services.tax_config_cache import TaxConfigCache, to_tax_rate

__all__ = [
    "CreditCheckResult",
    "CreditLimitValidator",
    "InvoiceDraftService",
    "line_input_from_row",
    "InvoiceStateMachine",
    "ReturnLineRequest",
    "LedgerPoster",
    "PostingLine",
    "PostingResult",
    "ReversalEngine",
    "ReversalResult",
    "StockAllocator",
    "TaxConfigCache",
    "to_tax_rate",
]
