"""
Pure calculation engines for invoice posting.

Every engine is a pure function of its inputs: no database access, no clock
reads, no configuration lookups.  Services resolve those and pass values in.
"""

from trade_engines.allocation import (
    AllocationPlan,
    AllocationSlice,
    BatchSnapshot,
    derive_batch_status,
    plan_fefo_allocation,
    validate_inbound_batch,
)
from trade_engines.discount import DiscountBreakdown, DiscountCalculator
from trade_engines.line_totals import (
    InvoiceTotals,
    LineInput,
    LineTotals,
    TaxContext,
    calculate_line,
    calculate_line_totals,
)
from trade_engines.scheme import SchemeSplit, split_quantities
from trade_engines.tax import TaxCalculationResult, TaxCalculator, TaxLine, TaxRate

__all__ = [
    "AllocationPlan",
    "AllocationSlice",
    "BatchSnapshot",
    "derive_batch_status",
    "plan_fefo_allocation",
    "validate_inbound_batch",
    "DiscountBreakdown",
    "DiscountCalculator",
    "InvoiceTotals",
    "LineInput",
    "LineTotals",
    "TaxContext",
    "calculate_line",
    "calculate_line_totals",
    "SchemeSplit",
    "split_quantities",
    "TaxCalculationResult",
    "TaxCalculator",
    "TaxLine",
    "TaxRate",
]
