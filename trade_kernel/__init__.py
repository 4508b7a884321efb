"""
Trade Kernel - persistence and primitives for the invoice posting engine.

Holds what every higher layer stands on:
- ORM models for invoices, batches, accounts, parties, tax configs,
  ledger entries and stock movements
- Repositories (flush-only; callers own the transaction)
- Typed exceptions with machine-readable codes
- Structured JSON logging
- Injectable clock
"""

__version__ = "0.1.0"
