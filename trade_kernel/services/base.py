"""
BaseService -- abstract base for flush-only components.

Responsibility:
    Provides the common constructor and session-handling contract for every
    stateful component (repositories, stock allocator, ledger poster,
    reversal engine).  They receive a SQLAlchemy ``Session`` and use
    ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: components flush within the caller's transaction
    and never commit or roll back.  The InvoiceStateMachine owns the
    boundary, so a failure at the ledger step also discards stock deductions
    made a moment earlier.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseService(ABC):
    """
    Abstract base class for flush-only components.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(self, session: Session):
        self.session = session
