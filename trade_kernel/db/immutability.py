"""
ORM-Level Immutability Enforcement for append-only records.

===============================================================================
WHY THIS EXISTS
===============================================================================

Ledger entries and stock movements are the audit trail of every confirmation,
cancellation and return.  They are never edited or deleted: a mistake is
undone by appending an equal-and-opposite record that points back at the
original (reverses_posting_id / reverses_movement_id).

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires events before UPDATE/DELETE operations reach the database:

    session.flush()
         |
         v
    [before_update event] --> _reject_update() --> ImmutabilityViolationError
         |
    [before_delete event] --> _reject_delete() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity          | When Immutable          | Why
----------------|-------------------------|--------------------------------------
LedgerEntry     | ALWAYS (from creation)  | Balances are derived from it
StockMovement   | ALWAYS (from creation)  | Batch quantities are derived from it

===============================================================================
USAGE
===============================================================================

init_engine_from_url() registers the listeners; calling
register_immutability_listeners() again is harmless.

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from trade_kernel.exceptions import ImmutabilityViolationError
from trade_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(target, operation: str) -> ImmutabilityViolationError:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    verb = "modified" if operation == "UPDATE" else "deleted"
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be {verb}",
    )


def _reject_update(mapper, connection, target):
    raise _blocked(target, "UPDATE")


def _reject_delete(mapper, connection, target):
    raise _blocked(target, "DELETE")


def _protected_models():
    from trade_kernel.models.ledger_entry import LedgerEntry
    from trade_kernel.models.stock_movement import StockMovement

    return (LedgerEntry, StockMovement)


def register_immutability_listeners():
    """
    Register the append-only listeners.

    Call after models are imported, before any database operations begin.
    Calling twice is harmless.
    """
    for model in _protected_models():
        if not event.contains(model, "before_update", _reject_update):
            event.listen(model, "before_update", _reject_update)
        if not event.contains(model, "before_delete", _reject_delete):
            event.listen(model, "before_delete", _reject_delete)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests.
    """
    for model in _protected_models():
        _safe_remove_listener(model, "before_update", _reject_update)
        _safe_remove_listener(model, "before_delete", _reject_delete)
