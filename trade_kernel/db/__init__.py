"""Database layer - engine, base classes, types, and append-only guards."""

from trade_kernel.db.base import UUID, Base, PortableDecimal, TrackedBase, UUIDString
from trade_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)
from trade_kernel.db.types import Money, Percent, Quantity, round_money

__all__ = [
    "init_engine_from_url",
    "get_engine",
    "get_session",
    "session_scope",
    "create_tables",
    "drop_tables",
    "reset_engine",
    "Base",
    "TrackedBase",
    "UUIDString",
    "PortableDecimal",
    "UUID",
    "Money",
    "Quantity",
    "Percent",
    "round_money",
]
