"""
Module: trade_kernel.models.sequence
Responsibility: Locked counter rows for gap-free, per-prefix-per-year invoice
    numbering.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - name is unique; current_value only increases.
    - Values are allocated under SELECT ... FOR UPDATE, never max()+1.
"""

from sqlalchemy import BigInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import Base


class SequenceCounter(Base):
    """One named monotonic counter (e.g. "SI-2024")."""

    __tablename__ = "sequence_counters"

    __table_args__ = (UniqueConstraint("name", name="uq_sequence_counter_name"),)

    name: Mapped[str] = mapped_column(String(50), nullable=False)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
