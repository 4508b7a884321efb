"""Pure kernel domain helpers (no I/O)."""

from trade_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = ["Clock", "SystemClock", "DeterministicClock"]
