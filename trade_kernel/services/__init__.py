"""Kernel service infrastructure."""

from trade_kernel.services.base import BaseService

__all__ = ["BaseService"]
