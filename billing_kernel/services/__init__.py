"""Kernel services: the imperative shell around the pure domain."""

from billing_kernel.services.ledger_service import Ledger

__all__ = ["Ledger"]
