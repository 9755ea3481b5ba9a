"""
Billing Engines -- pure calculation functions for invoices.

No I/O, no shared state: every function here is safe to call repeatedly and
concurrently.
"""

from billing_engines.invoice_calculator import (
    calculate_invoice,
    calculate_line_item,
    recalculate,
)
from billing_engines.proration import calculate_proration, prorate_amount
from billing_engines.tax import TaxComputation, compute_tax

__all__ = [
    "TaxComputation",
    "calculate_invoice",
    "calculate_line_item",
    "calculate_proration",
    "compute_tax",
    "prorate_amount",
    "recalculate",
]
