"""
Configuration schema for the billing ledger.

Frozen dataclasses only; parsing lives in ``billing_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class LedgerConfig:
    """
    Ledger policy knobs.

    Attributes:
        invoice_prefix: Leading segment of every invoice number.
        sequence_width: Zero-padding of the per-year sequence.
        enforce_status_transitions: Reject status changes outside
            Draft->Finalized->Paid, Draft->Void and Finalized->Void.
        require_buyer_tax_id_for_full: Refuse Full invoices whose buyer has
            no tax id.
        database_url: SQLAlchemy URL for the store opened when the caller
            supplies none; None means an in-memory store.
    """

    invoice_prefix: str = "INV"
    sequence_width: int = 4
    enforce_status_transitions: bool = False
    require_buyer_tax_id_for_full: bool = True
    database_url: str | None = None

    def __post_init__(self) -> None:
        if not self.invoice_prefix or "-" in self.invoice_prefix:
            raise ValueError("invoice_prefix must be non-empty and contain no '-'")
        if self.sequence_width < 1:
            raise ValueError("sequence_width must be at least 1")
