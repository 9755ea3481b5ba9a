"""
Typed Exception Hierarchy for the Billing Kernel.

Every error the kernel raises is a typed subclass of ``BillingKernelError``
carrying a class-level ``code`` (machine-readable, API-safe) and the
structured data that caused it.  Callers catch by type and read attributes;
they never parse messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- InvalidInputError            required field absent or malformed
    |
    +-- CurrencyError
    |   +-- CurrencyMismatchError    mixed currencies in one computation
    |
    +-- InvoiceError
    |   +-- InvoiceNotFoundError
    |   +-- InvalidStatusTransitionError
    |
    +-- LedgerError
        +-- LedgerClosedError
        +-- PersistenceFailureError  write-through to the store failed

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                       | When Raised
------------|----------------------------|--------------------------------------
Input       | INVALID_INPUT              | Missing/malformed field at a boundary
Currency    | CURRENCY_MISMATCH          | Operands in different currencies
Invoice     | INVOICE_NOT_FOUND          | No invoice with the given id
            | INVALID_STATUS_TRANSITION  | Transition rejected by strict policy
Ledger      | LEDGER_CLOSED              | Operation on a closed ledger
            | PERSISTENCE_FAILURE        | Store read/write failed

===============================================================================
HANDLING PATTERNS
===============================================================================

1. IDEMPOTENT REPLAY IS NOT AN ERROR:

    invoice = ledger.create_invoice(calculated, key)   # first call creates
    invoice = ledger.create_invoice(calculated, key)   # replay returns same

2. PERSISTENCE FAILURES ARE SURFACED, NEVER RETRIED HERE:

    try:
        ledger.create_invoice(calculated, key)
    except PersistenceFailureError as e:
        # In-memory state is unchanged; the caller may retry with the same key.
        log.error("store down", extra={"collection": e.collection})
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


class InvalidInputError(BillingKernelError):
    """A required field is absent or a supplied field is malformed."""

    code: str = "INVALID_INPUT"

    def __init__(self, field: str, reason: str = "is required"):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid input: '{field}' {reason}")


# Currency-related exceptions


class CurrencyError(BillingKernelError):
    """Base exception for currency-related errors."""

    code: str = "CURRENCY_ERROR"


class CurrencyMismatchError(CurrencyError):
    """Two monetary operands of one computation use different currencies."""

    code: str = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(f"Currency mismatch: expected {expected}, got {received}")


# Invoice-related exceptions


class InvoiceError(BillingKernelError):
    """Base exception for invoice lifecycle errors."""

    code: str = "INVOICE_ERROR"


class InvoiceNotFoundError(InvoiceError):
    """Invoice with given id was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class InvalidStatusTransitionError(InvoiceError):
    """Status change rejected because strict transitions are enforced."""

    code: str = "INVALID_STATUS_TRANSITION"

    def __init__(self, invoice_id: str, from_status: str, to_status: str):
        self.invoice_id = invoice_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invoice {invoice_id} cannot move from {from_status} to {to_status}"
        )


# Ledger-related exceptions


class LedgerError(BillingKernelError):
    """Base exception for ledger errors."""

    code: str = "LEDGER_ERROR"


class LedgerClosedError(LedgerError):
    """The ledger has been closed and no longer accepts operations."""

    code: str = "LEDGER_CLOSED"

    def __init__(self) -> None:
        super().__init__("Ledger is closed")


class PersistenceFailureError(LedgerError):
    """
    Reading or writing a collection through the key-value store failed.

    The ledger leaves its in-memory state untouched when this is raised
    from a mutation, so memory and store never diverge.
    """

    code: str = "PERSISTENCE_FAILURE"

    def __init__(self, collection: str, reason: str):
        self.collection = collection
        self.reason = reason
        super().__init__(f"Persistence failure for '{collection}': {reason}")
