"""
Ledger -- single source of truth for invoices, products, customers and the
seller profile.

Responsibility:
    Commits calculated invoices: assigns identity and a sequential invoice
    number, snapshots the seller profile, enforces idempotent creation and
    applies status changes.  Keeps products, customers and the seller
    profile alongside.  Every collection is loaded in full from a
    KeyValueStore on open and rewritten in full after each mutation.

Architecture position:
    Kernel > Services -- imperative shell around the pure domain.
    Depends on the shape of billing_engines output (Invoice) but never on
    calculation logic: committed totals are stored as given.

Invariants enforced:
    - Idempotency: at most one invoice per idempotency key.  A repeated key
      returns the stored record unchanged, with no recomputation and no
      write.
    - Numbering: ``{prefix}-{year}-{seq}`` numbers are strictly increasing
      per calendar year, gapless and never reused.  Idempotency lookup,
      number allocation, append and persist run under one lock, so
      concurrent creators observe distinct numbers in commit order.
    - Write-through: a mutation is written to the store first and swapped
      into memory only if the write succeeded.  A failed create therefore
      consumes no number and memory never runs ahead of the store.
    - Snapshots: invoices embed frozen copies of seller and buyer; saving a
      new seller profile never touches issued invoices.

Failure modes:
    - InvalidInputError: blank idempotency key, uncalculated invoice,
      missing buyer or seller, Full invoice without buyer tax id (when
      configured), unknown status value.
    - InvoiceNotFoundError: status update for an unknown id.
    - InvalidStatusTransitionError: only when strict transitions are
      configured.
    - PersistenceFailureError: the store failed to load or save.  Never
      retried here.
    - LedgerClosedError: any call after ``close()``.
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Callable

from billing_config import get_active_config
from billing_config.schema import LedgerConfig
from billing_kernel.db.store import KeyValueStore, open_store
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.invoice import (
    Account,
    Invoice,
    InvoiceDraft,
    InvoiceStatus,
    InvoiceType,
    Product,
    new_id,
)
from billing_kernel.domain.serialization import (
    account_from_dict,
    account_to_dict,
    invoice_from_dict,
    invoice_to_dict,
    product_from_dict,
    product_to_dict,
)
from billing_kernel.exceptions import (
    InvalidInputError,
    InvalidStatusTransitionError,
    InvoiceNotFoundError,
    LedgerClosedError,
    PersistenceFailureError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.utils.idempotency import require_idempotency_key

logger = get_logger("services.ledger")


# Transitions accepted when LedgerConfig.enforce_status_transitions is set.
# Writing the current status again is always accepted.
ALLOWED_STATUS_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.FINALIZED, InvoiceStatus.VOID}),
    InvoiceStatus.FINALIZED: frozenset({InvoiceStatus.PAID, InvoiceStatus.VOID}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.VOID: frozenset(),
}


def format_invoice_number(prefix: str, year: int, sequence: int, width: int) -> str:
    return f"{prefix}-{year}-{sequence:0{width}d}"


def parse_invoice_sequence(invoice_number: str | None, prefix: str, year: int) -> int | None:
    """Sequence part of ``invoice_number`` if it belongs to ``year``, else None."""
    head = f"{prefix}-{year}-"
    if not invoice_number or not invoice_number.startswith(head):
        return None
    tail = invoice_number[len(head):]
    return int(tail) if tail.isascii() and tail.isdigit() else None


class Ledger:
    """
    Durable collection of invoices, products, customers and seller profile.

    Contract:
        Obtain with ``Ledger.open(store)``; release with ``close()`` or use
        as a context manager.  All public methods are thread-safe.

    Usage:
        with Ledger.open(InMemoryKeyValueStore()) as ledger:
            ledger.save_seller_profile(seller)
            invoice = ledger.create_invoice(calculate_invoice(draft), key)
            ledger.update_invoice_status(invoice.id, InvoiceStatus.FINALIZED)
    """

    INVOICES = "invoices"
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    SELLER_PROFILE = "seller_profile"

    def __init__(
        self,
        store: KeyValueStore,
        config: LedgerConfig,
        clock: Clock,
        invoices: list[Invoice],
        products: list[Product],
        customers: list[Account],
        seller_profile: Account | None,
    ):
        self._store = store
        self._config = config
        self._clock = clock
        self._lock = threading.RLock()
        self._closed = False
        self._invoices = invoices
        self._by_key = {inv.idempotency_key: inv for inv in invoices}
        self._products = products
        self._customers = customers
        self._seller_profile = seller_profile

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def open(
        cls,
        store: KeyValueStore | None = None,
        config: LedgerConfig | None = None,
        clock: Clock | None = None,
    ) -> Ledger:
        """
        Load every collection from ``store`` and return a ready Ledger.

        Without a store, one is opened from ``config.database_url``.

        Raises:
            PersistenceFailureError: a collection could not be read or one
                of its records could not be parsed.
        """
        config = config or get_active_config()
        if store is None:
            store = open_store(config.database_url)
        invoices = cls._load(store, cls.INVOICES, lambda rows: [
            invoice_from_dict(row, f"invoices[{i}]") for i, row in enumerate(rows)
        ])
        products = cls._load(store, cls.PRODUCTS, lambda rows: [
            product_from_dict(row, f"products[{i}]") for i, row in enumerate(rows)
        ])
        customers = cls._load(store, cls.CUSTOMERS, lambda rows: [
            account_from_dict(row, f"customers[{i}]") for i, row in enumerate(rows)
        ])
        seller_profile = cls._load(store, cls.SELLER_PROFILE, lambda row: account_from_dict(row, "seller_profile"))

        ledger = cls(
            store=store,
            config=config,
            clock=clock or SystemClock(),
            invoices=invoices or [],
            products=products or [],
            customers=customers or [],
            seller_profile=seller_profile,
        )
        logger.info("ledger_opened", extra={
            "invoice_count": len(ledger._invoices),
            "product_count": len(ledger._products),
            "customer_count": len(ledger._customers),
            "has_seller_profile": seller_profile is not None,
        })
        return ledger

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._store.close()
        logger.info("ledger_closed")

    def __enter__(self) -> Ledger:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def invoices(self) -> tuple[Invoice, ...]:
        with self._lock:
            self._ensure_open()
            return tuple(self._invoices)

    @property
    def products(self) -> tuple[Product, ...]:
        with self._lock:
            self._ensure_open()
            return tuple(self._products)

    @property
    def customers(self) -> tuple[Account, ...]:
        with self._lock:
            self._ensure_open()
            return tuple(self._customers)

    @property
    def seller_profile(self) -> Account | None:
        with self._lock:
            self._ensure_open()
            return self._seller_profile

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self._lock:
            self._ensure_open()
            return self._invoices[self._index_of(invoice_id)]

    def find_by_idempotency_key(self, idempotency_key: str) -> Invoice | None:
        with self._lock:
            self._ensure_open()
            return self._by_key.get(idempotency_key)

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------

    def generate_invoice_number(self) -> str:
        """
        Next invoice number for the clock's current year.

        The year is the calendar year of ``clock.today()``, so it follows the
        clock's timezone: UTC for the default SystemClock. Pass
        ``SystemClock(tz)`` to number in the seller's local year.

        Scans existing numbers carrying this year's prefix, takes the
        highest sequence and adds one.  Numbers that do not parse are
        ignored.  Only atomic with allocation when called from
        ``create_invoice``, which holds the lock across both steps.
        """
        with self._lock:
            self._ensure_open()
            year = self._clock.today().year
            prefix = self._config.invoice_prefix
            max_seq = 0
            for invoice in self._invoices:
                seq = parse_invoice_sequence(invoice.invoice_number, prefix, year)
                if seq is not None and seq > max_seq:
                    max_seq = seq
            return format_invoice_number(prefix, year, max_seq + 1, self._config.sequence_width)

    def create_invoice(self, invoice: Invoice, idempotency_key: str) -> Invoice:
        """
        Commit a calculated invoice, or return the one already committed
        under ``idempotency_key``.

        Preconditions:
            - ``invoice`` came out of the Calculation Engine (it carries
              computed totals).
            - ``invoice.buyer`` is set.

        Postconditions:
            - The returned invoice has an id, the next invoice number, status
              Draft, the seller profile snapshot and the idempotency key.
            - It has been written to the store.
        """
        key = require_idempotency_key(idempotency_key)
        with self._lock, LogContext.bind(idempotency_key=key):
            self._ensure_open()

            existing = self._by_key.get(key)
            if existing is not None:
                with LogContext.bind(invoice_id=existing.id, invoice_number=existing.invoice_number):
                    logger.info("invoice_replayed")
                return existing

            self._validate_for_commit(invoice)
            seller = self._seller_profile or invoice.seller
            if seller is None:
                raise InvalidInputError("seller", "is required: save a seller profile first")

            today = self._clock.today()
            committed = replace(
                invoice,
                id=new_id(),
                invoice_number=self.generate_invoice_number(),
                status=InvoiceStatus.DRAFT,
                seller=seller,
                idempotency_key=key,
                issue_date=invoice.issue_date or today,
                due_date=invoice.due_date or today,
            )

            invoices = [*self._invoices, committed]
            self._persist(self.INVOICES, [invoice_to_dict(inv) for inv in invoices])
            self._invoices = invoices
            self._by_key[key] = committed

            with LogContext.bind(invoice_id=committed.id, invoice_number=committed.invoice_number):
                logger.info("invoice_created", extra={
                    "grand_total": committed.grand_total,
                    "line_count": len(committed.line_items),
                })
            return committed

    def update_invoice_status(self, invoice_id: str, status: InvoiceStatus | str) -> Invoice:
        """
        Replace the status of invoice ``invoice_id``.

        Any status may follow any status unless strict transitions are
        configured.
        """
        try:
            new_status = InvoiceStatus(status)
        except ValueError:
            raise InvalidInputError("status", f"unknown invoice status {status!r}") from None

        with self._lock, LogContext.bind(invoice_id=invoice_id):
            self._ensure_open()
            index = self._index_of(invoice_id)
            current = self._invoices[index]
            LogContext.set(invoice_number=current.invoice_number)

            if (
                self._config.enforce_status_transitions
                and current.status is not None
                and new_status != current.status
                and new_status not in ALLOWED_STATUS_TRANSITIONS[current.status]
            ):
                logger.warning("invoice_status_transition_rejected", extra={
                    "from_status": current.status,
                    "to_status": new_status,
                })
                raise InvalidStatusTransitionError(invoice_id, current.status.value, new_status.value)

            updated = replace(current, status=new_status)
            invoices = list(self._invoices)
            invoices[index] = updated
            self._persist(self.INVOICES, [invoice_to_dict(inv) for inv in invoices])
            self._invoices = invoices
            self._by_key[updated.idempotency_key] = updated

            logger.info("invoice_status_updated", extra={
                "from_status": current.status,
                "to_status": new_status,
            })
            return updated

    # ------------------------------------------------------------------
    # Catalogue and profiles
    # ------------------------------------------------------------------

    def add_product(self, product: Product) -> None:
        with self._lock:
            self._ensure_open()
            products = [*self._products, product]
            self._persist(self.PRODUCTS, [product_to_dict(p) for p in products])
            self._products = products
        logger.info("product_added", extra={"product_id": product.id, "code": product.code})

    def add_customer(self, customer: Account) -> None:
        with self._lock:
            self._ensure_open()
            customers = [*self._customers, customer]
            self._persist(self.CUSTOMERS, [account_to_dict(c) for c in customers])
            self._customers = customers
        logger.info("customer_added", extra={"customer_id": customer.id})

    def save_seller_profile(self, profile: Account) -> None:
        """Replace the seller profile used for future invoices."""
        with self._lock:
            self._ensure_open()
            self._persist(self.SELLER_PROFILE, account_to_dict(profile))
            self._seller_profile = profile
        logger.info("seller_profile_saved", extra={"seller_id": profile.id})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_open(self) -> None:
        if self._closed:
            raise LedgerClosedError()

    def _index_of(self, invoice_id: str) -> int:
        for index, invoice in enumerate(self._invoices):
            if invoice.id == invoice_id:
                return index
        raise InvoiceNotFoundError(invoice_id)

    def _validate_for_commit(self, invoice: Invoice | InvoiceDraft) -> None:
        if not isinstance(invoice, Invoice):
            raise InvalidInputError("grand_total", "is missing: calculate the invoice before committing")
        if invoice.buyer is None:
            raise InvalidInputError("buyer")
        if (
            self._config.require_buyer_tax_id_for_full
            and invoice.type == InvoiceType.FULL
            and not invoice.buyer.tax_id
        ):
            raise InvalidInputError("buyer.tax_id", "is required for Full invoices")

    def _persist(self, collection: str, records: Any) -> None:
        try:
            self._store.put(collection, records)
        except Exception as exc:
            logger.error("ledger_persist_failed", extra={"collection": collection}, exc_info=True)
            raise PersistenceFailureError(collection, str(exc)) from exc

    @staticmethod
    def _load(store: KeyValueStore, collection: str, parse: Callable[[Any], Any]) -> Any:
        try:
            raw = store.get(collection)
            return parse(raw) if raw is not None else None
        except Exception as exc:
            logger.error("ledger_load_failed", extra={"collection": collection}, exc_info=True)
            raise PersistenceFailureError(collection, str(exc)) from exc
