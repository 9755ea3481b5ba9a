"""
Invoice -- Immutable records for accounts, catalogue entries, lines and invoices.

Responsibility:
    Defines the data model the Calculation Engine costs and the Ledger
    commits: TaxData, ProrationDetails, LineItemDraft / LineItem,
    Account (seller or buyer), Product, InvoiceDraft and Invoice.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Computed money fields (LineItem.subtotal/tax_amount/total, invoice
      totals) only exist on records produced by the Calculation Engine;
      drafts have no place to hold them.
    - ProrationDetails.factor is derived from the day counts and cannot be
      set independently.
    - An Invoice embeds Account snapshots, never references: records are
      frozen, so later profile edits cannot reach an issued invoice.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import uuid4

from billing_kernel.domain.currency import CurrencyCode
from billing_kernel.domain.values import ExchangeRate, Money
from billing_kernel.exceptions import InvalidInputError

_HUNDRED = Decimal("100")


def new_id() -> str:
    """Synthesize a new record identity."""
    return str(uuid4())


class TaxType(str, Enum):
    """Whether a price already contains tax."""

    INCLUSIVE = "Inclusive"  # Tax baked into the gross amount
    EXCLUSIVE = "Exclusive"  # Tax added on top


class InvoiceStatus(str, Enum):
    DRAFT = "Draft"
    FINALIZED = "Finalized"
    PAID = "Paid"
    VOID = "Void"


class InvoiceType(str, Enum):
    SIMPLIFIED = "Simplified"  # B2C, low value
    FULL = "Full"  # B2B, buyer tax id required


@dataclass(frozen=True, slots=True)
class TaxData:
    """Tax rate as a percentage (5 means 5%) and how it composes with a price."""

    rate: Decimal
    type: TaxType

    def __post_init__(self) -> None:
        if isinstance(self.rate, bool):
            raise InvalidInputError("tax_data.rate", "must be a number")
        if not isinstance(self.rate, Decimal):
            try:
                object.__setattr__(self, "rate", Decimal(str(self.rate)))
            except (InvalidOperation, ValueError):
                raise InvalidInputError("tax_data.rate", f"is not a number: {self.rate!r}") from None
        if not self.rate.is_finite() or not (0 <= self.rate <= _HUNDRED):
            raise InvalidInputError("tax_data.rate", "must be between 0 and 100")
        if not isinstance(self.type, TaxType):
            try:
                object.__setattr__(self, "type", TaxType(self.type))
            except ValueError:
                raise InvalidInputError("tax_data.type", f"unknown tax type {self.type!r}") from None


@dataclass(frozen=True, slots=True)
class ProrationDetails:
    """Share of a billing period actually used; ``factor`` is derived."""

    start_date: date
    end_date: date
    total_days_in_period: int
    days_of_use: int

    def __post_init__(self) -> None:
        if self.total_days_in_period < 1:
            raise InvalidInputError("proration.total_days_in_period", "must be at least 1")
        if self.days_of_use < 0:
            raise InvalidInputError("proration.days_of_use", "must not be negative")
        if self.days_of_use > self.total_days_in_period:
            raise InvalidInputError(
                "proration.days_of_use", "must not exceed total_days_in_period"
            )

    @property
    def factor(self) -> float:
        return self.days_of_use / self.total_days_in_period


@dataclass(frozen=True, slots=True)
class Address:
    line1: str
    city: str
    postal_code: str
    country: str
    line2: str | None = None
    state: str | None = None


@dataclass(frozen=True, slots=True)
class Account:
    """Seller or buyer profile. Invoices hold copies of these."""

    name: str
    email: str
    address: Address
    currency: CurrencyCode
    tax_id: str | None = None
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", CurrencyCode.parse(self.currency, "account.currency"))


@dataclass(frozen=True, slots=True)
class Product:
    """Catalogue entry; ``default_price`` is in minor units."""

    name: str
    code: str
    default_price: int
    active: bool = True
    tax_information_code: str | None = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True, slots=True)
class LineItemDraft:
    """
    A line as the caller supplies it.

    Every pricing field is optional here so that a half-filled form can be
    represented; the Calculation Engine decides which absences default and
    which are contract violations.
    """

    description: str = ""
    quantity: int | None = None
    unit_price: Money | None = None
    tax_data: TaxData | None = None
    discount: Money | None = None
    proration: ProrationDetails | None = None
    product_id: str | None = None
    id: str = field(default_factory=new_id)


@dataclass(frozen=True, slots=True)
class LineItem:
    """A fully-costed line produced by ``calculate_line_item``."""

    id: str
    product_id: str | None
    description: str
    quantity: int
    unit_price: Money
    tax_data: TaxData
    discount: Money | None
    proration: ProrationDetails | None
    subtotal: Money
    tax_amount: Money
    total: Money

    def to_draft(self) -> LineItemDraft:
        """Strip computed fields so a recomputation starts from inputs only."""
        return LineItemDraft(
            id=self.id,
            product_id=self.product_id,
            description=self.description,
            quantity=self.quantity,
            unit_price=self.unit_price,
            tax_data=self.tax_data,
            discount=self.discount,
            proration=self.proration,
        )


@dataclass(frozen=True, slots=True)
class InvoiceDraft:
    """Invoice metadata plus raw lines, before any money is computed."""

    line_items: tuple[LineItemDraft, ...] = ()
    currency: CurrencyCode | None = None
    type: InvoiceType = InvoiceType.SIMPLIFIED
    issue_date: date | None = None
    due_date: date | None = None
    buyer: Account | None = None
    seller: Account | None = None
    exchange_rate: ExchangeRate | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_items", tuple(self.line_items))

    def without_line(self, index: int) -> InvoiceDraft:
        """Copy of this draft with the line at ``index`` removed."""
        items = list(self.line_items)
        del items[index]
        return replace(self, line_items=tuple(items))


@dataclass(frozen=True, slots=True)
class Invoice:
    """
    A computed invoice.

    Straight out of ``calculate_invoice`` the ledger-owned fields (``id``,
    ``invoice_number``, ``status``, ``idempotency_key``) are None. The
    Ledger fills them when it commits the record.
    """

    line_items: tuple[LineItem, ...]
    currency: CurrencyCode
    subtotal: Money
    total_discount: Money
    total_tax: Money
    grand_total: Money
    type: InvoiceType = InvoiceType.SIMPLIFIED
    issue_date: date | None = None
    due_date: date | None = None
    seller: Account | None = None
    buyer: Account | None = None
    exchange_rate: ExchangeRate | None = None
    notes: str | None = None
    irn: str | None = None
    qr_code_data: str | None = None
    id: str | None = None
    invoice_number: str | None = None
    status: InvoiceStatus | None = None
    idempotency_key: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "line_items", tuple(self.line_items))

    @property
    def is_committed(self) -> bool:
        return self.id is not None and self.invoice_number is not None

    def to_draft(self) -> InvoiceDraft:
        """Strip computed fields and ledger identity for recalculation."""
        return InvoiceDraft(
            line_items=tuple(item.to_draft() for item in self.line_items),
            currency=self.currency,
            type=self.type,
            issue_date=self.issue_date,
            due_date=self.due_date,
            buyer=self.buyer,
            seller=self.seller,
            exchange_rate=self.exchange_rate,
            notes=self.notes,
        )
