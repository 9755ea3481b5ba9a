"""
DTOs -- Boundary parsing of loosely-typed payloads into domain records.

Responsibility:
    Converts JSON-shaped dicts (form submissions, API bodies) into the typed
    records of ``billing_kernel.domain.invoice``. Also defines the
    InvoiceFormState DTO -- the major-unit view an editing form holds --
    and its conversion to an InvoiceDraft.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Required fields missing or mistyped raise InvalidInputError naming
      the dotted path of the field (e.g. ``line_items[1].tax_data``).
    - Computed fields in a payload (subtotal, taxAmount, total, invoice
      totals) are never read: they are always recomputed downstream.
    - Keys are accepted in snake_case or in the camelCase wire format.

Failure modes:
    - InvalidInputError for every malformed or missing required field.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from billing_kernel.domain.currency import CurrencyCode
from billing_kernel.domain.invoice import (
    Account,
    Address,
    InvoiceDraft,
    InvoiceType,
    LineItemDraft,
    Product,
    ProrationDetails,
    TaxData,
    TaxType,
    new_id,
)
from billing_kernel.domain.values import ExchangeRate, Money, to_minor_units
from billing_kernel.exceptions import InvalidInputError

_MISSING = object()


# ---------------------------------------------------------------------------
# Key access helpers
# ---------------------------------------------------------------------------


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _join(path: str, name: str) -> str:
    return f"{path}.{name}" if path else name


def _mapping(payload: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(payload, Mapping):
        raise InvalidInputError(path or "payload", "must be an object")
    return payload


def get_field(payload: Mapping[str, Any], name: str, default: Any = None) -> Any:
    """Read ``name`` (snake_case) or its camelCase spelling; None counts as absent."""
    for key in (name, _camel(name)):
        value = payload.get(key, _MISSING)
        if value is not _MISSING and value is not None:
            return value
    return default


def require_field(payload: Mapping[str, Any], name: str, path: str) -> Any:
    value = get_field(payload, name, _MISSING)
    if value is _MISSING:
        raise InvalidInputError(_join(path, name))
    return value


def _str(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise InvalidInputError(path, f"must be a string, got {type(value).__name__}")
    return value


def _int(value: Any, path: str) -> int:
    if isinstance(value, bool):
        raise InvalidInputError(path, "must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise InvalidInputError(path, f"must be an integer, got {value!r}")


def parse_date(value: Any, path: str) -> date:
    """Parse an ISO date; ISO datetimes are truncated to their date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise InvalidInputError(path, f"is not an ISO date: {value!r}")


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------


def money_from_dict(payload: Any, path: str) -> Money:
    """Parse ``{"amount": int, "currency": code}``; amount is in minor units."""
    data = _mapping(payload, path)
    amount = _int(require_field(data, "amount", path), _join(path, "amount"))
    currency = CurrencyCode.parse(require_field(data, "currency", path), _join(path, "currency"))
    return Money(amount, currency)


def tax_data_from_dict(payload: Any, path: str) -> TaxData:
    data = _mapping(payload, path)
    rate = require_field(data, "rate", path)
    tax_type = require_field(data, "type", path)
    try:
        return TaxData(rate=rate, type=tax_type)
    except InvalidInputError as exc:
        raise InvalidInputError(_join(path, exc.field.split(".")[-1]), exc.reason) from None


def proration_from_dict(payload: Any, path: str) -> ProrationDetails:
    data = _mapping(payload, path)
    try:
        return ProrationDetails(
            start_date=parse_date(require_field(data, "start_date", path), _join(path, "start_date")),
            end_date=parse_date(require_field(data, "end_date", path), _join(path, "end_date")),
            total_days_in_period=_int(
                require_field(data, "total_days_in_period", path),
                _join(path, "total_days_in_period"),
            ),
            days_of_use=_int(require_field(data, "days_of_use", path), _join(path, "days_of_use")),
        )
    except InvalidInputError as exc:
        if exc.field.startswith("proration."):
            raise InvalidInputError(_join(path, exc.field.split(".", 1)[1]), exc.reason) from None
        raise


def exchange_rate_from_dict(payload: Any, path: str = "exchange_rate") -> ExchangeRate:
    data = _mapping(payload, path)
    valid_to = get_field(data, "valid_to")
    return ExchangeRate(
        from_currency=CurrencyCode.parse(require_field(data, "from_currency", path), _join(path, "from_currency")),
        to_currency=CurrencyCode.parse(require_field(data, "to_currency", path), _join(path, "to_currency")),
        rate=require_field(data, "rate", path),
        valid_from=parse_date(require_field(data, "valid_from", path), _join(path, "valid_from")),
        valid_to=parse_date(valid_to, _join(path, "valid_to")) if valid_to is not None else None,
    )


def address_from_dict(payload: Any, path: str = "address") -> Address:
    data = _mapping(payload, path)
    line2 = get_field(data, "line2")
    state = get_field(data, "state")
    return Address(
        line1=_str(get_field(data, "line1", ""), _join(path, "line1")),
        city=_str(get_field(data, "city", ""), _join(path, "city")),
        postal_code=_str(get_field(data, "postal_code", ""), _join(path, "postal_code")),
        country=_str(get_field(data, "country", ""), _join(path, "country")),
        line2=_str(line2, _join(path, "line2")) if line2 is not None else None,
        state=_str(state, _join(path, "state")) if state is not None else None,
    )


def account_from_dict(
    payload: Any,
    path: str = "account",
    default_currency: CurrencyCode | str | None = None,
) -> Account:
    """
    Parse a seller or buyer profile.

    ``name`` is required. ``currency`` falls back to ``default_currency``
    (an invoice's own currency when parsing an embedded snapshot). A blank
    ``taxId`` is treated as absent.
    """
    data = _mapping(payload, path)
    currency = get_field(data, "currency", default_currency)
    if currency is None:
        raise InvalidInputError(_join(path, "currency"))
    tax_id = get_field(data, "tax_id")
    if isinstance(tax_id, str) and not tax_id.strip():
        tax_id = None
    kwargs: dict[str, Any] = {}
    account_id = get_field(data, "id")
    if account_id is not None:
        kwargs["id"] = _str(account_id, _join(path, "id"))
    return Account(
        name=_str(require_field(data, "name", path), _join(path, "name")),
        email=_str(get_field(data, "email", ""), _join(path, "email")),
        address=address_from_dict(get_field(data, "address", {}), _join(path, "address")),
        currency=CurrencyCode.parse(currency, _join(path, "currency")),
        tax_id=_str(tax_id, _join(path, "tax_id")) if tax_id is not None else None,
        **kwargs,
    )


def product_from_dict(payload: Any, path: str = "product") -> Product:
    data = _mapping(payload, path)
    active = get_field(data, "active", True)
    if not isinstance(active, bool):
        raise InvalidInputError(_join(path, "active"), "must be a boolean")
    tax_code = get_field(data, "tax_information_code")
    kwargs: dict[str, Any] = {}
    if get_field(data, "id") is not None:
        kwargs["id"] = _str(get_field(data, "id"), _join(path, "id"))
    return Product(
        name=_str(require_field(data, "name", path), _join(path, "name")),
        code=_str(require_field(data, "code", path), _join(path, "code")),
        default_price=_int(require_field(data, "default_price", path), _join(path, "default_price")),
        active=active,
        tax_information_code=_str(tax_code, _join(path, "tax_information_code")) if tax_code is not None else None,
        **kwargs,
    )


# ---------------------------------------------------------------------------
# Line items and drafts
# ---------------------------------------------------------------------------


def line_item_from_dict(payload: Any, path: str = "line_item") -> LineItemDraft:
    """
    Parse one raw line.

    ``taxData`` is required. ``quantity``, ``unitPrice`` and ``discount``
    are optional; the Calculation Engine applies their defaults.
    """
    data = _mapping(payload, path)
    quantity = get_field(data, "quantity")
    unit_price = get_field(data, "unit_price")
    discount = get_field(data, "discount")
    proration = get_field(data, "proration")
    product_id = get_field(data, "product_id")
    kwargs: dict[str, Any] = {}
    if get_field(data, "id") is not None:
        kwargs["id"] = _str(get_field(data, "id"), _join(path, "id"))
    return LineItemDraft(
        description=_str(get_field(data, "description", ""), _join(path, "description")),
        quantity=_int(quantity, _join(path, "quantity")) if quantity is not None else None,
        unit_price=money_from_dict(unit_price, _join(path, "unit_price")) if unit_price is not None else None,
        tax_data=tax_data_from_dict(require_field(data, "tax_data", path), _join(path, "tax_data")),
        discount=money_from_dict(discount, _join(path, "discount")) if discount is not None else None,
        proration=proration_from_dict(proration, _join(path, "proration")) if proration is not None else None,
        product_id=_str(product_id, _join(path, "product_id")) if product_id is not None else None,
        **kwargs,
    )


def _invoice_type(value: Any, path: str) -> InvoiceType:
    try:
        return InvoiceType(value)
    except ValueError:
        raise InvalidInputError(path, f"unknown invoice type {value!r}") from None


def _line_list(data: Mapping[str, Any], path: str) -> list[Any]:
    items = get_field(data, "line_items", [])
    if not isinstance(items, list):
        raise InvalidInputError(_join(path, "line_items"), "must be a list")
    return items


def invoice_draft_from_dict(payload: Any, path: str = "") -> InvoiceDraft:
    """Parse a partial invoice (metadata plus raw lines) into an InvoiceDraft."""
    data = _mapping(payload, path)
    currency_raw = get_field(data, "currency")
    currency = CurrencyCode.parse(currency_raw, _join(path, "currency")) if currency_raw is not None else None
    lines = _line_list(data, path)
    buyer = get_field(data, "buyer")
    seller = get_field(data, "seller")
    issue_date = get_field(data, "issue_date")
    due_date = get_field(data, "due_date")
    exchange_rate = get_field(data, "exchange_rate")
    notes = get_field(data, "notes")
    return InvoiceDraft(
        line_items=tuple(
            line_item_from_dict(line, f"{_join(path, 'line_items')}[{index}]")
            for index, line in enumerate(lines)
        ),
        currency=currency,
        type=_invoice_type(get_field(data, "type", InvoiceType.SIMPLIFIED), _join(path, "type")),
        issue_date=parse_date(issue_date, _join(path, "issue_date")) if issue_date is not None else None,
        due_date=parse_date(due_date, _join(path, "due_date")) if due_date is not None else None,
        buyer=account_from_dict(buyer, _join(path, "buyer"), currency) if buyer is not None else None,
        seller=account_from_dict(seller, _join(path, "seller"), currency) if seller is not None else None,
        exchange_rate=exchange_rate_from_dict(exchange_rate, _join(path, "exchange_rate"))
        if exchange_rate is not None
        else None,
        notes=_str(notes, _join(path, "notes")) if notes is not None else None,
    )


# ---------------------------------------------------------------------------
# Editing form state
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LineItemFormRow:
    """One editable row, with prices and discount in major units."""

    description: str = ""
    quantity: int | None = None
    unit_price: Decimal = Decimal("0")
    tax_rate: Decimal = Decimal("0")
    tax_type: TaxType = TaxType.EXCLUSIVE
    discount: Decimal = Decimal("0")
    id: str = field(default_factory=new_id)


@dataclass(frozen=True, slots=True)
class InvoiceFormState:
    """Snapshot of an invoice editing form at one edit event."""

    currency: CurrencyCode
    line_items: tuple[LineItemFormRow, ...] = ()
    invoice_type: InvoiceType = InvoiceType.SIMPLIFIED
    issue_date: date | None = None
    due_date: date | None = None
    buyer: Account | None = None
    seller: Account | None = None
    notes: str | None = None


def _decimal(value: Any, path: str) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise InvalidInputError(path, "must be a number")
    try:
        result = Decimal(str(value).strip())
    except ArithmeticError:
        raise InvalidInputError(path, f"is not a number: {value!r}") from None
    if not result.is_finite():
        raise InvalidInputError(path, f"is not a finite number: {value!r}")
    return result


def invoice_form_from_dict(payload: Any) -> InvoiceFormState:
    """
    Parse the raw value of an invoice editing form.

    Row ``taxRate`` and ``taxType`` default to the form's own defaults
    (0 and Exclusive). Blank seller/buyer names make the party absent.
    """
    data = _mapping(payload, "form")
    currency = CurrencyCode.parse(require_field(data, "currency", ""), "currency")

    rows = []
    for index, raw in enumerate(_line_list(data, "")):
        path = f"line_items[{index}]"
        row = _mapping(raw, path)
        tax_type = get_field(row, "tax_type", TaxType.EXCLUSIVE)
        try:
            tax_type = TaxType(tax_type)
        except ValueError:
            raise InvalidInputError(f"{path}.tax_type", f"unknown tax type {tax_type!r}") from None
        quantity = get_field(row, "quantity")
        kwargs: dict[str, Any] = {}
        if get_field(row, "id") is not None:
            kwargs["id"] = _str(get_field(row, "id"), f"{path}.id")
        rows.append(LineItemFormRow(
            description=_str(get_field(row, "description", ""), f"{path}.description"),
            quantity=_int(quantity, f"{path}.quantity") if quantity not in (None, "") else None,
            unit_price=_decimal(get_field(row, "unit_price"), f"{path}.unit_price"),
            tax_rate=_decimal(get_field(row, "tax_rate"), f"{path}.tax_rate"),
            tax_type=tax_type,
            discount=_decimal(get_field(row, "discount"), f"{path}.discount"),
            **kwargs,
        ))

    def party(name: str) -> Account | None:
        raw = get_field(data, name)
        if raw is None or not str(_mapping(raw, name).get("name") or "").strip():
            return None
        return account_from_dict(raw, name, currency)

    issue_date = get_field(data, "issue_date")
    due_date = get_field(data, "due_date")
    notes = get_field(data, "notes")
    return InvoiceFormState(
        currency=currency,
        line_items=tuple(rows),
        invoice_type=_invoice_type(
            get_field(data, "invoice_type", get_field(data, "type", InvoiceType.SIMPLIFIED)), "invoice_type"
        ),
        issue_date=parse_date(issue_date, "issue_date") if issue_date not in (None, "") else None,
        due_date=parse_date(due_date, "due_date") if due_date not in (None, "") else None,
        buyer=party("buyer"),
        seller=party("seller"),
        notes=_str(notes, "notes") if notes is not None else None,
    )


def form_state_to_draft(form: InvoiceFormState) -> InvoiceDraft:
    """Convert major-unit form rows into minor-unit line drafts (x100, half-up)."""
    currency = form.currency
    lines = []
    for index, row in enumerate(form.line_items):
        path = f"line_items[{index}]"
        try:
            tax_data = TaxData(rate=row.tax_rate, type=row.tax_type)
        except InvalidInputError as exc:
            raise InvalidInputError(f"{path}.{exc.field}", exc.reason) from None
        lines.append(LineItemDraft(
            id=row.id,
            description=row.description,
            quantity=row.quantity,
            unit_price=Money(to_minor_units(row.unit_price, currency, f"{path}.unit_price"), currency),
            tax_data=tax_data,
            discount=Money(to_minor_units(row.discount, currency, f"{path}.discount"), currency),
        ))
    return InvoiceDraft(
        line_items=tuple(lines),
        currency=currency,
        type=form.invoice_type,
        issue_date=form.issue_date,
        due_date=form.due_date,
        buyer=form.buyer,
        seller=form.seller,
        notes=form.notes,
    )
