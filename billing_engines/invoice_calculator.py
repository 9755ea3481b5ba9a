"""
Invoice Calculation Engine.

Pure functions with deterministic behavior. No I/O.

Turns raw line items into fully-costed LineItems and aggregates them into
an Invoice. Identity, invoice number and status are left unset; those are
assigned by the Ledger when the invoice is committed.

Per line:
    base      = quantity x unit_price           (scaled by proration, rounded once)
    taxable   = base - discount
    tax       = compute_tax(taxable, tax_data)  (rounded once)
    subtotal  = base
    total     = taxable + tax   for Exclusive tax
              = base - discount for Inclusive tax (tax already inside)

Per invoice, every total is the integer sum of the per-line values; the
discount total only counts discounts that were actually given.

Usage:
    from billing_engines.invoice_calculator import calculate_invoice
    from billing_kernel.domain.invoice import InvoiceDraft, LineItemDraft, TaxData, TaxType
    from billing_kernel.domain.values import Money

    draft = InvoiceDraft(
        currency="USD",
        line_items=(
            LineItemDraft(
                description="Consulting",
                quantity=2,
                unit_price=Money.of(1000, "USD"),
                tax_data=TaxData(rate=15, type=TaxType.EXCLUSIVE),
                discount=Money.of(200, "USD"),
            ),
        ),
    )
    invoice = calculate_invoice(draft)
    print(invoice.grand_total)  # 2070 USD
"""

from __future__ import annotations

from billing_engines.proration import prorate_amount
from billing_engines.tax import compute_tax
from billing_kernel.domain.currency import CurrencyCode
from billing_kernel.domain.dtos import InvoiceFormState, form_state_to_draft
from billing_kernel.domain.invoice import (
    Invoice,
    InvoiceDraft,
    LineItem,
    LineItemDraft,
)
from billing_kernel.domain.values import Money
from billing_kernel.exceptions import CurrencyMismatchError, InvalidInputError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.invoice_calculator")

DEFAULT_CURRENCY = CurrencyCode.USD


def calculate_line_item(
    item: LineItemDraft | LineItem,
    currency: CurrencyCode | str | None = None,
) -> LineItem:
    """
    Cost a single line.

    Args:
        item: The line as supplied. An already-costed LineItem is accepted;
            its computed fields are discarded and recomputed.
        currency: Currency to use when the line has no unit price.

    Returns:
        A LineItem whose money fields all share the unit price's currency.

    Raises:
        InvalidInputError: tax_data is missing, quantity is not an integer,
            or there is neither a unit price nor a fallback currency.
        CurrencyMismatchError: the discount is in another currency.
    """
    if isinstance(item, LineItem):
        item = item.to_draft()

    if item.tax_data is None:
        raise InvalidInputError("tax_data")

    quantity = item.quantity if item.quantity is not None else 0
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidInputError("quantity", f"must be an integer, got {quantity!r}")

    if item.unit_price is not None:
        unit_price = item.unit_price
    elif currency is not None:
        unit_price = Money.zero(currency)
    else:
        raise InvalidInputError("unit_price.currency", "is required when unit_price is absent")
    line_currency = unit_price.currency

    base_amount = quantity * unit_price.amount
    if item.proration is not None:
        base_amount = prorate_amount(base_amount, item.proration)

    discount_amount = 0
    if item.discount is not None:
        if item.discount.currency != line_currency:
            raise CurrencyMismatchError(line_currency.value, item.discount.currency.value)
        discount_amount = item.discount.amount

    taxable_amount = base_amount - discount_amount
    tax = compute_tax(taxable_amount, item.tax_data)

    line = LineItem(
        id=item.id,
        product_id=item.product_id,
        description=item.description,
        quantity=quantity,
        unit_price=unit_price,
        tax_data=item.tax_data,
        discount=item.discount,
        proration=item.proration,
        subtotal=Money(base_amount, line_currency),
        tax_amount=Money(tax.tax, line_currency),
        total=Money(tax.gross, line_currency),
    )
    logger.debug("line_item_calculated", extra={
        "line_item_id": line.id,
        "subtotal": line.subtotal,
        "tax_amount": line.tax_amount,
        "total": line.total,
        "prorated": item.proration is not None,
    })
    return line


def calculate_invoice(draft: InvoiceDraft | Invoice) -> Invoice:
    """
    Cost every line and aggregate the invoice totals.

    The result overlays computed totals onto the caller's metadata. It
    never carries an id, invoice number, status or idempotency key, even
    when recomputing a committed Invoice.

    Raises:
        CurrencyMismatchError: a line is priced in another currency than
            the invoice.
    """
    if isinstance(draft, Invoice):
        draft = draft.to_draft()

    currency = CurrencyCode.parse(draft.currency) if draft.currency is not None else DEFAULT_CURRENCY

    items: list[LineItem] = []
    for line in draft.line_items:
        costed = calculate_line_item(line, currency)
        if costed.unit_price.currency != currency:
            raise CurrencyMismatchError(currency.value, costed.unit_price.currency.value)
        items.append(costed)

    invoice = Invoice(
        line_items=tuple(items),
        currency=currency,
        subtotal=Money.sum((i.subtotal for i in items), currency),
        total_tax=Money.sum((i.tax_amount for i in items), currency),
        total_discount=Money.sum((i.discount for i in items if i.discount is not None), currency),
        grand_total=Money.sum((i.total for i in items), currency),
        type=draft.type,
        issue_date=draft.issue_date,
        due_date=draft.due_date,
        seller=draft.seller,
        buyer=draft.buyer,
        exchange_rate=draft.exchange_rate,
        notes=draft.notes,
    )
    logger.debug("invoice_calculated", extra={
        "line_count": len(items),
        "subtotal": invoice.subtotal,
        "total_discount": invoice.total_discount,
        "total_tax": invoice.total_tax,
        "grand_total": invoice.grand_total,
    })
    return invoice


def recalculate(form_state: InvoiceFormState) -> Invoice:
    """
    Recompute the invoice for the current state of an editing form.

    Call on every edit event. Form rows carry major-unit decimals; they are
    converted to minor units before costing.
    """
    return calculate_invoice(form_state_to_draft(form_state))
