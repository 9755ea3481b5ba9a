"""
Serialization -- JSON-ready dicts for persisted records.

Responsibility:
    Converts committed invoices, accounts and products to and from plain
    dicts in the camelCase wire format, so that each collection can be
    written to the key-value store as one self-contained record set.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Money is always ``{"amount": int, "currency": code}``.
    - Dates are ISO-8601 strings; Decimals (tax rates, exchange rates) are
      strings so no precision is lost through JSON.
    - Loading a stored invoice restores its computed totals verbatim: a
      committed record is never recomputed on the way back in.
"""

from __future__ import annotations

from typing import Any

from billing_kernel.domain.currency import CurrencyCode
from billing_kernel.domain.dtos import (
    account_from_dict,
    exchange_rate_from_dict,
    get_field,
    line_item_from_dict,
    money_from_dict,
    parse_date,
    product_from_dict,
    require_field,
)
from billing_kernel.domain.invoice import (
    Account,
    Address,
    Invoice,
    InvoiceStatus,
    InvoiceType,
    LineItem,
    Product,
    ProrationDetails,
    TaxData,
)
from billing_kernel.domain.values import ExchangeRate, Money
from billing_kernel.exceptions import InvalidInputError


def money_to_dict(money: Money) -> dict[str, Any]:
    return {"amount": money.amount, "currency": money.currency.value}


def _tax_data_to_dict(tax_data: TaxData) -> dict[str, Any]:
    return {"rate": str(tax_data.rate), "type": tax_data.type.value}


def _proration_to_dict(proration: ProrationDetails) -> dict[str, Any]:
    return {
        "startDate": proration.start_date.isoformat(),
        "endDate": proration.end_date.isoformat(),
        "totalDaysInPeriod": proration.total_days_in_period,
        "daysOfUse": proration.days_of_use,
        "factor": proration.factor,
    }


def _address_to_dict(address: Address) -> dict[str, Any]:
    data: dict[str, Any] = {
        "line1": address.line1,
        "city": address.city,
        "postalCode": address.postal_code,
        "country": address.country,
    }
    if address.line2 is not None:
        data["line2"] = address.line2
    if address.state is not None:
        data["state"] = address.state
    return data


def account_to_dict(account: Account) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": account.id,
        "name": account.name,
        "email": account.email,
        "address": _address_to_dict(account.address),
        "currency": account.currency.value,
    }
    if account.tax_id is not None:
        data["taxId"] = account.tax_id
    return data


def product_to_dict(product: Product) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": product.id,
        "name": product.name,
        "code": product.code,
        "defaultPrice": product.default_price,
        "active": product.active,
    }
    if product.tax_information_code is not None:
        data["taxInformationCode"] = product.tax_information_code
    return data


def _exchange_rate_to_dict(rate: ExchangeRate) -> dict[str, Any]:
    data: dict[str, Any] = {
        "fromCurrency": rate.from_currency.value,
        "toCurrency": rate.to_currency.value,
        "rate": str(rate.rate),
        "validFrom": rate.valid_from.isoformat(),
    }
    if rate.valid_to is not None:
        data["validTo"] = rate.valid_to.isoformat()
    return data


def line_item_to_dict(item: LineItem) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": item.id,
        "productId": item.product_id,
        "description": item.description,
        "quantity": item.quantity,
        "unitPrice": money_to_dict(item.unit_price),
        "taxData": _tax_data_to_dict(item.tax_data),
        "subtotal": money_to_dict(item.subtotal),
        "taxAmount": money_to_dict(item.tax_amount),
        "total": money_to_dict(item.total),
    }
    if item.discount is not None:
        data["discount"] = money_to_dict(item.discount)
    if item.proration is not None:
        data["proration"] = _proration_to_dict(item.proration)
    return data


def invoice_to_dict(invoice: Invoice) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": invoice.id,
        "invoiceNumber": invoice.invoice_number,
        "issueDate": invoice.issue_date.isoformat() if invoice.issue_date else None,
        "dueDate": invoice.due_date.isoformat() if invoice.due_date else None,
        "type": invoice.type.value,
        "status": invoice.status.value if invoice.status else None,
        "seller": account_to_dict(invoice.seller) if invoice.seller else None,
        "buyer": account_to_dict(invoice.buyer) if invoice.buyer else None,
        "lineItems": [line_item_to_dict(item) for item in invoice.line_items],
        "subtotal": money_to_dict(invoice.subtotal),
        "totalDiscount": money_to_dict(invoice.total_discount),
        "totalTax": money_to_dict(invoice.total_tax),
        "grandTotal": money_to_dict(invoice.grand_total),
        "currency": invoice.currency.value,
        "idempotencyKey": invoice.idempotency_key,
    }
    for key, value in (
        ("exchangeRate", _exchange_rate_to_dict(invoice.exchange_rate) if invoice.exchange_rate else None),
        ("notes", invoice.notes),
        ("irn", invoice.irn),
        ("qrCodeData", invoice.qr_code_data),
    ):
        if value is not None:
            data[key] = value
    return data


def line_item_from_stored(data: dict[str, Any], path: str) -> LineItem:
    """Restore a costed line including its stored computed amounts."""
    draft = line_item_from_dict(data, path)
    quantity = draft.quantity if draft.quantity is not None else 0
    if draft.unit_price is None:
        raise InvalidInputError(f"{path}.unit_price")
    return LineItem(
        id=draft.id,
        product_id=draft.product_id,
        description=draft.description,
        quantity=quantity,
        unit_price=draft.unit_price,
        tax_data=draft.tax_data,
        discount=draft.discount,
        proration=draft.proration,
        subtotal=money_from_dict(require_field(data, "subtotal", path), f"{path}.subtotal"),
        tax_amount=money_from_dict(require_field(data, "tax_amount", path), f"{path}.tax_amount"),
        total=money_from_dict(require_field(data, "total", path), f"{path}.total"),
    )


def invoice_from_dict(data: dict[str, Any], path: str = "invoice") -> Invoice:
    currency = CurrencyCode.parse(require_field(data, "currency", path), f"{path}.currency")
    status = get_field(data, "status")
    seller = get_field(data, "seller")
    buyer = get_field(data, "buyer")
    issue_date = get_field(data, "issue_date")
    due_date = get_field(data, "due_date")
    exchange_rate = get_field(data, "exchange_rate")
    return Invoice(
        line_items=tuple(
            line_item_from_stored(item, f"{path}.lineItems[{index}]")
            for index, item in enumerate(get_field(data, "line_items", []))
        ),
        currency=currency,
        subtotal=money_from_dict(require_field(data, "subtotal", path), f"{path}.subtotal"),
        total_discount=money_from_dict(require_field(data, "total_discount", path), f"{path}.totalDiscount"),
        total_tax=money_from_dict(require_field(data, "total_tax", path), f"{path}.totalTax"),
        grand_total=money_from_dict(require_field(data, "grand_total", path), f"{path}.grandTotal"),
        type=InvoiceType(get_field(data, "type", InvoiceType.SIMPLIFIED)),
        issue_date=parse_date(issue_date, f"{path}.issueDate") if issue_date else None,
        due_date=parse_date(due_date, f"{path}.dueDate") if due_date else None,
        seller=account_from_dict(seller, f"{path}.seller", currency) if seller else None,
        buyer=account_from_dict(buyer, f"{path}.buyer", currency) if buyer else None,
        exchange_rate=exchange_rate_from_dict(exchange_rate, f"{path}.exchangeRate") if exchange_rate else None,
        notes=get_field(data, "notes"),
        irn=get_field(data, "irn"),
        qr_code_data=get_field(data, "qr_code_data"),
        id=get_field(data, "id"),
        invoice_number=get_field(data, "invoice_number"),
        status=InvoiceStatus(status) if status else None,
        idempotency_key=get_field(data, "idempotency_key"),
    )


__all__ = [
    "account_from_dict",
    "account_to_dict",
    "invoice_from_dict",
    "invoice_to_dict",
    "line_item_to_dict",
    "money_to_dict",
    "product_from_dict",
    "product_to_dict",
]
