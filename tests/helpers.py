"""Builders shared by the billing kernel tests."""

from decimal import Decimal

from billing_kernel.domain.invoice import Address, LineItemDraft, TaxData, TaxType
from billing_kernel.domain.values import Money


def make_address() -> Address:
    return Address(line1="1 Market St", city="Springfield", postal_code="12345", country="US")


def make_line(
    amount: int,
    quantity: int = 1,
    rate: str = "0",
    tax_type: TaxType = TaxType.EXCLUSIVE,
    discount: int | None = None,
    currency: str = "USD",
    **kwargs,
) -> LineItemDraft:
    return LineItemDraft(
        description=kwargs.pop("description", "Service"),
        quantity=quantity,
        unit_price=Money.of(amount, currency),
        tax_data=TaxData(rate=Decimal(rate), type=tax_type),
        discount=Money.of(discount, currency) if discount is not None else None,
        **kwargs,
    )
