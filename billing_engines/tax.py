"""
Tax Engine - compose a percentage tax rate with a taxable amount.

Pure functions with no I/O. Amounts are integer minor units; the rate is a
percentage (15 means 15%).

Usage:
    from decimal import Decimal
    from billing_engines.tax import compute_tax
    from billing_kernel.domain.invoice import TaxData, TaxType

    result = compute_tax(1800, TaxData(Decimal("15"), TaxType.EXCLUSIVE))
    print(result.tax)    # 270
    print(result.gross)  # 2070

    result = compute_tax(1150, TaxData(Decimal("15"), TaxType.INCLUSIVE))
    print(result.tax)    # 150
    print(result.net)    # 1000
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, localcontext

from billing_kernel.domain.invoice import TaxData, TaxType
from billing_kernel.domain.values import round_half_up
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

_HUNDRED = Decimal("100")

# Enough digits that no intermediate quotient is truncated before the
# single final rounding.
_PRECISION = 60


@dataclass(frozen=True)
class TaxComputation:
    """
    Result of composing a rate with a taxable amount.

    For Exclusive tax ``net`` is the taxable amount and ``gross`` adds the
    tax on top; for Inclusive tax ``gross`` is the taxable amount and
    ``net`` has the tax taken out. In both cases ``net + tax == gross``.
    """

    net: int
    tax: int
    gross: int
    tax_data: TaxData

    @property
    def is_inclusive(self) -> bool:
        return self.tax_data.type == TaxType.INCLUSIVE


def compute_tax(taxable_amount: int, tax_data: TaxData) -> TaxComputation:
    """
    Compute the tax on ``taxable_amount``.

    Exclusive: tax = taxable x rate / 100.
    Inclusive: net = taxable / (1 + rate/100); tax = taxable - net.

    The tax is rounded to an integer exactly once, half-up, after the
    division. A zero rate goes through the same branch as any other rate.
    """
    rate = tax_data.rate
    amount = Decimal(taxable_amount)

    with localcontext() as ctx:
        ctx.prec = _PRECISION
        if tax_data.type == TaxType.EXCLUSIVE:
            raw_tax = amount * rate / _HUNDRED
        else:
            net = amount / (1 + rate / _HUNDRED)
            raw_tax = amount - net
        tax = round_half_up(raw_tax)

    if tax_data.type == TaxType.EXCLUSIVE:
        result = TaxComputation(net=taxable_amount, tax=tax, gross=taxable_amount + tax, tax_data=tax_data)
    else:
        result = TaxComputation(net=taxable_amount - tax, tax=tax, gross=taxable_amount, tax_data=tax_data)

    logger.debug("tax_computed", extra={
        "taxable_amount": taxable_amount,
        "rate": str(rate),
        "tax_type": tax_data.type.value,
        "tax": tax,
    })
    return result
