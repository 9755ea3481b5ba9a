"""Display formatting for monetary amounts handed to document renderers."""

from decimal import Decimal

from billing_kernel.domain.currency import CurrencyCode, CurrencyRegistry
from billing_kernel.domain.values import Money


def format_money(amount: int, currency: CurrencyCode | str) -> str:
    """
    Render minor units as ``"{code} {major with separators}"``.

    >>> format_money(100000000, "USD")
    'USD 1,000,000.00'
    >>> format_money(-1050, "EUR")
    'EUR -10.50'
    """
    info = CurrencyRegistry.get_info(currency)
    major = Decimal(amount).scaleb(-info.decimal_places)
    return f"{info.code.value} {major:,.{info.decimal_places}f}"


def format_money_value(money: Money) -> str:
    return format_money(money.amount, money.currency)
