"""
Values -- Immutable, self-validating monetary value objects.

Responsibility:
    Provides Money (integer minor units paired with a currency), the
    pass-through ExchangeRate, and the two rounding primitives every
    calculation goes through: ``round_half_up`` and ``to_minor_units``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every other domain module and by billing_engines.

Invariants enforced:
    - Money.amount is always an ``int`` in the currency's smallest unit.
      Floats are rejected at construction; there is no major-unit Money.
    - Arithmetic between Money values requires the same currency;
      mixing raises CurrencyMismatchError (never auto-converted).
    - Rounding to minor units is half-up (ties away from zero) and is
      applied exactly once by the caller, never per intermediate step.

Failure modes:
    - TypeError when amount is not an int (bool and float included).
    - CurrencyMismatchError on mixed-currency arithmetic or comparison.
    - InvalidInputError on unparseable major-unit input.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from billing_kernel.domain.currency import CurrencyCode, CurrencyRegistry
from billing_kernel.exceptions import CurrencyMismatchError, InvalidInputError

_ONE = Decimal("1")


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, ties away from zero."""
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_minor_units(
    major: Decimal | str | int | float | None,
    currency: CurrencyCode | str = CurrencyCode.USD,
    field: str = "amount",
) -> int:
    """
    Convert a major-unit amount (e.g. ``"10.50"``) to integer minor units.

    Floats are routed through ``str()`` so ``10.1`` converts as ``"10.1"``
    rather than its binary expansion. ``None`` and ``""`` convert to 0.
    """
    if major is None or major == "":
        return 0
    if isinstance(major, bool):
        raise InvalidInputError(field, "must be a number")
    try:
        value = major if isinstance(major, Decimal) else Decimal(str(major).strip())
    except (InvalidOperation, ValueError):
        raise InvalidInputError(field, f"is not a number: {major!r}") from None
    if not value.is_finite():
        raise InvalidInputError(field, f"is not a finite number: {major!r}")
    scale = CurrencyRegistry.get_info(currency).minor_units_per_major
    return round_half_up(value * scale)


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount value object.

    Contract:
        Pairs an integer minor-unit amount with its CurrencyCode. The two are
        never separated.

    Guarantees:
        - Immutable and hashable.
        - amount is an int; negative values are allowed for adjustment rows.
        - Arithmetic enforces the same-currency constraint.

    Non-goals:
        - Does NOT convert between currencies.
    """

    amount: int
    currency: CurrencyCode

    def __post_init__(self) -> None:
        if isinstance(self.amount, bool) or not isinstance(self.amount, int):
            raise TypeError(
                f"Money amount must be an int in minor units, got {type(self.amount).__name__}"
            )
        if not isinstance(self.currency, CurrencyCode):
            object.__setattr__(self, "currency", CurrencyCode.parse(self.currency))

    @classmethod
    def of(cls, amount: int, currency: CurrencyCode | str) -> Money:
        return cls(amount=amount, currency=CurrencyCode.parse(currency))

    @classmethod
    def zero(cls, currency: CurrencyCode | str) -> Money:
        """Create a zero amount in the given currency."""
        return cls(amount=0, currency=CurrencyCode.parse(currency))

    @classmethod
    def sum(cls, values: Iterable[Money], currency: CurrencyCode | str) -> Money:
        """Integer sum of ``values``; every value must be in ``currency``."""
        total = cls.zero(currency)
        for value in values:
            total = total + value
        return total

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def _check_currency(self, other: Money) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.value, other.currency.value)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.amount <= other.amount

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.value}"

    def __repr__(self) -> str:
        return f"Money({self.amount!r}, {self.currency.value!r})"


@dataclass(frozen=True, slots=True)
class ExchangeRate:
    """
    Exchange rate attached to an invoice issued outside the base currency.

    Carried through calculation and persistence unchanged. Nothing in the
    kernel multiplies by ``rate``.
    """

    from_currency: CurrencyCode
    to_currency: CurrencyCode
    rate: Decimal
    valid_from: date
    valid_to: date | None = None

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "from_currency", CurrencyCode.parse(self.from_currency, "exchange_rate.from_currency")
        )
        object.__setattr__(
            self, "to_currency", CurrencyCode.parse(self.to_currency, "exchange_rate.to_currency")
        )
        if not isinstance(self.rate, Decimal):
            try:
                object.__setattr__(self, "rate", Decimal(str(self.rate)))
            except (InvalidOperation, ValueError):
                raise InvalidInputError("exchange_rate.rate", f"is not a number: {self.rate!r}") from None
        if not self.rate.is_finite() or self.rate <= 0:
            raise InvalidInputError("exchange_rate.rate", "must be positive")
        if self.valid_to is not None and self.valid_to < self.valid_from:
            raise InvalidInputError("exchange_rate.valid_to", "is before valid_from")
