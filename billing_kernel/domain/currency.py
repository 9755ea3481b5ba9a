"""Currency -- the closed set of invoice currencies and their minor-unit scale."""

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar

from billing_kernel.exceptions import InvalidInputError


class CurrencyCode(str, Enum):
    """ISO 4217 codes an invoice may be issued in."""

    USD = "USD"
    EUR = "EUR"
    INR = "INR"
    GBP = "GBP"
    AED = "AED"
    SAR = "SAR"

    @classmethod
    def parse(cls, value: "CurrencyCode | str", field: str = "currency") -> "CurrencyCode":
        """Coerce a code string to a CurrencyCode, naming ``field`` on failure."""
        if isinstance(value, CurrencyCode):
            return value
        if not isinstance(value, str):
            raise InvalidInputError(field, f"must be a currency code, got {value!r}")
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise InvalidInputError(field, f"unsupported currency {value!r}") from None


@dataclass(frozen=True)
class CurrencyInfo:
    """Information about a single supported currency."""

    code: CurrencyCode
    decimal_places: int
    name: str

    @property
    def minor_units_per_major(self) -> int:
        return 10**self.decimal_places


class CurrencyRegistry:
    """Registry of supported currencies with their decimal places."""

    _CURRENCIES: ClassVar[dict[CurrencyCode, CurrencyInfo]] = {
        CurrencyCode.USD: CurrencyInfo(CurrencyCode.USD, 2, "US Dollar"),
        CurrencyCode.EUR: CurrencyInfo(CurrencyCode.EUR, 2, "Euro"),
        CurrencyCode.INR: CurrencyInfo(CurrencyCode.INR, 2, "Indian Rupee"),
        CurrencyCode.GBP: CurrencyInfo(CurrencyCode.GBP, 2, "Pound Sterling"),
        CurrencyCode.AED: CurrencyInfo(CurrencyCode.AED, 2, "UAE Dirham"),
        CurrencyCode.SAR: CurrencyInfo(CurrencyCode.SAR, 2, "Saudi Riyal"),
    }

    @classmethod
    def get_info(cls, code: CurrencyCode | str) -> CurrencyInfo:
        return cls._CURRENCIES[CurrencyCode.parse(code)]

    @classmethod
    def get_decimal_places(cls, code: CurrencyCode | str) -> int:
        return cls.get_info(code).decimal_places

    @classmethod
    def all_codes(cls) -> frozenset[CurrencyCode]:
        return frozenset(cls._CURRENCIES)
