"""
ISO 4217 currencies the agency invoices and pays out in.

Only the minor-unit exponent matters to the kernel: money is stored as an
integer count of minor units, so the exponent fixes how major amounts
entered by staff are scaled and how totals are printed.
"""

from dataclasses import dataclass
from typing import ClassVar


@dataclass(frozen=True)
class CurrencyInfo:
    code: str
    decimal_places: int
    name: str

    @property
    def minor_per_major(self) -> int:
        return 10 ** self.decimal_places


# (code, exponent, name). Study destinations plus the agency's home currency.
_TABLE = (
    ("ILS", 2, "Israeli New Shekel"),
    ("EUR", 2, "Euro"),
    ("USD", 2, "US Dollar"),
    ("GBP", 2, "Pound Sterling"),
    ("CHF", 2, "Swiss Franc"),
    ("CAD", 2, "Canadian Dollar"),
    ("AUD", 2, "Australian Dollar"),
    ("PLN", 2, "Polish Zloty"),
    ("CZK", 2, "Czech Koruna"),
    ("HUF", 2, "Hungarian Forint"),
    ("RON", 2, "Romanian Leu"),
    ("GEL", 2, "Georgian Lari"),
    ("TRY", 2, "Turkish Lira"),
    ("AED", 2, "UAE Dirham"),
    ("JOD", 3, "Jordanian Dinar"),
    ("KWD", 3, "Kuwaiti Dinar"),
    ("JPY", 0, "Japanese Yen"),
    ("KRW", 0, "South Korean Won"),
)


def _normalize(code: object) -> str | None:
    if not isinstance(code, str) or not code.strip():
        return None
    return code.strip().upper()


class CurrencyRegistry:
    """Lookup of supported currencies by (case-insensitive) code."""

    _by_code: ClassVar[dict[str, CurrencyInfo]] = {
        code: CurrencyInfo(code, places, name) for code, places, name in _TABLE
    }

    @classmethod
    def get_info(cls, code: str) -> CurrencyInfo | None:
        normalized = _normalize(code)
        return cls._by_code.get(normalized) if normalized else None

    @classmethod
    def is_valid(cls, code: str) -> bool:
        return cls.get_info(code) is not None

    @classmethod
    def get_decimal_places(cls, code: str) -> int:
        info = cls.get_info(code)
        if info is None:
            raise ValueError(f"Unsupported currency code: {code!r}")
        return info.decimal_places

    @classmethod
    def all_codes(cls) -> frozenset[str]:
        return frozenset(cls._by_code)
