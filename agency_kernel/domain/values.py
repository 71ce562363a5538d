"""
Values -- Immutable, self-validating money value objects.

Responsibility:
    Provides ``Currency``, ``Money`` and ``Balance``.  Every amount in the
    kernel is an integer count of currency minor units paired with its
    currency; floats never appear.  Conversion from decimal major units
    happens once, at the I/O boundary, through ``Money.of``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - ``Money`` is never negative.  Case money fields, snapshot prices,
      commissions and rewards are all non-negative amounts.
    - ``Balance`` is the signed counterpart used for derived figures such
      as net profit, which may legitimately go below zero.
    - Arithmetic never mixes currencies.

Failure modes:
    - InvalidCurrencyError on an unknown currency code.
    - NegativeAmountError when a Money would drop below zero.
    - CurrencyMismatchError on cross-currency arithmetic or comparison.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from agency_kernel.domain.currency import CurrencyRegistry
from agency_kernel.exceptions import (
    CurrencyMismatchError,
    InvalidCurrencyError,
    NegativeAmountError,
)


@dataclass(frozen=True, slots=True)
class Currency:
    """ISO 4217 currency code, normalized to upper case on construction."""

    code: str

    def __post_init__(self) -> None:
        normalized = self.code.upper().strip() if isinstance(self.code, str) else ""
        if not CurrencyRegistry.is_valid(normalized):
            raise InvalidCurrencyError(str(self.code))
        object.__setattr__(self, "code", normalized)

    @property
    def decimal_places(self) -> int:
        return CurrencyRegistry.get_decimal_places(self.code)

    @property
    def quantum(self) -> Decimal:
        """Smallest representable major-unit step, e.g. Decimal('0.01')."""
        return Decimal(1).scaleb(-self.decimal_places)

    def __str__(self) -> str:
        return self.code

    def __repr__(self) -> str:
        return f"Currency({self.code!r})"


def _coerce_currency(currency: str | Currency) -> Currency:
    if isinstance(currency, Currency):
        return currency
    if isinstance(currency, str):
        return Currency(currency)
    raise TypeError(f"currency must be Currency or str, got {type(currency)}")


def _to_minor(amount: Decimal | str | int, currency: Currency) -> int:
    if isinstance(amount, float):
        raise TypeError("float amounts are not accepted; pass Decimal or str")
    try:
        value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {amount!r}") from exc
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    quantized = value.quantize(currency.quantum, rounding=ROUND_HALF_UP)
    return int(quantized.scaleb(currency.decimal_places))


@dataclass(frozen=True, slots=True)
class Money:
    """
    Non-negative monetary amount in integer minor units.

    Guarantees:
        - ``minor_units`` is an ``int`` >= 0.
        - ``currency`` is a valid ``Currency``.
        - Addition and subtraction require the same currency; subtraction
          that would go below zero raises instead of wrapping.
    """

    minor_units: int
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", _coerce_currency(self.currency))
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError(
                f"minor_units must be int, got {type(self.minor_units).__name__}"
            )
        if self.minor_units < 0:
            raise NegativeAmountError(
                str(Decimal(self.minor_units).scaleb(-self.currency.decimal_places)),
                self.currency.code,
            )

    @classmethod
    def of(cls, amount: Decimal | str | int, currency: str | Currency) -> Money:
        """
        Build Money from a major-unit amount, rounding half-up to the
        currency's minor unit.

        >>> Money.of("100.005", "EUR").minor_units
        10001
        """
        cur = _coerce_currency(currency)
        return cls(_to_minor(amount, cur), cur)

    @classmethod
    def zero(cls, currency: str | Currency) -> Money:
        return cls(0, _coerce_currency(currency))

    @property
    def amount(self) -> Decimal:
        """Major-unit Decimal view, for display and export only."""
        return Decimal(self.minor_units).scaleb(-self.currency.decimal_places)

    @property
    def is_zero(self) -> bool:
        return self.minor_units == 0

    def _check_currency(self, other: Money | Balance) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def percentage(self, rate: Decimal | str | int) -> Money:
        """``self * rate / 100`` rounded half-up to the minor unit."""
        if isinstance(rate, float):
            raise TypeError("float rates are not accepted; pass Decimal or str")
        pct = rate if isinstance(rate, Decimal) else Decimal(str(rate))
        raw = Decimal(self.minor_units) * pct / Decimal(100)
        return Money(int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP)), self.currency)

    def to_balance(self) -> Balance:
        return Balance(self.minor_units, self.currency)

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.minor_units + other.minor_units, self.currency)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.minor_units - other.minor_units, self.currency)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units < other.minor_units

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units <= other.minor_units

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units > other.minor_units

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return self.minor_units >= other.minor_units

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Money({self.amount}, {self.currency.code!r})"


@dataclass(frozen=True, slots=True)
class Balance:
    """Signed monetary figure in integer minor units (e.g. net profit)."""

    minor_units: int
    currency: Currency

    def __post_init__(self) -> None:
        object.__setattr__(self, "currency", _coerce_currency(self.currency))
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError(
                f"minor_units must be int, got {type(self.minor_units).__name__}"
            )

    @classmethod
    def zero(cls, currency: str | Currency) -> Balance:
        return cls(0, _coerce_currency(currency))

    @property
    def amount(self) -> Decimal:
        return Decimal(self.minor_units).scaleb(-self.currency.decimal_places)

    @property
    def is_negative(self) -> bool:
        return self.minor_units < 0

    def _check_currency(self, other: Money | Balance) -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(self.currency.code, other.currency.code)

    def __add__(self, other: Money | Balance) -> Balance:
        if not isinstance(other, (Money, Balance)):
            return NotImplemented
        self._check_currency(other)
        return Balance(self.minor_units + other.minor_units, self.currency)

    def __sub__(self, other: Money | Balance) -> Balance:
        if not isinstance(other, (Money, Balance)):
            return NotImplemented
        self._check_currency(other)
        return Balance(self.minor_units - other.minor_units, self.currency)

    def __neg__(self) -> Balance:
        return Balance(-self.minor_units, self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.code}"

    def __repr__(self) -> str:
        return f"Balance({self.amount}, {self.currency.code!r})"
