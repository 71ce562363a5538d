"""Commission terms attached to catalog services and snapshots."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from agency_kernel.domain.values import Money


class CommissionType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    NONE = "none"


@dataclass(frozen=True)
class CommissionTerms:
    """One commission track (handler or referral agent).

    ``value`` is a percentage of the sale price for ``PERCENTAGE`` and a
    major-unit amount in the sale currency for ``FIXED``.
    """

    type: CommissionType = CommissionType.NONE
    value: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if not isinstance(self.type, CommissionType):
            object.__setattr__(self, "type", CommissionType(self.type))
        if not isinstance(self.value, Decimal):
            object.__setattr__(self, "value", Decimal(str(self.value)))
        if self.value < 0:
            raise ValueError(f"Commission value cannot be negative: {self.value}")

    def compute(self, sale_price: Money) -> Money:
        if self.type == CommissionType.PERCENTAGE:
            return sale_price.percentage(self.value)
        if self.type == CommissionType.FIXED:
            return Money.of(self.value, sale_price.currency)
        return Money.zero(sale_price.currency)
