"""
Ledger calculator (``agency_kernel.domain.ledger``).

Responsibility
--------------
Derives net profit and reporting transaction rows from a case's money
fields.  Transaction rows are synthesized on demand and never stored.

Architecture position
---------------------
**Kernel domain layer** -- pure functions over frozen value objects.
The ledger selector loads ``CaseFinancials`` from storage and delegates
every figure it reports to this module.

Invariants enforced
-------------------
* ``net_profit`` is the single profit formula:
  ``service_fee + school_commission - influencer_commission
  - lawyer_commission - referral_discount - translation_fee``.
* For every case, ``sum(in rows) - sum(out rows) == net_profit(case)``
  exactly.  All arithmetic is integer minor units.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from agency_kernel.domain.values import Balance, Currency, Money
from agency_kernel.exceptions import CurrencyMismatchError


class Direction(str, Enum):
    IN = "in"
    OUT = "out"


class TransactionType(str, Enum):
    SERVICE_FEE = "service_fee"
    SCHOOL_COMMISSION = "school_commission"
    INFLUENCER_PAYOUT = "influencer_payout"
    TEAM_MEMBER_COMM = "team_member_comm"
    REFERRAL_CASHBACK = "referral_cashback"
    TRANSLATION_FEE = "translation_fee"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


# (CaseFinancials field, reporting type, direction), in report order.
MONEY_FIELDS: tuple[tuple[str, TransactionType, Direction], ...] = (
    ("service_fee", TransactionType.SERVICE_FEE, Direction.IN),
    ("school_commission", TransactionType.SCHOOL_COMMISSION, Direction.IN),
    ("influencer_commission", TransactionType.INFLUENCER_PAYOUT, Direction.OUT),
    ("lawyer_commission", TransactionType.TEAM_MEMBER_COMM, Direction.OUT),
    ("referral_discount", TransactionType.REFERRAL_CASHBACK, Direction.OUT),
    ("translation_fee", TransactionType.TRANSLATION_FEE, Direction.OUT),
)


@dataclass(frozen=True)
class CaseFinancials:
    """The six money fields of one case, all in the case currency."""

    case_id: UUID
    currency: Currency
    service_fee: Money
    influencer_commission: Money
    lawyer_commission: Money
    referral_discount: Money
    school_commission: Money
    translation_fee: Money
    paid_at: datetime | None = None

    def __post_init__(self) -> None:
        if isinstance(self.currency, str):
            object.__setattr__(self, "currency", Currency(self.currency))
        for name, _, _ in MONEY_FIELDS:
            value: Money = getattr(self, name)
            if value.currency != self.currency:
                raise CurrencyMismatchError(self.currency.code, value.currency.code)

    @classmethod
    def zero(cls, case_id: UUID, currency: str | Currency) -> CaseFinancials:
        cur = currency if isinstance(currency, Currency) else Currency(currency)
        z = Money.zero(cur)
        return cls(case_id, cur, z, z, z, z, z, z)


@dataclass(frozen=True)
class TransactionRow:
    case_id: UUID
    type: TransactionType
    direction: Direction
    amount: Money
    status: TransactionStatus
    paid_at: datetime | None = None

    @property
    def signed(self) -> Balance:
        balance = self.amount.to_balance()
        return balance if self.direction == Direction.IN else -balance


@dataclass(frozen=True)
class LedgerSummary:
    """Aggregates over a set of transaction rows in one currency."""

    currency: Currency
    total_in: Money
    total_out: Money
    by_type: dict[TransactionType, Money] = field(default_factory=dict)
    case_count: int = 0

    @property
    def net(self) -> Balance:
        return self.total_in.to_balance() - self.total_out


def net_profit(financials: CaseFinancials) -> Balance:
    """Net profit of one case. May be negative."""
    return (
        financials.service_fee.to_balance()
        + financials.school_commission
        - financials.influencer_commission
        - financials.lawyer_commission
        - financials.referral_discount
        - financials.translation_fee
    )


def synthesize_transactions(financials: CaseFinancials) -> tuple[TransactionRow, ...]:
    """One row per non-zero money field, ``paid`` iff the case has ``paid_at``."""
    status = (
        TransactionStatus.PAID if financials.paid_at is not None
        else TransactionStatus.PENDING
    )
    rows = []
    for name, tx_type, direction in MONEY_FIELDS:
        amount: Money = getattr(financials, name)
        if amount.is_zero:
            continue
        rows.append(
            TransactionRow(
                case_id=financials.case_id,
                type=tx_type,
                direction=direction,
                amount=amount,
                status=status,
                paid_at=financials.paid_at,
            )
        )
    return tuple(rows)


def rows_balance(rows: Iterable[TransactionRow], currency: str | Currency) -> Balance:
    """Sum of ``in`` rows minus ``out`` rows."""
    total = Balance.zero(currency)
    for row in rows:
        total = total + row.signed
    return total


def summarize(rows: Iterable[TransactionRow]) -> dict[str, LedgerSummary]:
    """Per-currency totals of ``rows``, keyed by currency code."""
    totals_in: dict[str, Money] = {}
    totals_out: dict[str, Money] = {}
    by_type: dict[str, dict[TransactionType, Money]] = {}
    cases: dict[str, set[UUID]] = {}

    for row in rows:
        code = row.amount.currency.code
        zero = Money.zero(row.amount.currency)
        bucket = totals_in if row.direction == Direction.IN else totals_out
        bucket[code] = bucket.get(code, zero) + row.amount
        type_totals = by_type.setdefault(code, {})
        type_totals[row.type] = type_totals.get(row.type, zero) + row.amount
        cases.setdefault(code, set()).add(row.case_id)

    summaries = {}
    for code in sorted(set(totals_in) | set(totals_out)):
        zero = Money.zero(code)
        summaries[code] = LedgerSummary(
            currency=Currency(code),
            total_in=totals_in.get(code, zero),
            total_out=totals_out.get(code, zero),
            by_type=by_type.get(code, {}),
            case_count=len(cases.get(code, ())),
        )
    return summaries
