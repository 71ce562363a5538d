"""
Payout domain types (``agency_kernel.domain.payout``).

Responsibility
--------------
Pure value objects for the payout-request workflow: the request
lifecycle state machine, reward lifecycle, payment methods, and the
frozen DTOs returned by ``PayoutService`` and ``RewardService``.

Architecture position
---------------------
**Kernel domain layer** -- ZERO I/O.

Invariants enforced
-------------------
* ``PAYOUT_TRANSITIONS`` defines the only valid request transitions:
  ``pending -> approved -> paid`` and ``pending -> rejected``.
* ``paid`` and ``rejected`` are terminal.
* ``REWARD_TRANSITIONS``: a reward is claimed (``approved``) by a
  request, returned to ``pending`` when that request is rejected, and
  ``paid`` when it is settled.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from agency_kernel.domain.values import Money


# =========================================================================
# Payout request lifecycle
# =========================================================================


class PayoutStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    REJECTED = "rejected"


PAYOUT_TRANSITIONS: dict[PayoutStatus, frozenset[PayoutStatus]] = {
    PayoutStatus.PENDING: frozenset({
        PayoutStatus.APPROVED,
        PayoutStatus.REJECTED,
    }),
    PayoutStatus.APPROVED: frozenset({
        PayoutStatus.PAID,
    }),
    PayoutStatus.PAID: frozenset(),
    PayoutStatus.REJECTED: frozenset(),
}

TERMINAL_PAYOUT_STATUSES: frozenset[PayoutStatus] = frozenset({
    PayoutStatus.PAID,
    PayoutStatus.REJECTED,
})


def can_transition_payout(current: PayoutStatus, target: PayoutStatus) -> bool:
    return target in PAYOUT_TRANSITIONS.get(current, frozenset())


class RequestorRole(str, Enum):
    STUDENT = "student"
    INFLUENCER = "influencer"
    LAWYER = "lawyer"


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    PAYPAL = "paypal"
    CASH = "cash"


CANCELLED_BY_USER_REASON = "Cancelled by user"


# =========================================================================
# Reward lifecycle
# =========================================================================


class RewardStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


REWARD_TRANSITIONS: dict[RewardStatus, frozenset[RewardStatus]] = {
    RewardStatus.PENDING: frozenset({RewardStatus.APPROVED, RewardStatus.CANCELLED}),
    RewardStatus.APPROVED: frozenset({RewardStatus.PENDING, RewardStatus.PAID}),
    RewardStatus.PAID: frozenset(),
    RewardStatus.CANCELLED: frozenset(),
}


# =========================================================================
# DTOs
# =========================================================================


@dataclass(frozen=True)
class RewardInfo:
    id: UUID
    user_id: UUID
    role: RequestorRole
    case_id: UUID | None
    amount: Money
    status: RewardStatus
    created_at: datetime
    payout_requested_at: datetime | None = None
    paid_at: datetime | None = None
    eligible_at: datetime | None = None


@dataclass(frozen=True)
class PayoutEligibility:
    """Lock-window evaluation for a set of rewards at one instant."""

    eligible_at: datetime
    evaluated_at: datetime
    ineligible_reward_ids: tuple[UUID, ...] = ()

    @property
    def is_eligible(self) -> bool:
        return self.evaluated_at >= self.eligible_at


@dataclass(frozen=True)
class PayoutRequestInfo:
    id: UUID
    requestor_id: UUID
    requestor_role: RequestorRole
    amount: Money
    status: PayoutStatus
    linked_reward_ids: tuple[UUID, ...]
    linked_student_names: tuple[str, ...]
    requested_at: datetime
    eligible_at: datetime
    eligibility_flagged: bool
    version: int
    approved_at: datetime | None = None
    approved_by: UUID | None = None
    paid_at: datetime | None = None
    paid_by: UUID | None = None
    reject_reason: str | None = None
    admin_notes: str | None = None
    payment_method: PaymentMethod | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_PAYOUT_STATUSES


@dataclass(frozen=True)
class PayoutTransactionInfo:
    id: UUID
    payout_request_id: UUID
    amount: Money
    payment_method: PaymentMethod
    transaction_ref: str | None
    notes: str | None
    paid_by: UUID
    paid_at: datetime


@dataclass(frozen=True)
class BulkOutcome:
    """Per-id result of a bulk payout action.

    ``failed`` maps each id that did not transition to the structured
    error that stopped it; nothing is dropped silently.
    """

    succeeded: tuple[UUID, ...] = ()
    failed: dict[UUID, Exception] = field(default_factory=dict)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def attempted(self) -> int:
        return len(self.succeeded) + len(self.failed)
