"""
Read models for leads, cases, snapshots and appointments.

Frozen DTOs returned by services and selectors.  ORM rows never leave the
service layer; callers only see these.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from uuid import UUID

from agency_kernel.domain.commission import CommissionTerms
from agency_kernel.domain.ledger import CaseFinancials
from agency_kernel.domain.sla import SlaState
from agency_kernel.domain.status_graph import CaseStatus
from agency_kernel.domain.values import Money


class SnapshotPaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LeadInfo:
    id: UUID
    full_name: str
    eligibility_score: int
    referral_agent_id: UUID | None
    last_contacted_at: datetime | None
    created_at: datetime


@dataclass(frozen=True)
class CaseInfo:
    id: UUID
    lead_id: UUID
    status: CaseStatus
    currency: str
    financials: CaseFinancials
    version: int
    created_at: datetime
    assigned_lawyer_id: UUID | None = None
    assigned_at: datetime | None = None
    referral_agent_id: UUID | None = None
    paid_at: datetime | None = None
    paid_countdown_started_at: datetime | None = None
    preferred_city: str | None = None
    needs_accommodation: bool = False


@dataclass(frozen=True)
class SnapshotInfo:
    id: UUID
    case_id: UUID
    master_service_id: UUID
    service_name: str
    sale_price: Money
    team_commission: CommissionTerms
    influencer_commission: CommissionTerms
    refundable: bool
    payment_status: SnapshotPaymentStatus
    created_at: datetime
    paid_at: datetime | None = None


@dataclass(frozen=True)
class AttachResult:
    """Outcome of one attach call.

    ``skipped`` lists master service ids that were already attached;
    re-attaching is a benign no-op, so they are reported, not raised.
    """

    case: CaseInfo
    attached: tuple[SnapshotInfo, ...] = ()
    skipped: tuple[UUID, ...] = ()
    status_advanced: bool = False
    added_service_fee: Money | None = None
    added_lawyer_commission: Money | None = None
    added_influencer_commission: Money | None = None


@dataclass(frozen=True)
class AppointmentInfo:
    id: UUID
    case_id: UUID
    scheduled_for: datetime
    status: AppointmentStatus
    created_at: datetime


@dataclass(frozen=True)
class CaseSlaView:
    case_id: UUID
    lead_id: UUID
    assigned_lawyer_id: UUID | None
    assigned_at: datetime | None
    state: SlaState
    hours_waiting: float | None


@dataclass(frozen=True)
class DeletionReport:
    """What a case cascade removed."""

    case_id: UUID
    removed: dict[str, int] = field(default_factory=dict)
