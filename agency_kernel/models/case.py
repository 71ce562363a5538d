"""
Lead, case and appointment models.

``CaseRecord`` is the primary contended resource: its status and six
money fields are read-modify-written by racing actors.  It therefore
carries a ``version`` column wired as SQLAlchemy's ``version_id_col``;
every UPDATE is conditional on the version the writer read, and a
mismatch surfaces as ``StaleDataError`` (translated to
``ConcurrentModificationError`` by the services).

``status`` is stored raw and may hold values from imported history that
predate the current graph; every read goes through ``resolve_status``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from agency_kernel.db.base import Base, TimestampedBase, UUIDString
from agency_kernel.domain.dtos import (
    AppointmentInfo,
    AppointmentStatus,
    CaseInfo,
    LeadInfo,
)
from agency_kernel.domain.ledger import CaseFinancials
from agency_kernel.domain.status_graph import CaseStatus, resolve_status
from agency_kernel.domain.values import Currency, Money

CASE_MONEY_COLUMNS = (
    "service_fee_minor",
    "influencer_commission_minor",
    "lawyer_commission_minor",
    "referral_discount_minor",
    "school_commission_minor",
    "translation_fee_minor",
)


class Lead(Base):
    """A sales lead before (and after) conversion into a case."""

    __tablename__ = "leads"

    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    eligibility_score: Mapped[int] = mapped_column(nullable=False, default=0)
    referral_agent_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    last_contacted_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> LeadInfo:
        return LeadInfo(
            id=self.id,
            full_name=self.full_name,
            eligibility_score=self.eligibility_score,
            referral_agent_id=self.referral_agent_id,
            last_contacted_at=self.last_contacted_at,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<Lead {self.id} {self.full_name!r}>"


class CaseRecord(TimestampedBase):
    """One student's engagement, from conversion to completion."""

    __tablename__ = "student_cases"

    __table_args__ = (
        *(
            CheckConstraint(f"{col} >= 0", name=f"ck_student_cases_{col}_non_negative")
            for col in CASE_MONEY_COLUMNS
        ),
        Index("ix_student_cases_status_assigned", "status", "assigned_at"),
    )

    lead_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("leads.id"), nullable=False, unique=True,
    )
    status: Mapped[str] = mapped_column(
        String(40), nullable=False, default=CaseStatus.NEW.value,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    assigned_lawyer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    assigned_at: Mapped[datetime | None] = mapped_column(nullable=True)
    referral_agent_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    service_fee_minor: Mapped[int] = mapped_column(nullable=False, default=0)
    influencer_commission_minor: Mapped[int] = mapped_column(nullable=False, default=0)
    lawyer_commission_minor: Mapped[int] = mapped_column(nullable=False, default=0)
    referral_discount_minor: Mapped[int] = mapped_column(nullable=False, default=0)
    school_commission_minor: Mapped[int] = mapped_column(nullable=False, default=0)
    translation_fee_minor: Mapped[int] = mapped_column(nullable=False, default=0)

    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_countdown_started_at: Mapped[datetime | None] = mapped_column(nullable=True)

    preferred_city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    needs_accommodation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> CaseStatus:
        return resolve_status(self.status)

    def money(self, column: str) -> Money:
        return Money(getattr(self, column), Currency(self.currency))

    def financials(self) -> CaseFinancials:
        cur = Currency(self.currency)
        return CaseFinancials(
            case_id=self.id,
            currency=cur,
            service_fee=Money(self.service_fee_minor, cur),
            influencer_commission=Money(self.influencer_commission_minor, cur),
            lawyer_commission=Money(self.lawyer_commission_minor, cur),
            referral_discount=Money(self.referral_discount_minor, cur),
            school_commission=Money(self.school_commission_minor, cur),
            translation_fee=Money(self.translation_fee_minor, cur),
            paid_at=self.paid_at,
        )

    def to_dto(self) -> CaseInfo:
        return CaseInfo(
            id=self.id,
            lead_id=self.lead_id,
            status=self.status_enum,
            currency=self.currency,
            financials=self.financials(),
            version=self.version,
            created_at=self.created_at,
            assigned_lawyer_id=self.assigned_lawyer_id,
            assigned_at=self.assigned_at,
            referral_agent_id=self.referral_agent_id,
            paid_at=self.paid_at,
            paid_countdown_started_at=self.paid_countdown_started_at,
            preferred_city=self.preferred_city,
            needs_accommodation=self.needs_accommodation,
        )

    def __repr__(self) -> str:
        return f"<CaseRecord {self.id} status={self.status} v{self.version}>"


class Appointment(Base):
    """A consultation scheduled for a case."""

    __tablename__ = "appointments"

    __table_args__ = (
        Index("ix_appointments_case", "case_id"),
    )

    case_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("student_cases.id"), nullable=False,
    )
    scheduled_for: Mapped[datetime] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AppointmentStatus.SCHEDULED.value,
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def to_dto(self) -> AppointmentInfo:
        return AppointmentInfo(
            id=self.id,
            case_id=self.case_id,
            scheduled_for=self.scheduled_for,
            status=AppointmentStatus(self.status),
            created_at=self.created_at,
        )
