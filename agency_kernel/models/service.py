"""
Service catalog and price-locked service snapshots.

``MasterService`` is the live catalog; it may be repriced at any time.
``ServiceSnapshot`` copies a catalog row's pricing and commission terms
onto a case at attach time.  Snapshot pricing never changes afterwards
(enforced by the ORM listeners in ``db/immutability.py``); only the
payment fields move.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from agency_kernel.db.base import Base, UUIDString
from agency_kernel.domain.commission import CommissionTerms, CommissionType
from agency_kernel.domain.dtos import SnapshotInfo, SnapshotPaymentStatus
from agency_kernel.domain.values import Money

_COMMISSION_TYPES = ", ".join(f"'{t.value}'" for t in CommissionType)


class MasterService(Base):
    """Catalog entry: current price and commission terms of a service."""

    __tablename__ = "master_services"

    __table_args__ = (
        CheckConstraint("sale_price_minor >= 0", name="ck_master_services_price"),
        CheckConstraint(
            f"team_commission_type IN ({_COMMISSION_TYPES})",
            name="ck_master_services_team_type",
        ),
        CheckConstraint(
            f"influencer_commission_type IN ({_COMMISSION_TYPES})",
            name="ck_master_services_influencer_type",
        ),
    )

    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sale_price_minor: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="ILS")
    team_commission_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CommissionType.NONE.value,
    )
    team_commission_value: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    influencer_commission_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=CommissionType.NONE.value,
    )
    influencer_commission_value: Mapped[Decimal] = mapped_column(
        nullable=False, default=Decimal("0"),
    )
    refundable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def sale_price(self) -> Money:
        return Money(self.sale_price_minor, self.currency)

    @property
    def team_commission(self) -> CommissionTerms:
        return CommissionTerms(CommissionType(self.team_commission_type), self.team_commission_value)

    @property
    def influencer_commission(self) -> CommissionTerms:
        return CommissionTerms(
            CommissionType(self.influencer_commission_type),
            self.influencer_commission_value,
        )


class ServiceSnapshot(Base):
    """Immutable, price-locked copy of a catalog service attached to a case."""

    __tablename__ = "case_services"

    __table_args__ = (
        UniqueConstraint("case_id", "master_service_id", name="uq_case_services_case_service"),
        CheckConstraint("sale_price_minor >= 0", name="ck_case_services_price"),
        CheckConstraint(
            "payment_status IN ('pending', 'paid')",
            name="ck_case_services_payment_status",
        ),
        Index("ix_case_services_case", "case_id"),
    )

    case_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("student_cases.id"), nullable=False,
    )
    master_service_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    service_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sale_price_minor: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    team_commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    team_commission_value: Mapped[Decimal] = mapped_column(nullable=False)
    influencer_commission_type: Mapped[str] = mapped_column(String(20), nullable=False)
    influencer_commission_value: Mapped[Decimal] = mapped_column(nullable=False)
    refundable: Mapped[bool] = mapped_column(Boolean, nullable=False)
    payment_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SnapshotPaymentStatus.PENDING.value,
    )
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    @classmethod
    def from_catalog(
        cls,
        case_id: UUID,
        service: MasterService,
        created_at: datetime,
        created_by_id: UUID,
    ) -> "ServiceSnapshot":
        return cls(
            case_id=case_id,
            master_service_id=service.id,
            service_name=service.service_name,
            sale_price_minor=service.sale_price_minor,
            currency=service.currency,
            team_commission_type=service.team_commission_type,
            team_commission_value=service.team_commission_value,
            influencer_commission_type=service.influencer_commission_type,
            influencer_commission_value=service.influencer_commission_value,
            refundable=service.refundable,
            payment_status=SnapshotPaymentStatus.PENDING.value,
            created_at=created_at,
            created_by_id=created_by_id,
        )

    @property
    def sale_price(self) -> Money:
        return Money(self.sale_price_minor, self.currency)

    @property
    def team_commission(self) -> CommissionTerms:
        return CommissionTerms(CommissionType(self.team_commission_type), self.team_commission_value)

    @property
    def influencer_commission(self) -> CommissionTerms:
        return CommissionTerms(
            CommissionType(self.influencer_commission_type),
            self.influencer_commission_value,
        )

    def to_dto(self) -> SnapshotInfo:
        return SnapshotInfo(
            id=self.id,
            case_id=self.case_id,
            master_service_id=self.master_service_id,
            service_name=self.service_name,
            sale_price=self.sale_price,
            team_commission=self.team_commission,
            influencer_commission=self.influencer_commission,
            refundable=self.refundable,
            payment_status=SnapshotPaymentStatus(self.payment_status),
            created_at=self.created_at,
            paid_at=self.paid_at,
        )
