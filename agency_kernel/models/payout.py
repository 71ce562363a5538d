"""
Payout requests and the payout transaction log.

``PayoutRequest`` is versioned (``version_id_col``) so two admins deciding
the same request cannot both win.  ``PayoutTransaction`` is the
compliance log of money actually sent: one row per paid request,
append-only.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from agency_kernel.db.base import Base, UUIDString
from agency_kernel.domain.payout import (
    PaymentMethod,
    PayoutRequestInfo,
    PayoutStatus,
    PayoutTransactionInfo,
    RequestorRole,
)
from agency_kernel.domain.values import Money


class PayoutRequest(Base):
    __tablename__ = "payout_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'rejected')",
            name="ck_payout_requests_valid_status",
        ),
        CheckConstraint("amount_minor >= 0", name="ck_payout_requests_amount"),
        Index("ix_payout_requests_requestor_status", "requestor_id", "status"),
    )

    requestor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requestor_role: Mapped[str] = mapped_column(String(20), nullable=False)
    amount_minor: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PayoutStatus.PENDING.value,
    )
    linked_reward_ids: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    linked_student_names: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    requested_at: Mapped[datetime] = mapped_column(nullable=False)
    eligible_at: Mapped[datetime] = mapped_column(nullable=False)
    eligibility_flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(nullable=True)
    rejected_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reject_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def status_enum(self) -> PayoutStatus:
        return PayoutStatus(self.status)

    @property
    def reward_ids(self) -> list[UUID]:
        return [UUID(str(rid)) for rid in self.linked_reward_ids or []]

    @property
    def amount(self) -> Money:
        return Money(self.amount_minor, self.currency)

    def to_dto(self) -> PayoutRequestInfo:
        return PayoutRequestInfo(
            id=self.id,
            requestor_id=self.requestor_id,
            requestor_role=RequestorRole(self.requestor_role),
            amount=self.amount,
            status=self.status_enum,
            linked_reward_ids=tuple(self.reward_ids),
            linked_student_names=tuple(self.linked_student_names or ()),
            requested_at=self.requested_at,
            eligible_at=self.eligible_at,
            eligibility_flagged=self.eligibility_flagged,
            version=self.version,
            approved_at=self.approved_at,
            approved_by=self.approved_by,
            paid_at=self.paid_at,
            paid_by=self.paid_by,
            reject_reason=self.reject_reason,
            admin_notes=self.admin_notes,
            payment_method=PaymentMethod(self.payment_method) if self.payment_method else None,
        )


class PayoutTransaction(Base):
    __tablename__ = "payout_transactions"

    payout_request_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("payout_requests.id"), nullable=False, unique=True,
    )
    amount_minor: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False)
    transaction_ref: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    paid_by: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> PayoutTransactionInfo:
        return PayoutTransactionInfo(
            id=self.id,
            payout_request_id=self.payout_request_id,
            amount=Money(self.amount_minor, self.currency),
            payment_method=PaymentMethod(self.payment_method),
            transaction_ref=self.transaction_ref,
            notes=self.notes,
            paid_by=self.paid_by,
            paid_at=self.paid_at,
        )
