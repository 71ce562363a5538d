"""
Accrued rewards (commission owed to a handler, referral agent or student).

Rewards are claimed by payout requests.  A reward's ``status`` and
``payout_request_id`` are its link to the request that claimed it; a
reward is linked to at most one non-rejected request at a time because
claiming moves it out of ``pending``.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from agency_kernel.db.base import Base, UUIDString
from agency_kernel.domain.payout import RequestorRole, RewardInfo, RewardStatus
from agency_kernel.domain.values import Money


class Reward(Base):
    __tablename__ = "rewards"

    __table_args__ = (
        UniqueConstraint("case_id", "user_id", "role", name="uq_rewards_case_user_role"),
        CheckConstraint("amount_minor >= 0", name="ck_rewards_amount_non_negative"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'paid', 'cancelled')",
            name="ck_rewards_valid_status",
        ),
        Index("ix_rewards_user_status", "user_id", "status"),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    case_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("student_cases.id"), nullable=True,
    )
    amount_minor: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RewardStatus.PENDING.value,
    )
    payout_request_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    payout_requested_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def amount(self) -> Money:
        return Money(self.amount_minor, self.currency)

    @property
    def status_enum(self) -> RewardStatus:
        return RewardStatus(self.status)

    def to_dto(self, eligible_at: datetime | None = None) -> RewardInfo:
        return RewardInfo(
            id=self.id,
            user_id=self.user_id,
            role=RequestorRole(self.role),
            case_id=self.case_id,
            amount=self.amount,
            status=self.status_enum,
            created_at=self.created_at,
            payout_requested_at=self.payout_requested_at,
            paid_at=self.paid_at,
            eligible_at=eligible_at,
        )
