"""
Append-only audit log.

One row per privileged mutation, written in the same unit of work as the
mutation it records.  Rows are hash-chained: each ``hash`` covers the
entry's key fields, its payload hash and the previous entry's hash, so
any edit or deletion is detectable by ``AuditorService.validate_chain``.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from agency_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    LEAD_CONVERTED = "lead_converted"
    CASE_STATUS_CHANGED = "case_status_changed"
    CASE_STATUS_OVERRIDDEN = "case_status_overridden"
    CASE_ASSIGNED = "case_assigned"
    CASE_CONTACTED = "case_contacted"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    CASE_DELETED = "case_deleted"
    SERVICES_ATTACHED = "services_attached"
    SNAPSHOT_PAID = "snapshot_paid"
    REWARDS_ACCRUED = "rewards_accrued"
    PAYOUT_REQUESTED = "payout_requested"
    PAYOUT_APPROVED = "payout_approved"
    PAYOUT_REJECTED = "payout_rejected"
    PAYOUT_CANCELLED = "payout_cancelled"
    PAYOUT_PAID = "payout_paid"
    CONFIG_CHANGED = "config_changed"


class AuditLogEntry(Base):
    __tablename__ = "audit_logs"

    __table_args__ = (
        Index("ix_audit_logs_target", "target_table", "target_id"),
        Index("ix_audit_logs_actor", "actor_id"),
    )

    seq: Mapped[int] = mapped_column(nullable=False, unique=True)
    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    action: Mapped[str] = mapped_column(String(64), nullable=False)
    target_table: Mapped[str | None] = mapped_column(String(64), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)
    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.seq} {self.action} {self.target_table}:{self.target_id}>"
