"""
Case read models: case lookups, attached snapshots, the SLA board and
status counts.

SLA state is derived on every read from ``assigned_at`` and the ``now``
the caller passes in, so two viewers asking at the same instant get the
same answer.  Nothing here is persisted.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from agency_kernel.domain.dtos import (
    AppointmentInfo,
    CaseInfo,
    CaseSlaView,
    SnapshotInfo,
)
from agency_kernel.domain.policy import AgencyPolicy, PolicySource, as_policy_source
from agency_kernel.domain.sla import SlaState, evaluate_sla, hours_since
from agency_kernel.domain.status_graph import (
    LEGACY_STATUS_MAP,
    CaseStatus,
    get_fast_track_steps,
    get_next_steps,
    resolve_status,
)
from agency_kernel.exceptions import CaseNotFoundError
from agency_kernel.models.case import Appointment, CaseRecord
from agency_kernel.models.service import ServiceSnapshot
from agency_kernel.selectors.base import BaseSelector

_SLA_ORDER = {SlaState.BREACH: 0, SlaState.WARNING: 1, SlaState.OK: 2, SlaState.NOT_APPLICABLE: 3}


class CaseSelector(BaseSelector):
    def __init__(self, session: Session, policy: AgencyPolicy | PolicySource | None = None):
        super().__init__(session)
        self._policy_source = as_policy_source(policy)

    def _get(self, case_id: UUID) -> CaseRecord:
        case = self.session.get(CaseRecord, case_id, populate_existing=True)
        if case is None:
            raise CaseNotFoundError(str(case_id))
        return case

    def get_case(self, case_id: UUID) -> CaseInfo:
        return self._get(case_id).to_dto()

    def find_by_lead(self, lead_id: UUID) -> CaseInfo | None:
        case = self.session.execute(
            select(CaseRecord).where(CaseRecord.lead_id == lead_id)
        ).scalar_one_or_none()
        return case.to_dto() if case else None

    def list_cases(
        self,
        status: CaseStatus | None = None,
        handler_id: UUID | None = None,
    ) -> list[CaseInfo]:
        stmt = select(CaseRecord)
        if status is not None:
            wanted = CaseStatus(status)
            raw_values = [wanted.value] + [k for k, v in LEGACY_STATUS_MAP.items() if v == wanted]
            stmt = stmt.where(CaseRecord.status.in_(raw_values))
        if handler_id is not None:
            stmt = stmt.where(CaseRecord.assigned_lawyer_id == handler_id)
        rows = self.session.execute(stmt.order_by(CaseRecord.created_at)).scalars()
        return [row.to_dto() for row in rows]

    def snapshots(self, case_id: UUID) -> list[SnapshotInfo]:
        rows = self.session.execute(
            select(ServiceSnapshot)
            .where(ServiceSnapshot.case_id == case_id)
            .order_by(ServiceSnapshot.created_at, ServiceSnapshot.service_name)
        ).scalars()
        return [row.to_dto() for row in rows]

    def appointments(self, case_id: UUID) -> list[AppointmentInfo]:
        rows = self.session.execute(
            select(Appointment)
            .where(Appointment.case_id == case_id)
            .order_by(Appointment.scheduled_for)
        ).scalars()
        return [row.to_dto() for row in rows]

    def available_transitions(self, case_id: UUID) -> tuple[list[CaseStatus], list[CaseStatus]]:
        """(standard next steps, primary first; fast-track override targets)."""
        status = self._get(case_id).status_enum
        fast_track = (
            get_fast_track_steps(status)
            if self._policy_source.current().fast_track_enabled
            else []
        )
        return get_next_steps(status), fast_track

    # SLA

    def _sla_view(self, case: CaseRecord, now: datetime) -> CaseSlaView:
        policy = self._policy_source.current()
        return CaseSlaView(
            case_id=case.id,
            lead_id=case.lead_id,
            assigned_lawyer_id=case.assigned_lawyer_id,
            assigned_at=case.assigned_at,
            state=evaluate_sla(
                case.status,
                case.assigned_at,
                now,
                policy.sla_warning_hours,
                policy.sla_breach_hours,
            ),
            hours_waiting=hours_since(case.assigned_at, now),
        )

    def sla_status(self, case_id: UUID, now: datetime) -> CaseSlaView:
        return self._sla_view(self._get(case_id), now)

    def sla_board(self, now: datetime) -> list[CaseSlaView]:
        """Every case waiting in ``assigned``; breaches first, longest wait first."""
        rows = self.session.execute(
            select(CaseRecord).where(CaseRecord.status == CaseStatus.ASSIGNED.value)
        ).scalars()
        views = [self._sla_view(row, now) for row in rows]
        views.sort(key=lambda v: (_SLA_ORDER[v.state], -(v.hours_waiting or 0.0)))
        return views

    # Aggregates

    def counts_by_status(self) -> dict[CaseStatus, int]:
        counts: dict[CaseStatus, int] = {}
        rows = self.session.execute(
            select(CaseRecord.status, func.count()).group_by(CaseRecord.status)
        ).all()
        for raw, count in rows:
            status = resolve_status(raw)
            counts[status] = counts.get(status, 0) + count
        return counts
