"""
SnapshotService -- price-locked service attachment and snapshot payment.

Responsibility:
    Attaches catalog services to a case as immutable snapshots, adds the
    snapshot-derived fee and commissions to the case's running totals and
    auto-advances the case to ``services_filled`` where legal.  Marks
    individual snapshots paid.

Architecture position:
    Kernel > Services -- consumes CatalogService at attach time only.

Invariants enforced:
    - Dedup by master service id: a service already attached to the case
      is skipped, so re-attaching is idempotent and money is counted once.
    - Additive totals: ``service_fee``, ``lawyer_commission`` and
      ``influencer_commission`` are incremented from the values read under
      the case row lock; the case's ``version_id_col`` rejects a writer
      that read a stale total.
    - Single unit of work: snapshot rows, case money fields, status
      advance and audit entry commit together or not at all.
    - Attachment never touches ``payment_status``.
    - A settled case (``paid`` or later) takes no new services: its rewards
      were accrued from the commissions it had when it was paid.

Failure modes:
    - CaseNotFoundError, ServiceNotFoundError, InactiveServiceError.
    - CaseSettledError: the case is ``paid``, ``visa_stage`` or ``completed``.
    - CurrencyMismatchError: service priced in another currency than the case.
    - DuplicateAttachmentError: only with ``strict=True``.
    - SnapshotNotFoundError: ``mark_snapshot_paid`` on an unknown id.
"""

from collections.abc import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from agency_kernel.domain.clock import Clock, SystemClock
from agency_kernel.domain.dtos import AttachResult, SnapshotInfo, SnapshotPaymentStatus
from agency_kernel.domain.status_graph import SETTLED_CASE_STATUSES, CaseStatus, can_transition
from agency_kernel.domain.values import Money
from agency_kernel.exceptions import (
    CaseNotFoundError,
    CaseSettledError,
    CurrencyMismatchError,
    DuplicateAttachmentError,
    SnapshotNotFoundError,
)
from agency_kernel.logging_config import get_logger
from agency_kernel.models.audit_log import AuditAction
from agency_kernel.models.case import CaseRecord
from agency_kernel.models.service import ServiceSnapshot
from agency_kernel.services.auditor_service import AuditorService
from agency_kernel.services.base import BaseService
from agency_kernel.services.catalog_service import CatalogService
from agency_kernel.services.notifications import NotificationOutbox

logger = get_logger("services.snapshot")


class SnapshotService(BaseService):
    """
    Service for attaching priced services to cases.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT recompute totals from scratch; deltas are added.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        catalog: CatalogService | None = None,
        outbox: NotificationOutbox | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._catalog = catalog or CatalogService(session)
        self._outbox = outbox

    def attach(
        self,
        case_id: UUID,
        service_ids: Sequence[UUID],
        actor_id: UUID,
        expected_version: int | None = None,
        strict: bool = False,
    ) -> AttachResult:
        """
        Snapshot each catalog service onto the case.

        Already-attached ids are reported in ``AttachResult.skipped``
        (``strict=True`` raises ``DuplicateAttachmentError`` instead).  A
        call that attaches nothing writes nothing and is not audited.
        """
        unique_ids = list(dict.fromkeys(service_ids))

        with self.unit_of_work("attach_services", "CaseRecord", case_id):
            case = self._load_for_update(CaseRecord, case_id)
            if case is None:
                raise CaseNotFoundError(str(case_id))
            self._check_version("CaseRecord", case, expected_version)
            if case.status_enum in SETTLED_CASE_STATUSES:
                logger.warning(
                    "attach_refused_settled_case",
                    extra={"case_id": str(case_id), "status": case.status},
                )
                raise CaseSettledError(str(case_id), case.status)

            already = set(
                self.session.execute(
                    select(ServiceSnapshot.master_service_id).where(
                        ServiceSnapshot.case_id == case.id
                    )
                ).scalars()
            )
            skipped = tuple(sid for sid in unique_ids if sid in already)
            if skipped and strict:
                raise DuplicateAttachmentError(str(case_id), str(skipped[0]))
            to_attach = [sid for sid in unique_ids if sid not in already]

            if not to_attach:
                logger.info(
                    "attach_noop",
                    extra={"case_id": str(case_id), "skipped": [str(s) for s in skipped]},
                )
                return AttachResult(case=case.to_dto(), skipped=skipped)

            services = self._catalog.get_services(to_attach)
            now = self._clock.now()
            fee = Money.zero(case.currency)
            lawyer = Money.zero(case.currency)
            influencer = Money.zero(case.currency)
            snapshots = []
            for service in services:
                if service.currency != case.currency:
                    raise CurrencyMismatchError(case.currency, service.currency)
                snapshot = ServiceSnapshot.from_catalog(case.id, service, now, actor_id)
                self.session.add(snapshot)
                snapshots.append(snapshot)
                price = snapshot.sale_price
                fee = fee + price
                lawyer = lawyer + snapshot.team_commission.compute(price)
                influencer = influencer + snapshot.influencer_commission.compute(price)

            case.service_fee_minor += fee.minor_units
            case.lawyer_commission_minor += lawyer.minor_units
            case.influencer_commission_minor += influencer.minor_units
            case.updated_at = now

            old_status = case.status_enum
            advanced = can_transition(old_status, CaseStatus.SERVICES_FILLED)
            if advanced:
                case.status = CaseStatus.SERVICES_FILLED.value
            self.session.flush()

            self._auditor.record(
                AuditAction.SERVICES_ATTACHED,
                actor_id=actor_id,
                target_table="student_cases",
                target_id=case.id,
                details=f"Attached {len(snapshots)} service(s)",
                payload={
                    "snapshot_ids": [str(s.id) for s in snapshots],
                    "master_service_ids": [str(s.master_service_id) for s in snapshots],
                    "skipped": [str(s) for s in skipped],
                    "added_service_fee_minor": fee.minor_units,
                    "added_lawyer_commission_minor": lawyer.minor_units,
                    "added_influencer_commission_minor": influencer.minor_units,
                    "from": old_status.value,
                    "to": case.status,
                },
            )

        logger.info(
            "services_attached",
            extra={
                "case_id": str(case.id),
                "attached": len(snapshots),
                "skipped": len(skipped),
                "status_advanced": advanced,
                "version": case.version,
            },
        )
        if advanced and self._outbox is not None:
            self._outbox.status_changed(case.id, old_status.value, case.status)
        return AttachResult(
            case=case.to_dto(),
            attached=tuple(s.to_dto() for s in snapshots),
            skipped=skipped,
            status_advanced=advanced,
            added_service_fee=fee,
            added_lawyer_commission=lawyer,
            added_influencer_commission=influencer,
        )

    def mark_snapshot_paid(self, snapshot_id: UUID, actor_id: UUID) -> SnapshotInfo:
        """Record payment of one snapshot. Repeating the call is a no-op."""
        with self.unit_of_work("mark_snapshot_paid", "ServiceSnapshot", snapshot_id):
            snapshot = self._load_for_update(ServiceSnapshot, snapshot_id)
            if snapshot is None:
                raise SnapshotNotFoundError(str(snapshot_id))
            if snapshot.payment_status == SnapshotPaymentStatus.PAID.value:
                logger.info("snapshot_already_paid", extra={"snapshot_id": str(snapshot_id)})
                return snapshot.to_dto()

            snapshot.payment_status = SnapshotPaymentStatus.PAID.value
            snapshot.paid_at = self._clock.now()
            self.session.flush()
            self._auditor.record(
                AuditAction.SNAPSHOT_PAID,
                actor_id=actor_id,
                target_table="case_services",
                target_id=snapshot.id,
                details=f"{snapshot.service_name} paid",
                payload={
                    "case_id": str(snapshot.case_id),
                    "sale_price_minor": snapshot.sale_price_minor,
                    "currency": snapshot.currency,
                },
            )

        logger.info(
            "snapshot_paid",
            extra={"snapshot_id": str(snapshot_id), "case_id": str(snapshot.case_id)},
        )
        return snapshot.to_dto()
