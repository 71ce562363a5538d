"""
CaseService -- case lifecycle: conversion, transitions, assignment, deletion.

Responsibility:
    Converts leads into cases and moves cases through the status graph.
    Every status write goes through the transition guard; the only way
    around the standard edges is ``override_status``, which follows the
    explicit fast-track edge set and is audited with a mandatory reason.

Architecture position:
    Kernel > Services -- imperative shell over ``domain.status_graph``.

Invariants enforced:
    - Guarded writes: a transition is validated against the status stored
      under the row lock (``populate_existing`` + ``FOR UPDATE``), never a
      stale in-memory copy.  A rejected transition changes nothing.
    - ``paid_at`` is set once, on the transition into ``paid``;
      ``paid_countdown_started_at`` only if not already set.
    - The transition into ``contacted`` and the lead's
      ``last_contacted_at`` are written in the same unit of work.
    - Assignment sets handler and ``assigned_at`` together; re-assignment
      refreshes ``assigned_at``.
    - Deletion removes appointments, snapshots and rewards before the case,
      all or nothing.
    - One audit entry per successful mutating call.

Failure modes:
    - CaseNotFoundError / LeadNotFoundError.
    - LeadAlreadyConvertedError: the lead already has a case.
    - InvalidTransitionError: target not adjacent to the current status.
    - OverrideReasonRequiredError / FastTrackDisabledError.
    - HandlerRequiredError: ``assigned`` requested on a case with no handler.
    - ConcurrentModificationError: stale ``expected_version`` or a lost
      optimistic-lock race.
    - CascadeFailureError: the case cannot be deleted with its dependents.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agency_kernel.domain.clock import Clock, SystemClock
from agency_kernel.domain.dtos import AppointmentInfo, AppointmentStatus, CaseInfo, DeletionReport
from agency_kernel.domain.payout import RewardStatus
from agency_kernel.domain.policy import AgencyPolicy, PolicySource, as_policy_source
from agency_kernel.domain.status_graph import (
    CaseStatus,
    WorkflowVariant,
    can_transition,
    get_next_steps,
)
from agency_kernel.domain.values import Currency
from agency_kernel.exceptions import (
    CascadeFailureError,
    CaseNotFoundError,
    FastTrackDisabledError,
    HandlerRequiredError,
    InvalidTransitionError,
    LeadAlreadyConvertedError,
    LeadNotFoundError,
    OverrideReasonRequiredError,
)
from agency_kernel.logging_config import get_logger
from agency_kernel.models.audit_log import AuditAction
from agency_kernel.models.case import Appointment, CaseRecord, Lead
from agency_kernel.models.reward import Reward
from agency_kernel.models.service import ServiceSnapshot
from agency_kernel.services.auditor_service import AuditorService
from agency_kernel.services.base import BaseService
from agency_kernel.services.notifications import NotificationOutbox
from agency_kernel.services.reward_service import RewardService

logger = get_logger("services.case")

_ASSIGNABLE_FROM = frozenset({CaseStatus.NEW, CaseStatus.ELIGIBLE})


class CaseService(BaseService):
    """
    Service for the case lifecycle.

    Contract:
        Accepts ids and returns frozen ``CaseInfo`` DTOs.  Each public
        mutation runs in its own savepoint and writes exactly one audit
        entry; a ``status_changed`` notification is queued for dispatch
        after the caller commits.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT score leads; ``eligibility_score`` is an input.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        policy: AgencyPolicy | PolicySource | None = None,
        outbox: NotificationOutbox | None = None,
        rewards: RewardService | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._policy_source = as_policy_source(policy)
        self._outbox = outbox
        self._rewards = rewards or RewardService(
            session, auditor, self._clock, self._policy_source,
        )

    @property
    def policy(self) -> AgencyPolicy:
        return self._policy_source.current()

    def _get_case_for_update(self, case_id: UUID) -> CaseRecord:
        case = self._load_for_update(CaseRecord, case_id)
        if case is None:
            raise CaseNotFoundError(str(case_id))
        return case

    def _notify(self, case: CaseRecord, old_status: CaseStatus, new_status: CaseStatus) -> None:
        if self._outbox is not None and old_status != new_status:
            self._outbox.status_changed(case.id, old_status.value, new_status.value)

    # =========================================================================
    # Conversion
    # =========================================================================

    def convert_lead(
        self,
        lead_id: UUID,
        actor_id: UUID,
        preferred_city: str | None = None,
        needs_accommodation: bool = False,
        handler_id: UUID | None = None,
        currency: str | None = None,
    ) -> CaseInfo:
        """
        Create the case for a lead.

        The case starts in ``new``; when ``handler_id`` is given it is
        assigned in the same unit of work and ends in ``assigned``.

        Raises:
            LeadNotFoundError: Unknown lead.
            LeadAlreadyConvertedError: The lead already has a case.
            InvalidCurrencyError: Unknown currency code.
        """
        lead = self.session.get(Lead, lead_id)
        if lead is None:
            raise LeadNotFoundError(str(lead_id))
        self._raise_if_converted(lead_id)

        case_currency = Currency(currency or self.policy.default_currency)
        try:
            with self.unit_of_work("convert_lead", "Lead", lead_id):
                now = self._clock.now()
                case = CaseRecord(
                    lead_id=lead_id,
                    status=CaseStatus.NEW.value,
                    currency=case_currency.code,
                    referral_agent_id=lead.referral_agent_id,
                    preferred_city=preferred_city,
                    needs_accommodation=needs_accommodation,
                    created_at=now,
                    created_by_id=actor_id,
                )
                self.session.add(case)
                self.session.flush()

                if handler_id is not None:
                    self._assign_locked(case, handler_id)

                self._auditor.record(
                    AuditAction.LEAD_CONVERTED,
                    actor_id=actor_id,
                    target_table="student_cases",
                    target_id=case.id,
                    details=f"Lead {lead.full_name} converted",
                    payload={
                        "lead_id": str(lead_id),
                        "status": case.status,
                        "handler_id": str(handler_id) if handler_id else None,
                        "currency": case.currency,
                    },
                )
        except IntegrityError:
            # Lost the race to a concurrent conversion of the same lead
            self._raise_if_converted(lead_id)
            raise

        logger.info(
            "lead_converted",
            extra={"lead_id": str(lead_id), "case_id": str(case.id), "status": case.status},
        )
        self._notify(case, CaseStatus.NEW, case.status_enum)
        return case.to_dto()

    def _raise_if_converted(self, lead_id: UUID) -> None:
        existing = self.session.execute(
            select(CaseRecord.id).where(CaseRecord.lead_id == lead_id)
        ).scalar_one_or_none()
        if existing is not None:
            logger.warning(
                "lead_already_converted",
                extra={"lead_id": str(lead_id), "case_id": str(existing)},
            )
            raise LeadAlreadyConvertedError(str(lead_id), str(existing))

    # =========================================================================
    # Status transitions
    # =========================================================================

    def transition_status(
        self,
        case_id: UUID,
        target: CaseStatus | str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> CaseInfo:
        """
        Move a case along a standard edge.

        Raises:
            CaseNotFoundError: Unknown case.
            ConcurrentModificationError: ``expected_version`` is stale.
            InvalidTransitionError: ``target`` is not adjacent to the
                stored status.  Nothing is written.
            HandlerRequiredError: ``target`` is ``assigned`` but the case has
                no handler; ``assign_handler`` sets one and moves the case.
        """
        with self.unit_of_work("transition_status", "CaseRecord", case_id):
            case = self._get_case_for_update(case_id)
            self._check_version("CaseRecord", case, expected_version)
            current = case.status_enum
            if not can_transition(current, target):
                self._reject(case, current, target, WorkflowVariant.STANDARD)
            new_status = CaseStatus(target)
            if new_status == CaseStatus.ASSIGNED and case.assigned_lawyer_id is None:
                logger.warning(
                    "case_transition_needs_handler",
                    extra={"case_id": str(case.id), "from_status": current.value},
                )
                raise HandlerRequiredError(str(case.id))

            accrued = self._apply_status(case, new_status)
            action = (
                AuditAction.CASE_CONTACTED
                if new_status == CaseStatus.CONTACTED
                else AuditAction.CASE_STATUS_CHANGED
            )
            self._auditor.record(
                action,
                actor_id=actor_id,
                target_table="student_cases",
                target_id=case.id,
                details=f"{current.value} -> {new_status.value}",
                payload={
                    "from": current.value,
                    "to": new_status.value,
                    "accrued_reward_ids": [str(r.id) for r in accrued],
                },
            )

        logger.info(
            "case_status_changed",
            extra={
                "case_id": str(case.id),
                "from_status": current.value,
                "to_status": new_status.value,
                "version": case.version,
            },
        )
        self._notify(case, current, new_status)
        return case.to_dto()

    def advance(
        self,
        case_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> CaseInfo:
        """Take the primary next step of the case's current status."""
        case = self.session.get(CaseRecord, case_id, populate_existing=True)
        if case is None:
            raise CaseNotFoundError(str(case_id))
        steps = get_next_steps(case.status_enum)
        if not steps:
            raise InvalidTransitionError(case.status_enum.value, "<none>", str(case_id))
        return self.transition_status(case_id, steps[0], actor_id, expected_version)

    def override_status(
        self,
        case_id: UUID,
        target: CaseStatus | str,
        actor_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> CaseInfo:
        """
        Take a fast-track edge (e.g. ``services_filled -> paid``).

        Only edges declared in the fast-track set are accepted; the reason
        is stored in the audit entry.

        Raises:
            OverrideReasonRequiredError: Blank reason.
            FastTrackDisabledError: Fast-track turned off in configuration.
            InvalidTransitionError: Not a fast-track edge.
        """
        if not reason or not reason.strip():
            raise OverrideReasonRequiredError(str(case_id))
        if not self.policy.fast_track_enabled:
            logger.warning("fast_track_disabled", extra={"case_id": str(case_id)})
            raise FastTrackDisabledError(str(case_id))

        with self.unit_of_work("override_status", "CaseRecord", case_id):
            case = self._get_case_for_update(case_id)
            self._check_version("CaseRecord", case, expected_version)
            current = case.status_enum
            if not can_transition(current, target, WorkflowVariant.FAST_TRACK):
                self._reject(case, current, target, WorkflowVariant.FAST_TRACK)
            new_status = CaseStatus(target)

            accrued = self._apply_status(case, new_status)
            self._auditor.record(
                AuditAction.CASE_STATUS_OVERRIDDEN,
                actor_id=actor_id,
                target_table="student_cases",
                target_id=case.id,
                details=reason.strip(),
                payload={
                    "from": current.value,
                    "to": new_status.value,
                    "variant": WorkflowVariant.FAST_TRACK.value,
                    "reason": reason.strip(),
                    "accrued_reward_ids": [str(r.id) for r in accrued],
                },
            )

        logger.warning(
            "case_status_overridden",
            extra={
                "case_id": str(case.id),
                "from_status": current.value,
                "to_status": new_status.value,
                "reason": reason.strip(),
            },
        )
        self._notify(case, current, new_status)
        return case.to_dto()

    def _reject(
        self,
        case: CaseRecord,
        current: CaseStatus,
        target: CaseStatus | str,
        variant: WorkflowVariant,
    ) -> None:
        target_value = target.value if isinstance(target, CaseStatus) else str(target)
        logger.warning(
            "case_transition_rejected",
            extra={
                "case_id": str(case.id),
                "from_status": current.value,
                "to_status": target_value,
                "variant": variant.value,
            },
        )
        raise InvalidTransitionError(current.value, target_value, str(case.id))

    def _apply_status(self, case: CaseRecord, new_status: CaseStatus) -> list[Reward]:
        """Write ``new_status`` and its side effects. Caller holds the lock."""
        now = self._clock.now()
        case.status = new_status.value
        case.updated_at = now

        if new_status == CaseStatus.CONTACTED:
            lead = self._load_for_update(Lead, case.lead_id)
            if lead is None:
                raise LeadNotFoundError(str(case.lead_id))
            lead.last_contacted_at = now

        if new_status == CaseStatus.PAID:
            if case.paid_at is None:
                case.paid_at = now
            if case.paid_countdown_started_at is None:
                case.paid_countdown_started_at = now
            self.session.flush()
            return self._rewards.accrue_locked(case)

        self.session.flush()
        return []

    # =========================================================================
    # Assignment and appointments
    # =========================================================================

    def assign_handler(
        self,
        case_id: UUID,
        handler_id: UUID,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> CaseInfo:
        """
        Assign (or re-assign) the handler; ``assigned_at`` is refreshed.

        A case still in ``new`` or ``eligible`` advances to ``assigned``.
        """
        with self.unit_of_work("assign_handler", "CaseRecord", case_id):
            case = self._get_case_for_update(case_id)
            self._check_version("CaseRecord", case, expected_version)
            previous_handler = case.assigned_lawyer_id
            old_status = case.status_enum
            self._assign_locked(case, handler_id)
            self._auditor.record(
                AuditAction.CASE_ASSIGNED,
                actor_id=actor_id,
                target_table="student_cases",
                target_id=case.id,
                details=f"Assigned to {handler_id}",
                payload={
                    "handler_id": str(handler_id),
                    "previous_handler_id": str(previous_handler) if previous_handler else None,
                    "from": old_status.value,
                    "to": case.status,
                },
            )

        logger.info(
            "case_assigned",
            extra={
                "case_id": str(case.id),
                "handler_id": str(handler_id),
                "reassigned": previous_handler is not None,
            },
        )
        self._notify(case, old_status, case.status_enum)
        return case.to_dto()

    def _assign_locked(self, case: CaseRecord, handler_id: UUID) -> None:
        now = self._clock.now()
        case.assigned_lawyer_id = handler_id
        case.assigned_at = now
        case.updated_at = now
        current = case.status_enum
        if current in _ASSIGNABLE_FROM and can_transition(current, CaseStatus.ASSIGNED):
            case.status = CaseStatus.ASSIGNED.value
        self.session.flush()

    def schedule_appointment(
        self,
        case_id: UUID,
        scheduled_for: datetime,
        actor_id: UUID,
    ) -> AppointmentInfo:
        """
        Book a consultation; the case advances to ``appointment_scheduled``
        when that edge is legal from its current status.
        """
        with self.unit_of_work("schedule_appointment", "CaseRecord", case_id):
            case = self._get_case_for_update(case_id)
            old_status = case.status_enum
            appointment = Appointment(
                case_id=case.id,
                scheduled_for=scheduled_for,
                status=AppointmentStatus.SCHEDULED.value,
                created_at=self._clock.now(),
                created_by_id=actor_id,
            )
            self.session.add(appointment)
            if can_transition(old_status, CaseStatus.APPOINTMENT_SCHEDULED):
                self._apply_status(case, CaseStatus.APPOINTMENT_SCHEDULED)
            self.session.flush()
            self._auditor.record(
                AuditAction.APPOINTMENT_SCHEDULED,
                actor_id=actor_id,
                target_table="student_cases",
                target_id=case.id,
                details=f"Appointment at {scheduled_for.isoformat()}",
                payload={
                    "appointment_id": str(appointment.id),
                    "scheduled_for": scheduled_for,
                    "from": old_status.value,
                    "to": case.status,
                },
            )

        logger.info(
            "appointment_scheduled",
            extra={"case_id": str(case.id), "appointment_id": str(appointment.id)},
        )
        self._notify(case, old_status, case.status_enum)
        return appointment.to_dto()

    # =========================================================================
    # Deletion
    # =========================================================================

    def delete_case(self, case_id: UUID, actor_id: UUID) -> DeletionReport:
        """
        Delete a case with its appointments, snapshots and rewards.

        Raises:
            CaseNotFoundError: Unknown case.
            CascadeFailureError: A reward of the case is already claimed by
                or settled through a payout request, or a dependent row
                could not be removed.  Nothing is deleted.
        """
        with self.unit_of_work("delete_case", "CaseRecord", case_id):
            case = self._get_case_for_update(case_id)
            lead_id = case.lead_id

            claimed = self.session.execute(
                select(Reward.id).where(
                    Reward.case_id == case.id,
                    Reward.status.in_([RewardStatus.APPROVED.value, RewardStatus.PAID.value]),
                )
            ).scalars().all()
            if claimed:
                logger.warning(
                    "case_delete_blocked",
                    extra={"case_id": str(case_id), "reward_ids": [str(r) for r in claimed]},
                )
                raise CascadeFailureError(
                    "CaseRecord",
                    str(case_id),
                    f"{len(claimed)} reward(s) are linked to payout requests",
                )

            removed: dict[str, int] = {}
            try:
                for label, model in (
                    ("appointments", Appointment),
                    ("snapshots", ServiceSnapshot),
                    ("rewards", Reward),
                ):
                    result = self.session.execute(
                        delete(model).where(model.case_id == case.id)
                    )
                    removed[label] = result.rowcount or 0
                self.session.delete(case)
                self.session.flush()
            except IntegrityError as exc:
                raise CascadeFailureError("CaseRecord", str(case_id), str(exc.orig)) from exc
            removed["cases"] = 1

            self._auditor.record(
                AuditAction.CASE_DELETED,
                actor_id=actor_id,
                target_table="student_cases",
                target_id=case_id,
                details="Case deleted with dependents",
                payload={"lead_id": str(lead_id), "removed": removed},
            )

        logger.warning(
            "case_deleted",
            extra={"case_id": str(case_id), "removed": removed},
        )
        return DeletionReport(case_id=case_id, removed=removed)
