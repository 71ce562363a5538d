"""
PayoutService -- payout request workflow.

Responsibility:
    Creates payout requests from a requestor's pending rewards and drives
    them through ``pending -> approved -> paid`` or ``pending -> rejected``,
    cascading each decision to the linked rewards.

Architecture position:
    Kernel > Services -- imperative shell over ``domain.payout``.

Invariants enforced:
    - Terminality: ``paid`` and ``rejected`` accept no further transition;
      attempts raise ``PayoutAlreadyResolvedError`` and change nothing.
    - Each transition timestamp is set once, by its own transition.
    - Rejection (and requestor cancellation) returns every linked reward
      to ``pending`` and clears its request link and requested marker.
    - ``mark_paid`` writes the request, all linked rewards, one
      transaction-log row and the audit entry in one savepoint.  Rewards
      already paid by this request are skipped, so a retried call never
      double-settles.
    - Lock window: requests tied to rewards inside the lock window are
      blocked, or persisted flagged and approved only on explicit
      acknowledgement, per ``payout.ineligible_policy``.
    - Bulk actions run each id in its own savepoint and report every
      failure in ``BulkOutcome.failed``.

Failure modes:
    - PayoutNotFoundError, PayoutAlreadyResolvedError,
      InvalidPayoutTransitionError.
    - IneligiblePayoutError: lock window still running.
    - EmptyPayoutRequestError, RewardNotAvailableError,
      CurrencyMismatchError, PayoutBelowThresholdError on request creation.
    - NotRequestOwnerError: cancel by someone other than the requestor.
    - RejectReasonRequiredError: reject or bulk reject with a blank reason.
    - CascadeFailureError: a linked reward is missing or claimed elsewhere.
    - ConcurrentModificationError: stale ``expected_version`` or lost race.
"""

from collections.abc import Callable, Iterable, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from agency_kernel.domain.clock import Clock, SystemClock
from agency_kernel.domain.payout import (
    CANCELLED_BY_USER_REASON,
    BulkOutcome,
    PaymentMethod,
    PayoutRequestInfo,
    PayoutStatus,
    RequestorRole,
    RewardStatus,
    TERMINAL_PAYOUT_STATUSES,
    can_transition_payout,
)
from agency_kernel.domain.policy import AgencyPolicy, PolicySource, as_policy_source
from agency_kernel.domain.values import Money
from agency_kernel.exceptions import (
    AgencyKernelError,
    CascadeFailureError,
    CurrencyMismatchError,
    EmptyPayoutRequestError,
    IneligiblePayoutError,
    InvalidPayoutTransitionError,
    NotRequestOwnerError,
    PayoutAlreadyResolvedError,
    PayoutBelowThresholdError,
    PayoutNotFoundError,
    RejectReasonRequiredError,
    RewardNotAvailableError,
)
from agency_kernel.logging_config import get_logger
from agency_kernel.models.audit_log import AuditAction
from agency_kernel.models.case import CaseRecord, Lead
from agency_kernel.models.payout import PayoutRequest, PayoutTransaction
from agency_kernel.models.reward import Reward
from agency_kernel.services.auditor_service import AuditorService
from agency_kernel.services.base import BaseService
from agency_kernel.services.notifications import NotificationOutbox
from agency_kernel.services.reward_service import RewardService

logger = get_logger("services.payout")


class PayoutService(BaseService):
    """
    Service for the payout request lifecycle.

    Contract:
        Accepts request ids and returns frozen ``PayoutRequestInfo`` DTOs.
        Every decision writes one audit entry and queues a
        ``payout_decided`` notification for after commit.

    Non-goals:
        - Does NOT move money; ``mark_paid`` records a payment made
          elsewhere.
        - Does NOT call ``session.commit()``; caller controls boundaries.
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

    def _get_request_for_update(self, request_id: UUID) -> PayoutRequest:
        request = self._load_for_update(PayoutRequest, request_id)
        if request is None:
            raise PayoutNotFoundError(str(request_id))
        return request

    def _require_transition(self, request: PayoutRequest, target: PayoutStatus) -> None:
        current = request.status_enum
        if can_transition_payout(current, target):
            return
        logger.warning(
            "payout_transition_rejected",
            extra={
                "request_id": str(request.id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        if current in TERMINAL_PAYOUT_STATUSES:
            raise PayoutAlreadyResolvedError(str(request.id), current.value, target.value)
        raise InvalidPayoutTransitionError(str(request.id), current.value, target.value)

    def _notify(self, request: PayoutRequest) -> None:
        if self._outbox is not None:
            self._outbox.payout_decided(
                request.id, request.status, requestor_id=str(request.requestor_id),
            )

    # =========================================================================
    # Request creation
    # =========================================================================

    def request_payout(
        self,
        requestor_id: UUID,
        requestor_role: RequestorRole | str,
        reward_ids: Sequence[UUID],
    ) -> PayoutRequestInfo:
        """
        Bundle pending rewards into one payout request.

        Claimed rewards move to ``approved`` and carry the request id and
        ``payout_requested_at``.

        Raises:
            EmptyPayoutRequestError: No reward ids.
            RewardNotAvailableError: A reward is unknown, belongs to someone
                else, has another role, or is not pending.
            CurrencyMismatchError: Rewards in more than one currency.
            PayoutBelowThresholdError: Total under ``payout.min_threshold``.
            IneligiblePayoutError: Lock window running and policy is ``block``.
        """
        role = RequestorRole(requestor_role)
        unique_ids = list(dict.fromkeys(reward_ids))
        if not unique_ids:
            raise EmptyPayoutRequestError(str(requestor_id))

        with self.unit_of_work("request_payout", "PayoutRequest"):
            rewards = [self._claimable_reward(rid, requestor_id, role) for rid in unique_ids]

            currency = rewards[0].currency
            for reward in rewards[1:]:
                if reward.currency != currency:
                    raise CurrencyMismatchError(currency, reward.currency)
            total = Money(sum(r.amount_minor for r in rewards), currency)
            threshold = self.policy.min_payout(currency)
            if total < threshold:
                logger.warning(
                    "payout_below_threshold",
                    extra={"requestor_id": str(requestor_id), "amount": str(total)},
                )
                raise PayoutBelowThresholdError(
                    str(total.amount), str(threshold.amount), currency,
                )

            eligibility = self._rewards.evaluate(rewards)
            flagged = not eligibility.is_eligible
            if flagged and self.policy.blocks_ineligible_payouts:
                logger.warning(
                    "payout_request_ineligible",
                    extra={
                        "requestor_id": str(requestor_id),
                        "eligible_at": eligibility.eligible_at,
                    },
                )
                raise IneligiblePayoutError(
                    eligibility.eligible_at,
                    [str(r) for r in eligibility.ineligible_reward_ids],
                )

            now = self._clock.now()
            request = PayoutRequest(
                requestor_id=requestor_id,
                requestor_role=role.value,
                amount_minor=total.minor_units,
                currency=currency,
                status=PayoutStatus.PENDING.value,
                linked_reward_ids=[str(r.id) for r in rewards],
                linked_student_names=self._student_names(rewards),
                requested_at=now,
                eligible_at=eligibility.eligible_at,
                eligibility_flagged=flagged,
            )
            self.session.add(request)
            self.session.flush()

            for reward in rewards:
                reward.status = RewardStatus.APPROVED.value
                reward.payout_request_id = request.id
                reward.payout_requested_at = now
            self.session.flush()

            self._auditor.record(
                AuditAction.PAYOUT_REQUESTED,
                actor_id=requestor_id,
                target_table="payout_requests",
                target_id=request.id,
                details=f"Payout of {total} requested",
                payload={
                    "reward_ids": request.linked_reward_ids,
                    "amount_minor": total.minor_units,
                    "currency": currency,
                    "eligible_at": eligibility.eligible_at,
                    "eligibility_flagged": flagged,
                },
            )

        logger.info(
            "payout_request_created",
            extra={
                "request_id": str(request.id),
                "requestor_id": str(requestor_id),
                "amount": str(total),
                "reward_count": len(rewards),
                "eligibility_flagged": flagged,
            },
        )
        return request.to_dto()

    def _claimable_reward(self, reward_id: UUID, requestor_id: UUID, role: RequestorRole) -> Reward:
        reward = self._load_for_update(Reward, reward_id)
        if reward is None:
            raise RewardNotAvailableError(str(reward_id), "not found")
        if reward.user_id != requestor_id:
            raise RewardNotAvailableError(str(reward_id), "belongs to another user")
        if reward.role != role.value:
            raise RewardNotAvailableError(str(reward_id), f"accrued for role {reward.role}")
        if reward.status != RewardStatus.PENDING.value or reward.payout_request_id is not None:
            raise RewardNotAvailableError(str(reward_id), f"status is {reward.status}")
        return reward

    def _student_names(self, rewards: Iterable[Reward]) -> list[str]:
        case_ids = {r.case_id for r in rewards if r.case_id is not None}
        if not case_ids:
            return []
        names = self.session.execute(
            select(Lead.full_name)
            .join(CaseRecord, CaseRecord.lead_id == Lead.id)
            .where(CaseRecord.id.in_(case_ids))
            .order_by(Lead.full_name)
        ).scalars().all()
        return list(names)

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve(
        self,
        request_id: UUID,
        actor_id: UUID,
        notes: str | None = None,
        acknowledge_ineligible: bool = False,
        expected_version: int | None = None,
    ) -> PayoutRequestInfo:
        """
        Approve a pending request. No money moves yet.

        Raises:
            IneligiblePayoutError: Lock window still running, under the
                ``block`` policy, or under ``flag`` without
                ``acknowledge_ineligible``.
        """
        with self.unit_of_work("approve_payout", "PayoutRequest", request_id):
            request = self._get_request_for_update(request_id)
            self._check_version("PayoutRequest", request, expected_version)
            self._require_transition(request, PayoutStatus.APPROVED)

            now = self._clock.now()
            early = now < request.eligible_at
            if early and (self.policy.blocks_ineligible_payouts or not acknowledge_ineligible):
                logger.warning(
                    "payout_approval_ineligible",
                    extra={
                        "request_id": str(request_id),
                        "eligible_at": request.eligible_at,
                        "acknowledged": acknowledge_ineligible,
                    },
                )
                raise IneligiblePayoutError(
                    request.eligible_at, [str(rid) for rid in request.reward_ids],
                )

            request.status = PayoutStatus.APPROVED.value
            request.approved_at = now
            request.approved_by = actor_id
            if early:
                request.eligibility_flagged = True
            if notes is not None:
                request.admin_notes = notes
            self.session.flush()

            self._auditor.record(
                AuditAction.PAYOUT_APPROVED,
                actor_id=actor_id,
                target_table="payout_requests",
                target_id=request.id,
                details=notes,
                payload={
                    "amount_minor": request.amount_minor,
                    "currency": request.currency,
                    "ineligible_acknowledged": early,
                },
            )

        logger.info(
            "payout_approved",
            extra={"request_id": str(request_id), "approved_by": str(actor_id)},
        )
        self._notify(request)
        return request.to_dto()

    def reject(
        self,
        request_id: UUID,
        actor_id: UUID,
        reason: str,
        expected_version: int | None = None,
    ) -> PayoutRequestInfo:
        """Reject a pending request and return its rewards to ``pending``."""
        if not reason or not reason.strip():
            raise RejectReasonRequiredError(str(request_id))

        with self.unit_of_work("reject_payout", "PayoutRequest", request_id):
            request = self._get_request_for_update(request_id)
            self._check_version("PayoutRequest", request, expected_version)
            self._reject_locked(request, actor_id, reason.strip(), AuditAction.PAYOUT_REJECTED)

        logger.info(
            "payout_rejected",
            extra={"request_id": str(request_id), "rejected_by": str(actor_id)},
        )
        self._notify(request)
        return request.to_dto()

    def cancel_request(self, request_id: UUID, requestor_id: UUID) -> PayoutRequestInfo:
        """
        Withdraw one's own pending request.

        Recorded as ``rejected`` with reason ``Cancelled by user``.
        """
        with self.unit_of_work("cancel_payout", "PayoutRequest", request_id):
            request = self._get_request_for_update(request_id)
            if request.requestor_id != requestor_id:
                logger.warning(
                    "payout_cancel_not_owner",
                    extra={"request_id": str(request_id), "actor_id": str(requestor_id)},
                )
                raise NotRequestOwnerError(str(request_id), str(requestor_id))
            self._reject_locked(
                request, requestor_id, CANCELLED_BY_USER_REASON, AuditAction.PAYOUT_CANCELLED,
            )

        logger.info("payout_cancelled", extra={"request_id": str(request_id)})
        self._notify(request)
        return request.to_dto()

    def _reject_locked(
        self,
        request: PayoutRequest,
        actor_id: UUID,
        reason: str,
        action: AuditAction,
    ) -> None:
        self._require_transition(request, PayoutStatus.REJECTED)
        now = self._clock.now()
        request.status = PayoutStatus.REJECTED.value
        request.rejected_at = now
        request.rejected_by = actor_id
        request.reject_reason = reason

        restored = []
        for reward_id in request.reward_ids:
            reward = self._load_for_update(Reward, reward_id)
            if reward is None or reward.payout_request_id != request.id:
                continue
            reward.status = RewardStatus.PENDING.value
            reward.payout_request_id = None
            reward.payout_requested_at = None
            restored.append(str(reward.id))
        self.session.flush()

        self._auditor.record(
            action,
            actor_id=actor_id,
            target_table="payout_requests",
            target_id=request.id,
            details=reason,
            payload={"restored_reward_ids": restored},
        )

    def mark_paid(
        self,
        request_id: UUID,
        actor_id: UUID,
        payment_method: PaymentMethod | str,
        transaction_ref: str | None = None,
        notes: str | None = None,
        expected_version: int | None = None,
    ) -> PayoutRequestInfo:
        """
        Record payment of an approved request.

        Request, linked rewards, transaction-log row and audit entry are
        written together.

        Raises:
            InvalidPayoutTransitionError: Request still pending.
            PayoutAlreadyResolvedError: Request already paid or rejected.
            CascadeFailureError: A linked reward is missing or claimed by
                another request.
        """
        method = PaymentMethod(payment_method)

        with self.unit_of_work("mark_payout_paid", "PayoutRequest", request_id):
            request = self._get_request_for_update(request_id)
            self._check_version("PayoutRequest", request, expected_version)
            self._require_transition(request, PayoutStatus.PAID)

            now = self._clock.now()
            request.status = PayoutStatus.PAID.value
            request.paid_at = now
            request.paid_by = actor_id
            request.payment_method = method.value
            if notes is not None:
                request.admin_notes = notes

            settled = []
            for reward_id in request.reward_ids:
                reward = self._load_for_update(Reward, reward_id)
                if reward is None:
                    raise CascadeFailureError(
                        "PayoutRequest", str(request_id), f"reward {reward_id} missing",
                    )
                if reward.payout_request_id != request.id:
                    raise CascadeFailureError(
                        "PayoutRequest", str(request_id),
                        f"reward {reward_id} is linked to another request",
                    )
                if reward.status == RewardStatus.PAID.value:
                    continue
                reward.status = RewardStatus.PAID.value
                reward.paid_at = now
                settled.append(str(reward.id))

            transaction = PayoutTransaction(
                payout_request_id=request.id,
                amount_minor=request.amount_minor,
                currency=request.currency,
                payment_method=method.value,
                transaction_ref=transaction_ref,
                notes=notes,
                paid_by=actor_id,
                paid_at=now,
            )
            self.session.add(transaction)
            self.session.flush()

            self._auditor.record(
                AuditAction.PAYOUT_PAID,
                actor_id=actor_id,
                target_table="payout_requests",
                target_id=request.id,
                details=f"Paid via {method.value}",
                payload={
                    "amount_minor": request.amount_minor,
                    "currency": request.currency,
                    "payment_method": method.value,
                    "transaction_ref": transaction_ref,
                    "transaction_id": str(transaction.id),
                    "settled_reward_ids": settled,
                },
            )

        logger.info(
            "payout_marked_paid",
            extra={
                "request_id": str(request_id),
                "amount": str(request.amount),
                "payment_method": method.value,
                "rewards_settled": len(settled),
            },
        )
        self._notify(request)
        return request.to_dto()

    # =========================================================================
    # Bulk actions
    # =========================================================================

    def bulk_approve(
        self,
        request_ids: Sequence[UUID],
        actor_id: UUID,
        notes: str | None = None,
        acknowledge_ineligible: bool = False,
    ) -> BulkOutcome:
        return self._bulk(
            "bulk_approve",
            request_ids,
            lambda rid: self.approve(
                rid, actor_id, notes=notes, acknowledge_ineligible=acknowledge_ineligible,
            ),
        )

    def bulk_reject(
        self,
        request_ids: Sequence[UUID],
        actor_id: UUID,
        reason: str,
    ) -> BulkOutcome:
        if not reason or not reason.strip():
            raise RejectReasonRequiredError(", ".join(str(rid) for rid in request_ids))
        return self._bulk(
            "bulk_reject",
            request_ids,
            lambda rid: self.reject(rid, actor_id, reason),
        )

    def _bulk(
        self,
        operation: str,
        request_ids: Sequence[UUID],
        action: Callable[[UUID], PayoutRequestInfo],
    ) -> BulkOutcome:
        succeeded: list[UUID] = []
        failed: dict[UUID, Exception] = {}
        for request_id in dict.fromkeys(request_ids):
            try:
                action(request_id)
            except AgencyKernelError as exc:
                failed[request_id] = exc
            else:
                succeeded.append(request_id)

        outcome = BulkOutcome(succeeded=tuple(succeeded), failed=failed)
        log = logger.info if outcome.all_succeeded else logger.warning
        log(
            f"{operation}_completed",
            extra={
                "attempted": outcome.attempted,
                "succeeded": len(succeeded),
                "failed": {str(k): type(v).__name__ for k, v in failed.items()},
            },
        )
        return outcome

