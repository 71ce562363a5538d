"""
RewardService -- commission accrual and payout-eligibility evaluation.

Responsibility:
    Turns a paid case's commissions into rewards owed to its handler and
    referral agent, grants caseless rewards (referral cashback), and
    evaluates when a set of rewards leaves the payout lock window.

Architecture position:
    Kernel > Services -- called by CaseService on the transition into
    ``paid`` and by PayoutService when a request is created or approved.

Invariants enforced:
    - Idempotent accrual: at most one reward per (case, beneficiary, role);
      re-running accrual for a case creates nothing new.
    - Zero commissions accrue nothing.
    - A reward tied to a case is eligible ``lock_days`` after the case's
      ``paid_countdown_started_at``; a caseless reward ``lock_days`` after
      its own ``created_at``.

Failure modes:
    - CaseNotFoundError: accrual requested for an unknown case.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from agency_kernel.domain.clock import Clock, SystemClock
from agency_kernel.domain.payout import (
    PayoutEligibility,
    RequestorRole,
    RewardInfo,
    RewardStatus,
)
from agency_kernel.domain.policy import AgencyPolicy, PolicySource, as_policy_source
from agency_kernel.domain.sla import bulk_eligible_at, payout_eligible_at
from agency_kernel.domain.status_graph import SETTLED_CASE_STATUSES
from agency_kernel.domain.values import Money
from agency_kernel.exceptions import CaseNotFoundError
from agency_kernel.logging_config import get_logger
from agency_kernel.models.audit_log import AuditAction
from agency_kernel.models.case import CaseRecord
from agency_kernel.models.reward import Reward
from agency_kernel.services.auditor_service import AuditorService
from agency_kernel.services.base import BaseService

logger = get_logger("services.reward")


class RewardService(BaseService):
    """
    Service for accruing rewards and evaluating their payout eligibility.

    Non-goals:
        - Does NOT claim or settle rewards; PayoutService owns those
          transitions.
    """

    def __init__(
        self,
        session: Session,
        auditor: AuditorService,
        clock: Clock | None = None,
        policy: AgencyPolicy | PolicySource | None = None,
    ):
        super().__init__(session)
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._policy_source = as_policy_source(policy)

    @property
    def policy(self) -> AgencyPolicy:
        return self._policy_source.current()

    # Accrual

    def accrue_locked(self, case: CaseRecord) -> list[Reward]:
        """
        Create the missing rewards for ``case``.

        The caller holds the case row lock and owns the unit of work and
        its audit entry.  Returns only the rewards created by this call.
        """
        beneficiaries = (
            (case.assigned_lawyer_id, RequestorRole.LAWYER, case.lawyer_commission_minor),
            (case.referral_agent_id, RequestorRole.INFLUENCER, case.influencer_commission_minor),
        )
        existing = {
            (r.user_id, r.role)
            for r in self.session.execute(
                select(Reward).where(Reward.case_id == case.id)
            ).scalars()
        }

        created: list[Reward] = []
        now = self._clock.now()
        for user_id, role, amount_minor in beneficiaries:
            if user_id is None or amount_minor == 0:
                continue
            if (user_id, role.value) in existing:
                continue
            reward = Reward(
                user_id=user_id,
                role=role.value,
                case_id=case.id,
                amount_minor=amount_minor,
                currency=case.currency,
                status=RewardStatus.PENDING.value,
                created_at=now,
            )
            self.session.add(reward)
            created.append(reward)

        if created:
            self.session.flush()
            logger.info(
                "rewards_accrued",
                extra={
                    "case_id": str(case.id),
                    "reward_ids": [str(r.id) for r in created],
                },
            )
        return created

    def accrue_for_case(self, case_id: UUID, actor_id: UUID) -> list[RewardInfo]:
        """
        Accrue any rewards a settled case is still missing.

        Safe to call repeatedly; a case that already has its rewards, or
        is not yet paid, accrues nothing and writes no audit entry.
        """
        with self.unit_of_work("accrue_for_case", "CaseRecord", case_id):
            case = self._load_for_update(CaseRecord, case_id)
            if case is None:
                raise CaseNotFoundError(str(case_id))
            if case.status_enum not in SETTLED_CASE_STATUSES:
                logger.info(
                    "reward_accrual_skipped",
                    extra={"case_id": str(case_id), "status": case.status},
                )
                return []

            created = self.accrue_locked(case)
            if created:
                self._auditor.record(
                    AuditAction.REWARDS_ACCRUED,
                    actor_id=actor_id,
                    target_table="student_cases",
                    target_id=case.id,
                    details=f"Accrued {len(created)} reward(s)",
                    payload={
                        "reward_ids": [str(r.id) for r in created],
                        "amounts": {r.role: r.amount_minor for r in created},
                    },
                )
            infos = [r.to_dto(self.eligible_at_for(r, case)) for r in created]
        return infos

    def grant(
        self,
        user_id: UUID,
        role: RequestorRole,
        amount: Money,
        actor_id: UUID,
    ) -> RewardInfo:
        """Grant a reward not tied to any case (e.g. student referral cashback)."""
        role = RequestorRole(role)
        with self.unit_of_work("grant_reward", "Reward"):
            reward = Reward(
                user_id=user_id,
                role=role.value,
                case_id=None,
                amount_minor=amount.minor_units,
                currency=amount.currency.code,
                status=RewardStatus.PENDING.value,
                created_at=self._clock.now(),
            )
            self.session.add(reward)
            self.session.flush()
            self._auditor.record(
                AuditAction.REWARDS_ACCRUED,
                actor_id=actor_id,
                target_table="rewards",
                target_id=reward.id,
                details=f"Granted {amount} to {role.value} {user_id}",
                payload={"user_id": str(user_id), "amount_minor": amount.minor_units},
            )
        logger.info(
            "reward_granted",
            extra={"reward_id": str(reward.id), "user_id": str(user_id), "role": role.value},
        )
        return reward.to_dto(self.eligible_at_for(reward))

    # Eligibility

    def anchor_for(self, reward: Reward, case: CaseRecord | None = None) -> datetime:
        """The instant a reward's lock window starts counting from."""
        if reward.case_id is None:
            return reward.created_at
        if case is None:
            case = self.session.get(CaseRecord, reward.case_id)
        if case is None or case.paid_countdown_started_at is None:
            return reward.created_at
        return case.paid_countdown_started_at

    def eligible_at_for(self, reward: Reward, case: CaseRecord | None = None) -> datetime:
        return payout_eligible_at(self.anchor_for(reward, case), self.policy.payout_lock_days)

    def evaluate(self, rewards: Sequence[Reward]) -> PayoutEligibility:
        """
        Eligibility of a bundle of rewards at the clock's ``now``.

        The bundle is governed by its latest anchor.
        """
        now = self._clock.now()
        lock_days = self.policy.payout_lock_days
        anchors = {r.id: self.anchor_for(r) for r in rewards}
        eligible_at = bulk_eligible_at(anchors.values(), lock_days)
        ineligible = tuple(
            rid for rid, anchor in anchors.items()
            if now < payout_eligible_at(anchor, lock_days)
        )
        return PayoutEligibility(
            eligible_at=eligible_at,
            evaluated_at=now,
            ineligible_reward_ids=ineligible,
        )

    # Queries

    def list_rewards(
        self,
        user_id: UUID,
        statuses: Iterable[RewardStatus] | None = None,
    ) -> list[RewardInfo]:
        stmt = select(Reward).where(Reward.user_id == user_id)
        if statuses is not None:
            stmt = stmt.where(Reward.status.in_([RewardStatus(s).value for s in statuses]))
        rows = self.session.execute(stmt.order_by(Reward.created_at)).scalars().all()
        return [r.to_dto(self.eligible_at_for(r)) for r in rows]

    def requestable_rewards(self, user_id: UUID) -> list[RewardInfo]:
        """Pending rewards not claimed by any request, eligible or not."""
        return self.list_rewards(user_id, [RewardStatus.PENDING])
