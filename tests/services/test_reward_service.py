"""
Tests for RewardService.

Covers:
- Accrual on the paid transition and idempotent re-accrual
- Zero commissions and missing beneficiaries accrue nothing
- Caseless grants
- Eligibility evaluation of reward bundles
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from agency_kernel.domain.commission import CommissionType
from agency_kernel.domain.payout import RequestorRole, RewardStatus
from agency_kernel.domain.status_graph import CaseStatus
from agency_kernel.domain.values import Money
from agency_kernel.exceptions import CaseNotFoundError
from agency_kernel.models.audit_log import AuditAction
from agency_kernel.models.reward import Reward

NO_COMMISSION = (CommissionType.NONE, "0")


class TestAccrual:
    def test_paid_case_accrues_for_handler_and_agent(
        self, paid_case, reward_service, handler_id, agent_id,
    ):
        [lawyer] = reward_service.list_rewards(handler_id)
        [agent] = reward_service.list_rewards(agent_id)

        assert lawyer.role == RequestorRole.LAWYER
        assert lawyer.amount == Money.of("100", "ILS")
        assert lawyer.case_id == paid_case.id
        assert lawyer.status == RewardStatus.PENDING
        assert agent.role == RequestorRole.INFLUENCER
        assert agent.amount == Money.of("50", "ILS")

    def test_eligible_after_lock_window(self, paid_case, reward_service, handler_id):
        [reward] = reward_service.list_rewards(handler_id)
        assert reward.eligible_at == paid_case.paid_countdown_started_at + timedelta(days=20)

    def test_reaccrual_is_idempotent(
        self, paid_case, reward_service, auditor, session, test_actor_id,
    ):
        audits = auditor.count()

        created = reward_service.accrue_for_case(paid_case.id, test_actor_id)

        assert created == []
        assert auditor.count() == audits
        assert session.query(Reward).filter_by(case_id=paid_case.id).count() == 2

    def test_unpaid_case_accrues_nothing(self, make_case, reward_service, test_actor_id):
        case = make_case()
        assert reward_service.accrue_for_case(case.id, test_actor_id) == []

    def test_unknown_case(self, reward_service, test_actor_id):
        with pytest.raises(CaseNotFoundError):
            reward_service.accrue_for_case(uuid4(), test_actor_id)

    def test_zero_commission_and_no_agent(
        self, make_case, make_service, walk_case, snapshot_service, reward_service,
        test_actor_id, handler_id, agent_id,
    ):
        case = make_case(with_agent=False)
        walk_case(case.id, CaseStatus.PROFILE_FILLED)
        service = make_service(team=NO_COMMISSION, influencer=NO_COMMISSION)
        snapshot_service.attach(case.id, [service.id], test_actor_id)

        walk_case(case.id, CaseStatus.PAID)

        assert reward_service.list_rewards(handler_id) == []
        assert reward_service.list_rewards(agent_id) == []

    def test_missing_reward_is_backfilled(
        self, paid_case, reward_service, session, auditor, test_actor_id, agent_id,
    ):
        row = session.query(Reward).filter_by(user_id=agent_id).one()
        session.delete(row)
        session.flush()

        [created] = reward_service.accrue_for_case(paid_case.id, test_actor_id)

        assert created.user_id == agent_id
        assert created.role == RequestorRole.INFLUENCER
        assert auditor.get_trace("student_cases", paid_case.id).last_action == (
            AuditAction.REWARDS_ACCRUED
        )


class TestGrant:
    def test_caseless_grant(self, reward_service, deterministic_clock, test_actor_id):
        student = uuid4()

        reward = reward_service.grant(
            student, RequestorRole.STUDENT, Money.of("30", "ILS"), test_actor_id,
        )

        assert reward.case_id is None
        assert reward.created_at == deterministic_clock.now()
        assert reward.eligible_at == deterministic_clock.now() + timedelta(days=20)
        assert reward_service.requestable_rewards(student) == [reward]

    def test_role_string_accepted(self, reward_service, test_actor_id):
        reward = reward_service.grant(uuid4(), "student", Money.of("5", "EUR"), test_actor_id)
        assert reward.role == RequestorRole.STUDENT


class TestEvaluate:
    def test_bundle_waits_for_latest_anchor(
        self, reward_service, session, deterministic_clock, test_actor_id,
    ):
        student = uuid4()
        first = reward_service.grant(student, RequestorRole.STUDENT, Money.of("5", "ILS"), test_actor_id)
        deterministic_clock.advance_days(3)
        second = reward_service.grant(student, RequestorRole.STUDENT, Money.of("5", "ILS"), test_actor_id)
        deterministic_clock.set_time(first.eligible_at)

        rows = [session.get(Reward, first.id), session.get(Reward, second.id)]
        eligibility = reward_service.evaluate(rows)

        assert eligibility.eligible_at == second.eligible_at
        assert eligibility.ineligible_reward_ids == (second.id,)
        assert not eligibility.is_eligible

        deterministic_clock.set_time(second.eligible_at)
        assert reward_service.evaluate(rows).is_eligible

    def test_list_rewards_filters_by_status(
        self, paid_case, reward_service, handler_id,
    ):
        assert reward_service.list_rewards(handler_id, [RewardStatus.PAID]) == []
        assert len(reward_service.list_rewards(handler_id, ["pending"])) == 1
