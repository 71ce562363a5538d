"""
Tests for PayoutSelector.

Covers:
- Request lookup and listing filters
- The decision queue puts flagged requests last
- Transaction log queries
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from agency_kernel.domain.payout import PaymentMethod, PayoutStatus, RequestorRole
from agency_kernel.domain.policy import AgencyPolicy, IneligiblePayoutPolicy
from agency_kernel.domain.values import Money
from agency_kernel.exceptions import PayoutNotFoundError
from agency_kernel.selectors.payout_selector import PayoutSelector
from agency_kernel.services.payout_service import PayoutService


@pytest.fixture
def selector(session):
    return PayoutSelector(session)


@pytest.fixture
def flag_payouts(session, auditor, deterministic_clock):
    policy = AgencyPolicy(ineligible_payout_policy=IneligiblePayoutPolicy.FLAG)
    return PayoutService(session, auditor, deterministic_clock, policy)


class TestRequests:
    def test_unknown_request(self, selector):
        with pytest.raises(PayoutNotFoundError):
            selector.get_request(uuid4())

    def test_list_filters(
        self, paid_case, reward_service, flag_payouts, selector, deterministic_clock,
        handler_id, agent_id, test_actor_id,
    ):
        [lawyer_reward] = reward_service.requestable_rewards(handler_id)
        [agent_reward] = reward_service.requestable_rewards(agent_id)
        first = flag_payouts.request_payout(handler_id, RequestorRole.LAWYER, [lawyer_reward.id])
        deterministic_clock.advance(1)
        second = flag_payouts.request_payout(agent_id, RequestorRole.INFLUENCER, [agent_reward.id])
        flag_payouts.reject(first.id, test_actor_id, "Duplicate")

        assert [r.id for r in selector.list_requests()] == [first.id, second.id]
        assert [r.id for r in selector.list_requests(status="pending")] == [second.id]
        assert [r.id for r in selector.list_requests(requestor_id=handler_id)] == [first.id]

    def test_awaiting_decision_puts_flagged_last(
        self, paid_case, reward_service, flag_payouts, selector, deterministic_clock,
        handler_id, agent_id, test_actor_id,
    ):
        [lawyer_reward] = reward_service.requestable_rewards(handler_id)
        flagged = flag_payouts.request_payout(handler_id, RequestorRole.LAWYER, [lawyer_reward.id])

        deterministic_clock.set_time(paid_case.paid_countdown_started_at + timedelta(days=20))
        student = uuid4()
        grant = reward_service.grant(student, RequestorRole.STUDENT, Money.of("5", "ILS"), test_actor_id)
        deterministic_clock.set_time(grant.eligible_at)
        clean = flag_payouts.request_payout(student, RequestorRole.STUDENT, [grant.id])

        queue = selector.awaiting_decision()

        assert [r.id for r in queue] == [clean.id, flagged.id]
        assert [r.eligibility_flagged for r in queue] == [False, True]


class TestTransactions:
    def test_log_rows(
        self, paid_case, reward_service, payout_service, selector, deterministic_clock,
        handler_id, test_actor_id,
    ):
        deterministic_clock.set_time(paid_case.paid_countdown_started_at + timedelta(days=20))
        [reward] = reward_service.requestable_rewards(handler_id)
        request = payout_service.request_payout(handler_id, RequestorRole.LAWYER, [reward.id])
        payout_service.approve(request.id, test_actor_id)
        payout_service.mark_paid(request.id, test_actor_id, PaymentMethod.PAYPAL, notes="June run")

        [row] = selector.transactions()

        assert row.payout_request_id == request.id
        assert row.payment_method == PaymentMethod.PAYPAL
        assert row.notes == "June run"
        assert row.paid_by == test_actor_id
        assert selector.get_request(request.id).status == PayoutStatus.PAID
        assert selector.transactions(uuid4()) == []
