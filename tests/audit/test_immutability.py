"""
Tests for ORM immutability enforcement.

Covers:
- Audit entries cannot be updated or deleted
- Payout transaction rows cannot be updated or deleted
- Snapshot pricing is locked while payment fields stay writable
"""

from datetime import timedelta

import pytest

from agency_kernel.domain.payout import PaymentMethod, RequestorRole
from agency_kernel.exceptions import ImmutabilityViolationError
from agency_kernel.models.audit_log import AuditAction, AuditLogEntry
from agency_kernel.models.payout import PayoutTransaction
from agency_kernel.models.service import ServiceSnapshot


@pytest.fixture
def audit_entry(auditor, test_actor_id):
    return auditor.record(AuditAction.CASE_ASSIGNED, test_actor_id, "student_cases", "c-1")


@pytest.fixture
def payout_transaction(
    paid_case, reward_service, payout_service, deterministic_clock, session,
    handler_id, test_actor_id,
):
    deterministic_clock.set_time(paid_case.paid_countdown_started_at + timedelta(days=20))
    [reward] = reward_service.requestable_rewards(handler_id)
    request = payout_service.request_payout(handler_id, RequestorRole.LAWYER, [reward.id])
    payout_service.approve(request.id, test_actor_id)
    payout_service.mark_paid(request.id, test_actor_id, PaymentMethod.BANK_TRANSFER)
    return session.query(PayoutTransaction).filter_by(payout_request_id=request.id).one()


@pytest.fixture
def snapshot(make_case, make_service, snapshot_service, session, test_actor_id):
    case = make_case()
    info = snapshot_service.attach(case.id, [make_service().id], test_actor_id).attached[0]
    return session.get(ServiceSnapshot, info.id)


class TestAuditLogImmutability:
    def test_update_blocked(self, audit_entry, session):
        audit_entry.details = "rewritten"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "AuditLogEntry"

    def test_delete_blocked(self, audit_entry, session):
        session.delete(audit_entry)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_is_logged(self, audit_entry, session, captured_logs):
        audit_entry.action = AuditAction.CASE_DELETED.value
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

        [record] = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert record["operation"] == "UPDATE"
        assert record["entity_id"] == str(audit_entry.id)


class TestPayoutTransactionImmutability:
    def test_update_blocked(self, payout_transaction, session):
        payout_transaction.transaction_ref = "EDITED"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "PayoutTransaction"

    def test_delete_blocked(self, payout_transaction, session):
        session.delete(payout_transaction)

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestSnapshotPriceLock:
    @pytest.mark.parametrize(
        "field, value",
        [
            ("sale_price_minor", 1),
            ("service_name", "Renamed"),
            ("currency", "EUR"),
        ],
    )
    def test_pricing_fields_locked(self, snapshot, session, field, value):
        setattr(snapshot, field, value)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert field in exc_info.value.reason

    def test_payment_fields_writable(self, snapshot, session, deterministic_clock):
        snapshot.payment_status = "paid"
        snapshot.paid_at = deterministic_clock.now()

        session.flush()

        assert session.get(ServiceSnapshot, snapshot.id).payment_status == "paid"


class TestCommittedEntries:
    def test_failed_tamper_leaves_stored_row_intact(self, audit_entry, session):
        session.commit()
        audit_entry.details = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        session.rollback()

        assert session.get(AuditLogEntry, audit_entry.id).details is None
