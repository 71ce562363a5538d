"""
Tests for SequenceService.

Covers:
- Monotonic allocation per counter name
- Independent counters
- Rolled-back allocations are returned
"""

from agency_kernel.models.audit_log import AuditAction
from agency_kernel.services.sequence_service import SequenceService


class TestNextValue:
    def test_starts_at_one_and_increments(self, session):
        sequence = SequenceService(session)

        values = [sequence.next_value("invoices") for _ in range(4)]

        assert values == [1, 2, 3, 4]
        assert sequence.current_value("invoices") == 4

    def test_counters_are_independent(self, session):
        sequence = SequenceService(session)
        sequence.next_value("a")
        sequence.next_value("a")

        assert sequence.next_value("b") == 1
        assert sequence.current_value("a") == 2

    def test_unused_counter_is_zero(self, session):
        assert SequenceService(session).current_value("never") == 0

    def test_rollback_returns_value(self, session):
        sequence = SequenceService(session)
        sequence.next_value(SequenceService.AUDIT_LOG)
        session.commit()

        sequence.next_value(SequenceService.AUDIT_LOG)
        session.rollback()

        assert sequence.next_value(SequenceService.AUDIT_LOG) == 2

    def test_audit_log_uses_its_counter(self, auditor, session, test_actor_id):
        auditor.record(AuditAction.CASE_ASSIGNED, test_actor_id)
        auditor.record(AuditAction.CASE_CONTACTED, test_actor_id)

        assert SequenceService(session).current_value(SequenceService.AUDIT_LOG) == 2
