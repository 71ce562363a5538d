"""
Tests for the notification outbox.

Covers:
- Delivery only after the outer transaction commits
- Rollback discards, a failed operation inside a savepoint does not
- Dispatcher failures are logged, never raised
- Detaching the outbox from its session
"""

from uuid import uuid4

import pytest

from agency_kernel.domain.status_graph import CaseStatus
from agency_kernel.exceptions import InvalidTransitionError
from agency_kernel.services.notifications import (
    LoggingDispatcher,
    Notification,
    NotificationKind,
    NotificationOutbox,
)


class ExplodingDispatcher:
    def dispatch(self, notification):
        raise RuntimeError("smtp down")


class TestDelivery:
    def test_nothing_sent_before_commit(self, make_case, outbox, dispatcher):
        make_case()

        assert dispatcher.sent == []
        assert [n.kind for n in outbox.pending] == [NotificationKind.STATUS_CHANGED]

    def test_commit_dispatches_in_order(
        self, make_case, case_service, session, outbox, dispatcher, test_actor_id,
    ):
        case = make_case()
        case_service.transition_status(case.id, CaseStatus.CONTACTED, test_actor_id)

        session.commit()

        assert [n.payload for n in dispatcher.sent] == [
            {"from": "new", "to": "assigned"},
            {"from": "assigned", "to": "contacted"},
        ]
        assert all(n.subject_id == case.id for n in dispatcher.sent)
        assert outbox.pending == ()

    def test_unassigned_conversion_notifies_nobody(self, make_case, outbox):
        make_case(assign=False)
        assert outbox.pending == ()

    def test_rollback_discards(self, make_case, session, outbox, dispatcher):
        make_case()

        session.rollback()
        session.commit()

        assert outbox.pending == ()
        assert dispatcher.sent == []

    def test_failed_operation_keeps_earlier_notifications(
        self, make_case, case_service, session, outbox, dispatcher, test_actor_id,
    ):
        case = make_case()

        with pytest.raises(InvalidTransitionError):
            case_service.transition_status(case.id, CaseStatus.PAID, test_actor_id)
        session.commit()

        assert [n.payload["to"] for n in dispatcher.sent] == ["assigned"]


class TestDispatcherFailures:
    def test_failure_is_logged_not_raised(self, session, captured_logs):
        outbox = NotificationOutbox(session, ExplodingDispatcher())
        outbox.payout_decided(uuid4(), "approved")

        session.commit()
        outbox.close()

        failures = [r for r in captured_logs() if r["message"] == "notification_dispatch_failed"]
        assert len(failures) == 1
        assert failures[0]["kind"] == "payout_decided"

    def test_logging_dispatcher(self, captured_logs):
        LoggingDispatcher().dispatch(
            Notification(NotificationKind.PAYOUT_DECIDED, uuid4(), {"status": "paid"})
        )

        [record] = [r for r in captured_logs() if r["message"] == "notification_dispatched"]
        assert record["payload"] == {"status": "paid"}


class TestClose:
    def test_closed_outbox_no_longer_listens(self, session, dispatcher):
        outbox = NotificationOutbox(session, dispatcher)
        outbox.payout_decided(uuid4(), "rejected")

        outbox.close()
        session.commit()

        assert dispatcher.sent == []
        assert len(outbox.pending) == 1

    def test_close_twice_is_harmless(self, session, dispatcher):
        outbox = NotificationOutbox(session, dispatcher)
        outbox.close()
        outbox.close()
