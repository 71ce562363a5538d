"""
Concurrency tests for case mutations.

Covers:
- Two actors holding the same version race to ``paid``: one wins, the
  loser gets ConcurrentModificationError and ``paid_at`` is set once
- Without a version the loser re-reads and gets InvalidTransitionError
- A stale in-session object surfaces as ConcurrentModificationError
- Two actors attaching services: a stale version loses, otherwise both
  attachments add to the totals read under the row lock
- Real parallel writers on PostgreSQL (requires DATABASE_URL)

SQLite tests run against a file database so each session has its own
connection; the shared in-memory database cannot model two actors.
"""

import threading
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from agency_kernel.db.engine import create_engine_for_url, create_tables
from agency_kernel.domain.commission import CommissionType
from agency_kernel.domain.status_graph import CaseStatus
from agency_kernel.domain.values import Money
from agency_kernel.exceptions import ConcurrentModificationError, InvalidTransitionError
from agency_kernel.models.case import CaseRecord, Lead
from agency_kernel.models.service import MasterService
from agency_kernel.selectors.case_selector import CaseSelector
from agency_kernel.services.auditor_service import AuditorService
from agency_kernel.services.base import BaseService
from agency_kernel.services.case_service import CaseService
from agency_kernel.services.snapshot_service import SnapshotService

FAST_TRACK_REASON = "Paid at the front desk"


@pytest.fixture
def file_factory(tmp_path):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'race.db'}")
    create_tables(engine)
    yield sessionmaker(bind=engine, expire_on_commit=False)
    engine.dispose()


def _case_service(session, clock):
    return CaseService(session, AuditorService(session, clock), clock)


def _committed_case(factory, clock, actor_id, handler_id, target):
    """A committed case walked along the main path to ``target``."""
    with factory() as session:
        lead = Lead(full_name="Race Case", created_at=clock.now())
        session.add(lead)
        session.flush()
        service = _case_service(session, clock)
        case = service.convert_lead(lead.id, actor_id, handler_id=handler_id)
        for status in (
            CaseStatus.CONTACTED,
            CaseStatus.APPOINTMENT_SCHEDULED,
            CaseStatus.PROFILE_FILLED,
            CaseStatus.SERVICES_FILLED,
        ):
            case = service.transition_status(case.id, status, actor_id)
            if status == target:
                break
        session.commit()
        return case


def _read_version(factory, case_id):
    with factory() as session:
        return CaseSelector(session).get_case(case_id).version


def _snapshot_service(session, clock):
    return SnapshotService(session, AuditorService(session, clock), clock)


def _committed_services(factory, *prices):
    """Catalog services in ILS at 10% team commission, one per price."""
    with factory() as session:
        services = [
            MasterService(
                service_name=f"Service {price}",
                sale_price_minor=Money.of(price, "ILS").minor_units,
                currency="ILS",
                team_commission_type=CommissionType.PERCENTAGE.value,
                team_commission_value=Decimal("10"),
            )
            for price in prices
        ]
        session.add_all(services)
        session.commit()
        return [s.id for s in services]


class TestVersionedRace:
    def test_second_writer_with_same_version_loses(
        self, file_factory, deterministic_clock, test_actor_id, handler_id,
    ):
        case = _committed_case(
            file_factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.PROFILE_FILLED,
        )
        version_seen_by_a = _read_version(file_factory, case.id)
        version_seen_by_b = _read_version(file_factory, case.id)

        with file_factory() as session_a:
            winner = _case_service(session_a, deterministic_clock).override_status(
                case.id, CaseStatus.PAID, test_actor_id, FAST_TRACK_REASON,
                expected_version=version_seen_by_a,
            )
            session_a.commit()

        deterministic_clock.advance_hours(1)
        with file_factory() as session_b:
            with pytest.raises(ConcurrentModificationError) as exc_info:
                _case_service(session_b, deterministic_clock).override_status(
                    case.id, CaseStatus.PAID, test_actor_id, FAST_TRACK_REASON,
                    expected_version=version_seen_by_b,
                )
            session_b.rollback()

        assert exc_info.value.expected_version == version_seen_by_b
        assert exc_info.value.actual_version == winner.version
        assert exc_info.value.retryable

        with file_factory() as check:
            stored = CaseSelector(check).get_case(case.id)
        assert stored.status == CaseStatus.PAID
        assert stored.paid_at == winner.paid_at
        assert stored.version == winner.version

    def test_unversioned_loser_sees_new_state(
        self, file_factory, deterministic_clock, test_actor_id, handler_id,
    ):
        case = _committed_case(
            file_factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.PROFILE_FILLED,
        )
        with file_factory() as session_a:
            _case_service(session_a, deterministic_clock).override_status(
                case.id, CaseStatus.PAID, test_actor_id, FAST_TRACK_REASON,
            )
            session_a.commit()

        with file_factory() as session_b:
            with pytest.raises(InvalidTransitionError) as exc_info:
                _case_service(session_b, deterministic_clock).override_status(
                    case.id, CaseStatus.PAID, test_actor_id, FAST_TRACK_REASON,
                )
            session_b.rollback()

        assert exc_info.value.current_status == "paid"

    def test_racing_transitions_keep_one_audit_entry(
        self, file_factory, deterministic_clock, test_actor_id, handler_id,
    ):
        case = _committed_case(
            file_factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.PROFILE_FILLED,
        )
        version = _read_version(file_factory, case.id)

        for _ in range(2):
            with file_factory() as session:
                try:
                    _case_service(session, deterministic_clock).transition_status(
                        case.id, CaseStatus.SERVICES_FILLED, test_actor_id,
                        expected_version=version,
                    )
                    session.commit()
                except ConcurrentModificationError:
                    session.rollback()

        with file_factory() as check:
            trace = AuditorService(check).get_trace("student_cases", case.id)
        moves = [e for e in trace.entries if e.payload.get("to") == "services_filled"]
        assert len(moves) == 1
        assert trace.entries[-1] is moves[0]


class TestStaleObject:
    def test_stale_flush_translated(
        self, file_factory, deterministic_clock, test_actor_id, handler_id,
    ):
        case = _committed_case(
            file_factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.CONTACTED,
        )
        session_b = file_factory()
        stale = session_b.get(CaseRecord, case.id)
        session_b.commit()

        with file_factory() as session_a:
            _case_service(session_a, deterministic_clock).transition_status(
                case.id, CaseStatus.APPOINTMENT_SCHEDULED, test_actor_id,
            )
            session_a.commit()

        try:
            with pytest.raises(ConcurrentModificationError):
                with BaseService(session_b).unit_of_work("touch_case", "CaseRecord", case.id):
                    stale.preferred_city = "Haifa"
            session_b.rollback()
        finally:
            session_b.close()

        with file_factory() as check:
            assert check.get(CaseRecord, case.id).preferred_city is None



class TestAttachRace:
    def test_stale_version_attach_loses(
        self, file_factory, deterministic_clock, test_actor_id, handler_id,
    ):
        case = _committed_case(
            file_factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.PROFILE_FILLED,
        )
        first, second = _committed_services(file_factory, "100", "50")
        version_seen_by_a = _read_version(file_factory, case.id)
        version_seen_by_b = _read_version(file_factory, case.id)

        with file_factory() as session_a:
            winner = _snapshot_service(session_a, deterministic_clock).attach(
                case.id, [first], test_actor_id, expected_version=version_seen_by_a,
            )
            session_a.commit()

        with file_factory() as session_b:
            with pytest.raises(ConcurrentModificationError) as exc_info:
                _snapshot_service(session_b, deterministic_clock).attach(
                    case.id, [second], test_actor_id, expected_version=version_seen_by_b,
                )
            session_b.rollback()

        assert exc_info.value.actual_version == winner.case.version

        with file_factory() as check:
            selector = CaseSelector(check)
            stored = selector.get_case(case.id)
            snapshots = selector.snapshots(case.id)
        assert stored.financials.service_fee == Money.of("100", "ILS")
        assert stored.financials.lawyer_commission == Money.of("10", "ILS")
        assert [s.master_service_id for s in snapshots] == [first]

    def test_attach_after_stale_read_adds_to_stored_totals(
        self, file_factory, deterministic_clock, test_actor_id, handler_id,
    ):
        case = _committed_case(
            file_factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.PROFILE_FILLED,
        )
        first, second = _committed_services(file_factory, "100", "50")
        session_b = file_factory()
        stale = session_b.get(CaseRecord, case.id)
        session_b.commit()
        assert stale.service_fee_minor == 0

        with file_factory() as session_a:
            _snapshot_service(session_a, deterministic_clock).attach(
                case.id, [first], test_actor_id,
            )
            session_a.commit()

        try:
            result = _snapshot_service(session_b, deterministic_clock).attach(
                case.id, [second], test_actor_id,
            )
            session_b.commit()
        finally:
            session_b.close()

        assert result.case.financials.service_fee == Money.of("150", "ILS")
        with file_factory() as check:
            selector = CaseSelector(check)
            stored = selector.get_case(case.id)
            snapshots = selector.snapshots(case.id)
        assert stored.financials.service_fee == Money.of("150", "ILS")
        assert stored.financials.lawyer_commission == Money.of("15", "ILS")
        assert stored.status == CaseStatus.SERVICES_FILLED
        assert sorted(s.sale_price.minor_units for s in snapshots) == [5000, 10000]


@pytest.mark.postgres
class TestParallelWriters:
    def test_one_of_two_threads_wins(
        self, engine, deterministic_clock, test_actor_id, handler_id,
    ):
        factory = sessionmaker(bind=engine, expire_on_commit=False)
        case = _committed_case(
            factory, deterministic_clock, test_actor_id, handler_id, CaseStatus.PROFILE_FILLED,
        )
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def worker():
            with factory() as session:
                service = _case_service(session, deterministic_clock)
                barrier.wait()
                try:
                    service.override_status(
                        case.id, CaseStatus.PAID, test_actor_id, FAST_TRACK_REASON,
                    )
                    session.commit()
                    result = "won"
                except (InvalidTransitionError, ConcurrentModificationError) as exc:
                    session.rollback()
                    result = type(exc).__name__
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes) == ["InvalidTransitionError", "won"]

        with factory() as check:
            assert CaseSelector(check).get_case(case.id).status == CaseStatus.PAID
