"""
Tests for the case status graph and transition guard.

Covers:
- Standard edges and primary next steps
- Terminal statuses
- Legacy status resolution and the ``new`` fallback
- Fast-track edges, reachable only through their own variant
- Property: can_transition agrees with the declared edge table
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from agency_kernel.domain.status_graph import (
    FAST_TRACK_EDGES,
    STANDARD_EDGES,
    CaseStatus,
    WorkflowVariant,
    can_transition,
    get_fast_track_steps,
    get_next_steps,
    is_terminal,
    reachable_from,
    resolve_status,
)


class TestStandardEdges:
    def test_new_cannot_jump_to_paid(self):
        assert not can_transition(CaseStatus.NEW, CaseStatus.PAID)

    def test_happy_path_edges(self):
        path = [
            CaseStatus.NEW,
            CaseStatus.ASSIGNED,
            CaseStatus.CONTACTED,
            CaseStatus.APPOINTMENT_SCHEDULED,
            CaseStatus.APPOINTMENT_COMPLETED,
            CaseStatus.PROFILE_FILLED,
            CaseStatus.SERVICES_FILLED,
            CaseStatus.READY_TO_APPLY,
            CaseStatus.PAID,
            CaseStatus.VISA_STAGE,
            CaseStatus.COMPLETED,
        ]
        for current, target in zip(path, path[1:]):
            assert can_transition(current, target), f"{current} -> {target}"

    def test_no_implicit_self_loops(self):
        for status in CaseStatus:
            assert not can_transition(status, status)

    def test_accepts_string_values(self):
        assert can_transition("assigned", "contacted")

    def test_unknown_target_is_not_an_edge(self):
        assert not can_transition(CaseStatus.NEW, "teleported")

    def test_legacy_alias_is_not_a_write_target(self):
        assert not can_transition(CaseStatus.READY_TO_APPLY, "settled")

    def test_primary_step_comes_first(self):
        assert get_next_steps(CaseStatus.NEW)[0] == CaseStatus.ELIGIBLE
        assert get_next_steps(CaseStatus.READY_TO_APPLY) == [CaseStatus.PAID]


class TestTerminalStatuses:
    @pytest.mark.parametrize("status", [CaseStatus.COMPLETED, CaseStatus.NOT_ELIGIBLE])
    def test_terminal_has_no_outgoing_edges(self, status):
        assert is_terminal(status)
        assert get_next_steps(status) == []
        assert get_fast_track_steps(status) == []

    def test_paid_is_not_terminal(self):
        assert not is_terminal(CaseStatus.PAID)


class TestResolveStatus:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("appointment", CaseStatus.APPOINTMENT_SCHEDULED),
            ("closed", CaseStatus.PAID),
            ("registration_submitted", CaseStatus.PAID),
            ("settled", CaseStatus.PAID),
            ("  Contacted ", CaseStatus.CONTACTED),
        ],
    )
    def test_known_values(self, raw, expected):
        assert resolve_status(raw) == expected

    @pytest.mark.parametrize("raw", ["", "archived", None, 42])
    def test_unknown_values_fall_back_to_new(self, raw):
        assert resolve_status(raw) == CaseStatus.NEW

    @given(st.text())
    def test_never_raises(self, raw):
        assert isinstance(resolve_status(raw), CaseStatus)

    def test_legacy_current_status_uses_mapped_edges(self):
        # "settled" reads as paid, and paid moves to visa_stage
        assert can_transition("settled", CaseStatus.VISA_STAGE)


class TestFastTrack:
    def test_fast_track_edges_not_in_standard_set(self):
        assert not can_transition(CaseStatus.SERVICES_FILLED, CaseStatus.PAID)
        assert not can_transition(CaseStatus.PROFILE_FILLED, CaseStatus.PAID)

    def test_fast_track_variant_accepts_declared_edges(self):
        assert can_transition(
            CaseStatus.SERVICES_FILLED, CaseStatus.PAID, WorkflowVariant.FAST_TRACK,
        )
        assert can_transition(
            CaseStatus.PROFILE_FILLED, CaseStatus.PAID, WorkflowVariant.FAST_TRACK,
        )

    def test_fast_track_variant_excludes_standard_edges(self):
        assert not can_transition(
            CaseStatus.ASSIGNED, CaseStatus.CONTACTED, WorkflowVariant.FAST_TRACK,
        )

    def test_reachability_unchanged_by_fast_track(self):
        assert reachable_from(CaseStatus.NEW) == reachable_from(
            CaseStatus.NEW, include_fast_track=True,
        )

    def test_every_status_reachable_from_new(self):
        assert reachable_from(CaseStatus.NEW) == frozenset(CaseStatus)


class TestTransitionProperties:
    @given(
        current=st.sampled_from(list(CaseStatus)),
        target=st.sampled_from(list(CaseStatus)),
    )
    def test_can_transition_matches_edge_table(self, current, target):
        assert can_transition(current, target) == (target in STANDARD_EDGES[current])
        assert can_transition(current, target, WorkflowVariant.FAST_TRACK) == (
            target in FAST_TRACK_EDGES.get(current, ())
        )

    @given(current=st.sampled_from(list(CaseStatus)))
    def test_next_steps_are_all_legal(self, current):
        for target in get_next_steps(current):
            assert can_transition(current, target)
