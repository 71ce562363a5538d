"""
Tests for deterministic hashing and the clocks.

Covers:
- Canonical JSON is independent of key order and Decimal scale
- Audit entry hashes change with every chained component
- DeterministicClock movement
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from uuid import UUID

import pytest
from hypothesis import given
from hypothesis import strategies as st

from agency_kernel.domain.clock import DeterministicClock, SystemClock
from agency_kernel.utils.hashing import (
    canonicalize_json,
    hash_audit_entry,
    hash_payload,
    to_json_safe,
)


class Color(Enum):
    RED = "red"


ENTRY = dict(
    target_table="student_cases",
    target_id="c-1",
    action="case_assigned",
    actor_id="a-1",
    payload_hash="p" * 64,
    prev_hash=None,
)


class TestCanonicalJson:
    def test_sorted_and_compact(self):
        assert canonicalize_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_special_types(self):
        data = {
            "amount": Decimal("10.00"),
            "at": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "id": UUID("12345678-1234-5678-1234-567812345678"),
            "color": Color.RED,
            "tags": {"b", "a"},
        }

        assert to_json_safe(data) == {
            "amount": "10",
            "at": "2024-01-01T00:00:00+00:00",
            "id": "12345678-1234-5678-1234-567812345678",
            "color": "red",
            "tags": ["a", "b"],
        }

    def test_decimal_scale_ignored(self):
        assert hash_payload({"x": Decimal("10.5")}) == hash_payload({"x": Decimal("10.50")})

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})

    @given(st.dictionaries(st.text(max_size=8), st.integers(), max_size=8))
    def test_key_order_irrelevant(self, data):
        reordered = dict(reversed(list(data.items())))
        assert hash_payload(reordered) == hash_payload(data)


class TestHashAuditEntry:
    def test_deterministic(self):
        assert hash_audit_entry(**ENTRY) == hash_audit_entry(**ENTRY)

    @pytest.mark.parametrize(
        "field, value",
        [
            ("target_table", "rewards"),
            ("target_id", "c-2"),
            ("action", "case_deleted"),
            ("actor_id", "a-2"),
            ("payload_hash", "q" * 64),
            ("prev_hash", "0" * 64),
        ],
    )
    def test_every_component_matters(self, field, value):
        assert hash_audit_entry(**{**ENTRY, field: value}) != hash_audit_entry(**ENTRY)


class TestClocks:
    def test_deterministic_default(self):
        assert DeterministicClock().now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_advance_and_set(self):
        clock = DeterministicClock()
        start = clock.now()

        clock.advance(30)
        clock.advance_hours(1)
        clock.advance_days(2)
        assert clock.now() == start + timedelta(days=2, hours=1, seconds=30)

        clock.set_time(start)
        assert clock.tick() == start + timedelta(seconds=1)

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None
