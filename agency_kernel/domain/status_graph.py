"""
Case status graph and transition guard (``agency_kernel.domain.status_graph``).

Responsibility
--------------
Static definition of the closed case-status vocabulary, the directed
edges between statuses, and the pure guard functions every status write
consults before touching storage.

Architecture position
---------------------
**Kernel domain layer** -- pure, ZERO I/O.  Callers may pre-check a
transition with ``can_transition`` before attempting a write; the case
service re-checks against the stored status inside its unit of work.

Invariants enforced
-------------------
* Only listed edges are legal.  There are no implicit self-loops: a
  status is reachable from itself only if an edge says so (none do).
* ``completed`` and ``not_eligible`` are terminal.
* Workflow variants that skip an intermediate step are a separate,
  explicit edge set (``FAST_TRACK_EDGES``), never a code-level bypass.
  They are only reachable through the audited override path.
* ``resolve_status`` never raises: historical values map through
  ``LEGACY_STATUS_MAP`` and anything unrecognized falls back to ``new``.
"""

from __future__ import annotations

from enum import Enum


class CaseStatus(str, Enum):
    """Case lifecycle statuses, in nominal progress order."""

    NEW = "new"
    ELIGIBLE = "eligible"
    ASSIGNED = "assigned"
    CONTACTED = "contacted"
    APPOINTMENT_SCHEDULED = "appointment_scheduled"
    APPOINTMENT_WAITING = "appointment_waiting"
    APPOINTMENT_COMPLETED = "appointment_completed"
    PROFILE_FILLED = "profile_filled"
    SERVICES_FILLED = "services_filled"
    READY_TO_APPLY = "ready_to_apply"
    PAID = "paid"
    VISA_STAGE = "visa_stage"
    COMPLETED = "completed"
    NOT_ELIGIBLE = "not_eligible"


class WorkflowVariant(str, Enum):
    """Which edge set a transition is checked against."""

    STANDARD = "standard"
    FAST_TRACK = "fast_track"


# Ordered: the first target is the primary suggested next step.
STANDARD_EDGES: dict[CaseStatus, tuple[CaseStatus, ...]] = {
    CaseStatus.NEW: (
        CaseStatus.ELIGIBLE,
        CaseStatus.ASSIGNED,
        CaseStatus.NOT_ELIGIBLE,
    ),
    CaseStatus.ELIGIBLE: (
        CaseStatus.ASSIGNED,
        CaseStatus.NOT_ELIGIBLE,
    ),
    CaseStatus.ASSIGNED: (CaseStatus.CONTACTED,),
    CaseStatus.CONTACTED: (
        CaseStatus.APPOINTMENT_SCHEDULED,
        CaseStatus.APPOINTMENT_WAITING,
    ),
    CaseStatus.APPOINTMENT_SCHEDULED: (
        CaseStatus.APPOINTMENT_COMPLETED,
        CaseStatus.APPOINTMENT_WAITING,
        CaseStatus.PROFILE_FILLED,
    ),
    CaseStatus.APPOINTMENT_WAITING: (
        CaseStatus.APPOINTMENT_SCHEDULED,
        CaseStatus.APPOINTMENT_COMPLETED,
        CaseStatus.PROFILE_FILLED,
    ),
    CaseStatus.APPOINTMENT_COMPLETED: (CaseStatus.PROFILE_FILLED,),
    CaseStatus.PROFILE_FILLED: (CaseStatus.SERVICES_FILLED,),
    CaseStatus.SERVICES_FILLED: (CaseStatus.READY_TO_APPLY,),
    CaseStatus.READY_TO_APPLY: (CaseStatus.PAID,),
    CaseStatus.PAID: (CaseStatus.VISA_STAGE,),
    CaseStatus.VISA_STAGE: (CaseStatus.COMPLETED,),
    CaseStatus.COMPLETED: (),
    CaseStatus.NOT_ELIGIBLE: (),
}

# Admin mark-paid variant: cases settled before (or without) the
# services/application steps.  Each edge here needs a recorded reason.
FAST_TRACK_EDGES: dict[CaseStatus, tuple[CaseStatus, ...]] = {
    CaseStatus.PROFILE_FILLED: (CaseStatus.PAID,),
    CaseStatus.SERVICES_FILLED: (CaseStatus.PAID,),
}

_EDGE_SETS: dict[WorkflowVariant, dict[CaseStatus, frozenset[CaseStatus]]] = {
    WorkflowVariant.STANDARD: {
        status: frozenset(targets) for status, targets in STANDARD_EDGES.items()
    },
    WorkflowVariant.FAST_TRACK: {
        status: frozenset(targets) for status, targets in FAST_TRACK_EDGES.items()
    },
}

TERMINAL_CASE_STATUSES: frozenset[CaseStatus] = frozenset({
    CaseStatus.COMPLETED,
    CaseStatus.NOT_ELIGIBLE,
})

# Statuses at or after settlement.
SETTLED_CASE_STATUSES: frozenset[CaseStatus] = frozenset({
    CaseStatus.PAID,
    CaseStatus.VISA_STAGE,
    CaseStatus.COMPLETED,
})

LEGACY_STATUS_MAP: dict[str, CaseStatus] = {
    "appointment": CaseStatus.APPOINTMENT_SCHEDULED,
    "closed": CaseStatus.PAID,
    "registration_submitted": CaseStatus.PAID,
    "settled": CaseStatus.PAID,
}

FALLBACK_STATUS = CaseStatus.NEW


def resolve_status(raw: str | CaseStatus | None) -> CaseStatus:
    """Normalize a stored or legacy status value. Never raises."""
    if isinstance(raw, CaseStatus):
        return raw
    if not isinstance(raw, str):
        return FALLBACK_STATUS
    key = raw.strip().lower()
    try:
        return CaseStatus(key)
    except ValueError:
        return LEGACY_STATUS_MAP.get(key, FALLBACK_STATUS)


def _strict_target(target: str | CaseStatus) -> CaseStatus | None:
    if isinstance(target, CaseStatus):
        return target
    try:
        return CaseStatus(target)
    except ValueError:
        return None


def can_transition(
    current: str | CaseStatus,
    target: str | CaseStatus,
    variant: WorkflowVariant = WorkflowVariant.STANDARD,
) -> bool:
    """True iff ``target`` is in the adjacency set of ``current`` for ``variant``.

    ``current`` is resolved like a stored value; ``target`` must be an exact
    vocabulary member, so legacy aliases cannot be used as write targets.
    """
    target_status = _strict_target(target)
    if target_status is None:
        return False
    edges = _EDGE_SETS[variant].get(resolve_status(current), frozenset())
    return target_status in edges


def get_next_steps(current: str | CaseStatus) -> list[CaseStatus]:
    """Standard targets reachable from ``current``, primary step first."""
    return list(STANDARD_EDGES.get(resolve_status(current), ()))


def get_fast_track_steps(current: str | CaseStatus) -> list[CaseStatus]:
    return list(FAST_TRACK_EDGES.get(resolve_status(current), ()))


def is_terminal(status: str | CaseStatus) -> bool:
    return resolve_status(status) in TERMINAL_CASE_STATUSES


def reachable_from(
    start: CaseStatus = CaseStatus.NEW,
    include_fast_track: bool = False,
) -> frozenset[CaseStatus]:
    """All statuses reachable from ``start`` by following edges."""
    variants = [WorkflowVariant.STANDARD]
    if include_fast_track:
        variants.append(WorkflowVariant.FAST_TRACK)
    seen = {start}
    frontier = [start]
    while frontier:
        status = frontier.pop()
        for variant in variants:
            for nxt in _EDGE_SETS[variant].get(status, frozenset()):
                if nxt not in seen:
                    seen.add(nxt)
                    frontier.append(nxt)
    return frozenset(seen)
