"""
SLA and payout-eligibility timers.

Both are derived, never persisted: they are recomputed on every read from
stored timestamps and the injected clock's ``now``, so simultaneous viewers
see the same answer for the same instant.
"""

from collections.abc import Iterable
from datetime import datetime, timedelta
from enum import Enum

from agency_kernel.domain.status_graph import CaseStatus, resolve_status

DEFAULT_WARNING_HOURS = 24
DEFAULT_BREACH_HOURS = 48
DEFAULT_LOCK_DAYS = 20


class SlaState(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    OK = "ok"
    WARNING = "warning"
    BREACH = "breach"


def evaluate_sla(
    status: str | CaseStatus,
    assigned_at: datetime | None,
    now: datetime,
    warning_hours: int = DEFAULT_WARNING_HOURS,
    breach_hours: int = DEFAULT_BREACH_HOURS,
) -> SlaState:
    """SLA state of a case that is waiting in ``assigned`` for first contact.

    More than ``warning_hours`` since assignment is a warning, more than
    ``breach_hours`` a breach.  Any other status is not measured.
    """
    if resolve_status(status) != CaseStatus.ASSIGNED or assigned_at is None:
        return SlaState.NOT_APPLICABLE
    elapsed = now - assigned_at
    if elapsed > timedelta(hours=breach_hours):
        return SlaState.BREACH
    if elapsed > timedelta(hours=warning_hours):
        return SlaState.WARNING
    return SlaState.OK


def hours_since(start: datetime | None, now: datetime) -> float | None:
    if start is None:
        return None
    return (now - start).total_seconds() / 3600


def payout_eligible_at(anchor: datetime, lock_days: int = DEFAULT_LOCK_DAYS) -> datetime:
    """When a reward anchored at ``anchor`` leaves the lock window."""
    return anchor + timedelta(days=lock_days)


def bulk_eligible_at(
    anchors: Iterable[datetime],
    lock_days: int = DEFAULT_LOCK_DAYS,
) -> datetime:
    """Eligibility of a bundle: governed by its latest anchor."""
    latest = max(anchors, default=None)
    if latest is None:
        raise ValueError("bulk_eligible_at requires at least one anchor")
    return payout_eligible_at(latest, lock_days)


def is_payout_eligible(
    anchor: datetime,
    now: datetime,
    lock_days: int = DEFAULT_LOCK_DAYS,
) -> bool:
    return now >= payout_eligible_at(anchor, lock_days)
