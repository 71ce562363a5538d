"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners here intercept those events for append-only and
price-locked records and raise ``ImmutabilityViolationError`` so the flush
aborts and nothing is written:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError

Protected entities:

    Entity              | When immutable          | Mutable fields
    --------------------|-------------------------|----------------------------
    AuditLogEntry       | Always                  | none, never deleted
    PayoutTransaction   | Always                  | none, never deleted
    ServiceSnapshot     | Always (pricing locked) | payment_status, paid_at
                        |                         | (deleted only by case cascade)

Called once at startup (and by the test suite):

    from agency_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

``unregister_immutability_listeners`` exists for tests that must tamper
with rows to prove detection.
"""

from sqlalchemy import event, inspect

from agency_kernel.exceptions import ImmutabilityViolationError
from agency_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

SNAPSHOT_MUTABLE_FIELDS = frozenset({"payment_status", "paid_at"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    extra = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "operation": operation,
    }
    if field is not None:
        extra["field"] = field
    logger.error("immutability_violation_blocked", extra=extra)
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_audit_entry_immutability(mapper, connection, target):
    raise _blocked(
        "AuditLogEntry", target.id, "UPDATE",
        "Audit log entries are immutable and cannot be modified",
    )


def _check_audit_entry_delete(mapper, connection, target):
    raise _blocked(
        "AuditLogEntry", target.id, "DELETE",
        "Audit log entries cannot be deleted",
    )


def _check_payout_transaction_immutability(mapper, connection, target):
    raise _blocked(
        "PayoutTransaction", target.id, "UPDATE",
        "Payout transaction log rows are immutable",
    )


def _check_payout_transaction_delete(mapper, connection, target):
    raise _blocked(
        "PayoutTransaction", target.id, "DELETE",
        "Payout transaction log rows cannot be deleted",
    )


def _check_snapshot_immutability(mapper, connection, target):
    """Pricing fields are locked at attach time; only payment fields move."""
    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key in SNAPSHOT_MUTABLE_FIELDS:
            continue
        if attr.history.has_changes():
            raise _blocked(
                "ServiceSnapshot", target.id, "UPDATE",
                f"Cannot modify locked field '{attr.key}' on a service snapshot",
                field=attr.key,
            )


def register_immutability_listeners():
    """Register all immutability enforcement event listeners (idempotent)."""
    from agency_kernel.models.audit_log import AuditLogEntry
    from agency_kernel.models.payout import PayoutTransaction
    from agency_kernel.models.service import ServiceSnapshot

    for target, name, fn in _listeners(AuditLogEntry, PayoutTransaction, ServiceSnapshot):
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that intentionally violate immutability
    rules to verify detection.
    """
    from agency_kernel.models.audit_log import AuditLogEntry
    from agency_kernel.models.payout import PayoutTransaction
    from agency_kernel.models.service import ServiceSnapshot

    for target, name, fn in _listeners(AuditLogEntry, PayoutTransaction, ServiceSnapshot):
        if event.contains(target, name, fn):
            event.remove(target, name, fn)


def _listeners(audit_entry, payout_transaction, snapshot):
    return (
        (audit_entry, "before_update", _check_audit_entry_immutability),
        (audit_entry, "before_delete", _check_audit_entry_delete),
        (payout_transaction, "before_update", _check_payout_transaction_immutability),
        (payout_transaction, "before_delete", _check_payout_transaction_delete),
        (snapshot, "before_update", _check_snapshot_immutability),
    )
