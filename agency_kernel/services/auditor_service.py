"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Writes one immutable, hash-chained ``AuditLogEntry`` per privileged
    mutation, inside the caller's unit of work, and validates the chain on
    demand.

Architecture position:
    Kernel > Services -- called by every write service.

Invariants enforced:
    - Sequence monotonicity via SequenceService (never ``max(seq) + 1``).
    - Chain integrity: ``hash = H(target_table, target_id, action,
      actor_id, payload_hash, prev_hash)``.
    - Append-only: entries are never modified or deleted (ORM listeners).
    - Audit completeness: if the entry cannot be written the mutation it
      records fails with it.  ``AuditWriteFailureError`` aborts the
      enclosing savepoint.

Failure modes:
    - AuditWriteFailureError: the store rejected the entry.
    - AuditChainBrokenError: a recomputed hash or a prev_hash link does
      not match.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from agency_kernel.domain.clock import Clock, SystemClock
from agency_kernel.exceptions import AuditChainBrokenError, AuditWriteFailureError
from agency_kernel.logging_config import get_logger
from agency_kernel.models.audit_log import AuditAction, AuditLogEntry
from agency_kernel.services.sequence_service import SequenceService
from agency_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    actor_id: UUID
    occurred_at: datetime
    details: str | None
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit entries for one record, oldest first."""

    target_table: str
    target_id: str
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def actions(self) -> tuple[AuditAction, ...]:
        return tuple(e.action for e in self.entries)

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None


class AuditorService:
    """
    Service for creating and validating tamper-evident audit entries.

    Non-goals:
        - Does NOT call ``session.commit()``; caller controls boundaries.
        - Does NOT interpret audit entries.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last.hash if last else None

    def record(
        self,
        action: AuditAction,
        actor_id: UUID,
        target_table: str | None = None,
        target_id: UUID | str | None = None,
        details: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """
        Append one chained audit entry and flush it.

        Raises:
            AuditWriteFailureError: If the store rejects the entry.
        """
        target = str(target_id) if target_id is not None else None
        payload_data = to_json_safe(payload or {})
        try:
            seq = self._sequence.next_value(SequenceService.AUDIT_LOG)
            prev_hash = self._get_last_hash()
            payload_hash = hash_payload(payload_data)
            entry_hash = hash_audit_entry(
                target_table=target_table,
                target_id=target,
                action=action.value,
                actor_id=str(actor_id),
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )
            entry = AuditLogEntry(
                seq=seq,
                actor_id=actor_id,
                action=action.value,
                target_table=target_table,
                target_id=target,
                details=details,
                payload=payload_data,
                occurred_at=self._clock.now(),
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=entry_hash,
            )
            self._session.add(entry)
            self._session.flush()
        except StaleDataError:
            # Pending mutation flushed alongside the entry lost its race
            raise
        except SQLAlchemyError as exc:
            logger.error(
                "audit_write_failed",
                extra={"action": action.value, "target_id": target},
                exc_info=True,
            )
            raise AuditWriteFailureError(action.value, str(exc)) from exc

        logger.info(
            "audit_entry_created",
            extra={
                "action": action.value,
                "target_table": target_table,
                "target_id": target,
                "seq": seq,
            },
        )
        return entry

    def record_config_change(
        self,
        actor_id: UUID,
        config_id: str,
        old_version: int | None,
        new_version: int,
        checksum: str,
    ) -> AuditLogEntry:
        """Record that a new configuration version became active."""
        return self.record(
            AuditAction.CONFIG_CHANGED,
            actor_id=actor_id,
            target_table="config",
            target_id=config_id,
            details=f"Configuration {config_id} v{old_version} -> v{new_version}",
            payload={
                "config_id": config_id,
                "old_version": old_version,
                "new_version": new_version,
                "checksum": checksum,
            },
        )

    # Chain validation

    def validate_chain(self) -> bool:
        """
        Recompute every entry's hash and link.

        Raises:
            AuditChainBrokenError: On the first mismatch found.
        """
        entries = self._session.execute(
            select(AuditLogEntry).order_by(AuditLogEntry.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for entry in entries:
            if entry.prev_hash != prev_hash:
                logger.critical("audit_chain_broken", extra={"entry_id": str(entry.id)})
                raise AuditChainBrokenError(
                    str(entry.id), prev_hash or "None", entry.prev_hash or "None",
                )
            expected = hash_audit_entry(
                target_table=entry.target_table,
                target_id=entry.target_id,
                action=entry.action,
                actor_id=str(entry.actor_id),
                payload_hash=hash_payload(entry.payload or {}),
                prev_hash=entry.prev_hash,
            )
            if entry.hash != expected:
                logger.critical("audit_chain_broken", extra={"entry_id": str(entry.id)})
                raise AuditChainBrokenError(str(entry.id), expected, entry.hash)
            prev_hash = entry.hash

        logger.info("audit_chain_valid", extra={"entry_count": len(entries)})
        return True

    # Trace queries

    def get_trace(self, target_table: str, target_id: UUID | str) -> AuditTrace:
        rows = self._session.execute(
            select(AuditLogEntry)
            .where(
                AuditLogEntry.target_table == target_table,
                AuditLogEntry.target_id == str(target_id),
            )
            .order_by(AuditLogEntry.seq)
        ).scalars().all()
        return AuditTrace(
            target_table=target_table,
            target_id=str(target_id),
            entries=tuple(
                AuditTraceEntry(
                    seq=row.seq,
                    action=AuditAction(row.action),
                    actor_id=row.actor_id,
                    occurred_at=row.occurred_at,
                    details=row.details,
                    payload=dict(row.payload or {}),
                    hash=row.hash,
                )
                for row in rows
            ),
        )

    def count(self, action: AuditAction | None = None) -> int:
        stmt = select(AuditLogEntry.id)
        if action is not None:
            stmt = stmt.where(AuditLogEntry.action == action.value)
        return len(self._session.execute(stmt).all())
