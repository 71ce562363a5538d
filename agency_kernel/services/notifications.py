"""
Notification outbox -- fire-and-forget signals after commit.

Status changes and payout decisions emit a ``Notification``.  The kernel
does not deliver or format messages; it hands each notification to an
injected ``NotificationDispatcher`` once the outer transaction commits.
If the transaction rolls back, pending notifications are discarded, so no
one is told about a change that never happened.

Dispatcher failures are logged and never raised: the mutation already
committed and delivery belongs to the external messaging collaborator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from agency_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationKind(str, Enum):
    STATUS_CHANGED = "status_changed"
    PAYOUT_DECIDED = "payout_decided"


@dataclass(frozen=True)
class Notification:
    kind: NotificationKind
    subject_id: UUID
    payload: dict[str, Any] = field(default_factory=dict)


class NotificationDispatcher(Protocol):
    def dispatch(self, notification: Notification) -> None: ...


class LoggingDispatcher:
    """Default dispatcher: records each notification in the structured log."""

    def dispatch(self, notification: Notification) -> None:
        logger.info(
            "notification_dispatched",
            extra={
                "kind": notification.kind.value,
                "subject_id": str(notification.subject_id),
                "payload": notification.payload,
            },
        )


class NotificationOutbox:
    """Per-session buffer flushed to the dispatcher on commit."""

    def __init__(self, session: Session, dispatcher: NotificationDispatcher | None = None):
        self._session = session
        self._dispatcher = dispatcher or LoggingDispatcher()
        self._pending: list[Notification] = []
        event.listen(session, "after_commit", self._on_commit)
        event.listen(session, "after_soft_rollback", self._on_rollback)

    @property
    def pending(self) -> tuple[Notification, ...]:
        return tuple(self._pending)

    def enqueue(self, notification: Notification) -> None:
        self._pending.append(notification)

    def status_changed(self, case_id: UUID, old_status: str, new_status: str, **extra: Any) -> None:
        self.enqueue(
            Notification(
                NotificationKind.STATUS_CHANGED,
                case_id,
                {"from": old_status, "to": new_status, **extra},
            )
        )

    def payout_decided(self, request_id: UUID, status: str, **extra: Any) -> None:
        self.enqueue(
            Notification(NotificationKind.PAYOUT_DECIDED, request_id, {"status": status, **extra})
        )

    def close(self) -> None:
        """Detach from the session."""
        for name, fn in (("after_commit", self._on_commit), ("after_soft_rollback", self._on_rollback)):
            if event.contains(self._session, name, fn):
                event.remove(self._session, name, fn)

    def _on_commit(self, session: Session) -> None:
        if session.in_nested_transaction():
            return
        pending, self._pending = self._pending, []
        for notification in pending:
            try:
                self._dispatcher.dispatch(notification)
            except Exception:
                logger.exception(
                    "notification_dispatch_failed",
                    extra={
                        "kind": notification.kind.value,
                        "subject_id": str(notification.subject_id),
                    },
                )

    def _on_rollback(self, session: Session, previous_transaction: SessionTransaction) -> None:
        # Only the root transaction rolling back discards the queue.
        if previous_transaction.parent is not None:
            return
        if self._pending:
            logger.debug("notifications_discarded", extra={"count": len(self._pending)})
        self._pending = []
