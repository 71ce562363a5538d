"""
SequenceService -- named, gap-tolerant counters for ordering audit entries.

Each counter is one row in ``sequence_counters``.  ``next_value`` reads it
with ``SELECT ... FOR UPDATE`` and increments it inside the caller's
transaction, so two writers appending audit entries are serialized on the
counter row and their ``seq`` values never collide.  A rollback discards
the increment along with everything else.

The first use of a name inserts the row.  Two writers racing on that
insert are resolved inside a savepoint: the loser's unique-key failure is
rolled back and it continues with the winner's row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agency_kernel.logging_config import get_logger
from agency_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    AUDIT_LOG = "audit_log"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, name: str) -> int:
        """Increment the counter called ``name`` and return the new value (>= 1)."""
        counter = self._lock(name) or self._create(name)
        if counter is None:
            value = 1
        else:
            counter.current_value += 1
            self._session.flush()
            value = counter.current_value
        logger.debug("sequence_allocated", extra={"sequence_name": name, "value": value})
        return value

    def current_value(self, name: str) -> int:
        """Last value handed out, or 0 for an unused counter."""
        value = self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
        return value or 0

    def _lock(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, name: str) -> SequenceCounter | None:
        """
        Insert the counter at 1.

        Returns None when this call created it (1 is already handed out),
        or the concurrently created row, locked, when another writer won.
        """
        try:
            with self._session.begin_nested():
                self._session.add(SequenceCounter(name=name, current_value=1))
                self._session.flush()
        except IntegrityError:
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
            counter = self._lock(name)
            if counter is None:
                raise
            return counter
        return None
