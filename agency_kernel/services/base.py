"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor, the per-operation unit of work, and
    row-locking helpers for every write service in the kernel.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit.  The caller owns commit/rollback
      (``db.engine.session_scope``).
    - All-or-nothing operations: every public mutation runs inside
      ``unit_of_work``, a SAVEPOINT.  Any exception, including an audit
      write failure, rolls back everything the operation wrote, and the
      caller's outer transaction stays usable.
    - Stale writes never land: a version mismatch detected at flush
      (``StaleDataError``) becomes ``ConcurrentModificationError``.

Failure modes:
    - ConcurrentModificationError (retryable) on optimistic-lock failure.
    - TransientStorageError (retryable) on OperationalError from the store.
"""

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from agency_kernel.db.base import Base
from agency_kernel.exceptions import (
    ConcurrentModificationError,
    TransientStorageError,
)
from agency_kernel.logging_config import get_logger

logger = get_logger("services.base")

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC):
    """
    Abstract base class for all kernel write services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT commit or roll back the caller's transaction.
        - Does NOT provide read-model queries; those live in
          ``agency_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    @contextmanager
    def unit_of_work(
        self,
        operation: str,
        entity_type: str,
        entity_id: Any = None,
    ) -> Iterator[None]:
        """Run one mutation atomically inside a savepoint."""
        try:
            with self.session.begin_nested():
                yield
                self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "concurrent_modification_detected",
                extra={
                    "operation": operation,
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                },
            )
            raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
        except OperationalError as exc:
            logger.warning(
                "transient_storage_failure",
                extra={"operation": operation, "entity_type": entity_type},
                exc_info=True,
            )
            raise TransientStorageError(operation, str(exc.orig)) from exc

    def _load_for_update(self, model: type[ModelType], entity_id: UUID) -> ModelType | None:
        """
        Re-read ``entity_id`` from the store under a row lock.

        ``populate_existing`` overwrites any stale in-session copy, so the
        caller validates against the current stored state.
        """
        return self.session.execute(
            select(model)
            .where(model.id == entity_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    @staticmethod
    def _check_version(
        entity_type: str,
        entity: Any,
        expected_version: int | None,
    ) -> None:
        """Fail fast when the caller acted on a version that is no longer current."""
        if expected_version is not None and entity.version != expected_version:
            logger.warning(
                "stale_version_rejected",
                extra={
                    "entity_type": entity_type,
                    "entity_id": str(entity.id),
                    "expected_version": expected_version,
                    "actual_version": entity.version,
                },
            )
            raise ConcurrentModificationError(
                entity_type,
                str(entity.id),
                expected_version=expected_version,
                actual_version=entity.version,
            )
