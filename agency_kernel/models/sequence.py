"""Named sequence counters (see ``services/sequence_service.py``)."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from agency_kernel.db.base import Base


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row is a named sequence with its current value; row-level locking
    keeps allocation monotonic under concurrency.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    current_value: Mapped[int] = mapped_column(nullable=False, default=0)
