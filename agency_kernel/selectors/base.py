"""
Read-only query base.

Selectors accept a Session from the caller and return frozen DTOs or
computed results.  They never add, flush, delete or commit; the caller
owns the session and its transaction scope.
"""

from abc import ABC

from sqlalchemy.orm import Session


class BaseSelector(ABC):
    def __init__(self, session: Session):
        self.session = session
