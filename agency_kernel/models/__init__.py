"""ORM models for the agency kernel."""

from agency_kernel.models.audit_log import AuditAction, AuditLogEntry
from agency_kernel.models.case import Appointment, CaseRecord, Lead
from agency_kernel.models.payout import PayoutRequest, PayoutTransaction
from agency_kernel.models.reward import Reward
from agency_kernel.models.sequence import SequenceCounter
from agency_kernel.models.service import MasterService, ServiceSnapshot

__all__ = [
    "Appointment",
    "AuditAction",
    "AuditLogEntry",
    "CaseRecord",
    "Lead",
    "MasterService",
    "PayoutRequest",
    "PayoutTransaction",
    "Reward",
    "SequenceCounter",
    "ServiceSnapshot",
    "import_all_models",
]


def import_all_models() -> None:
    """Make sure every table is registered on ``Base.metadata``.

    Importing this package already does it; the function gives lazy callers
    (``db.engine.create_tables``) an explicit hook.
    """
