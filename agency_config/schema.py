"""
Agency configuration set schema.

The human-authored source artifact: YAML in ``sets/`` is parsed into these
frozen types by the loader, checked by the validator and bridged into the
kernel's ``AgencyPolicy`` by ``bridges``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class SlaSettings:
    warning_hours: int = 24
    breach_hours: int = 48


@dataclass(frozen=True)
class PayoutSettings:
    lock_days: int = 20
    min_threshold: Decimal = Decimal("0")
    ineligible_policy: str = "block"


@dataclass(frozen=True)
class WorkflowSettings:
    fast_track_enabled: bool = True


@dataclass(frozen=True)
class AgencyConfigurationSet:
    """One versioned configuration set."""

    config_id: str
    version: int
    default_currency: str
    sla: SlaSettings
    payout: PayoutSettings
    workflow: WorkflowSettings
    checksum: str = ""
