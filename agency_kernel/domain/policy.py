"""
Runtime policy settings consumed by kernel services.

``AgencyPolicy`` is a frozen value object.  Services receive it by
injection; ``agency_config`` is the only code that builds one from YAML.
The defaults below mirror the shipped ``default`` configuration set so the
kernel stays usable in isolation.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Protocol, runtime_checkable

from agency_kernel.domain.values import Currency, Money


class IneligiblePayoutPolicy(str, Enum):
    """What happens to payout requests tied to rewards still inside the lock window."""

    BLOCK = "block"
    FLAG = "flag"


@dataclass(frozen=True)
class AgencyPolicy:
    default_currency: str = "ILS"
    sla_warning_hours: int = 24
    sla_breach_hours: int = 48
    payout_lock_days: int = 20
    min_payout_threshold: Decimal = Decimal("0")
    ineligible_payout_policy: IneligiblePayoutPolicy = IneligiblePayoutPolicy.BLOCK
    fast_track_enabled: bool = True
    config_id: str = "builtin"
    config_version: int = 0
    checksum: str | None = None

    def min_payout(self, currency: str | Currency) -> Money:
        return Money.of(self.min_payout_threshold, currency)

    @property
    def blocks_ineligible_payouts(self) -> bool:
        return self.ineligible_payout_policy == IneligiblePayoutPolicy.BLOCK


@runtime_checkable
class PolicySource(Protocol):
    """Anything that can hand out the currently active ``AgencyPolicy``.

    Implementations: ``StaticPolicySource`` (fixed value) and
    ``agency_config.ConfigProvider`` (versioned, explicit refresh).
    """

    def current(self) -> AgencyPolicy:
        ...


class StaticPolicySource:
    """PolicySource that always returns the same policy."""

    def __init__(self, policy: AgencyPolicy | None = None):
        self._policy = policy or AgencyPolicy()

    def current(self) -> AgencyPolicy:
        return self._policy


def as_policy_source(policy: AgencyPolicy | PolicySource | None) -> PolicySource:
    if policy is None or isinstance(policy, AgencyPolicy):
        return StaticPolicySource(policy)
    return policy
