"""
Config -> kernel bridge.

Lives here because the kernel never imports ``agency_config``.
"""

from __future__ import annotations

from agency_config.schema import AgencyConfigurationSet
from agency_kernel.domain.policy import AgencyPolicy, IneligiblePayoutPolicy


def policy_from_config(config: AgencyConfigurationSet) -> AgencyPolicy:
    return AgencyPolicy(
        default_currency=config.default_currency,
        sla_warning_hours=config.sla.warning_hours,
        sla_breach_hours=config.sla.breach_hours,
        payout_lock_days=config.payout.lock_days,
        min_payout_threshold=config.payout.min_threshold,
        ineligible_payout_policy=IneligiblePayoutPolicy(config.payout.ineligible_policy),
        fast_track_enabled=config.workflow.fast_track_enabled,
        config_id=config.config_id,
        config_version=config.version,
        checksum=config.checksum,
    )
