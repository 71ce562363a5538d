"""
Configuration validator (``agency_config.validator``).

Checks a parsed ``AgencyConfigurationSet`` before it may become the active
policy.  A configuration with errors is never activated.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from agency_config.schema import AgencyConfigurationSet
from agency_kernel.domain.currency import CurrencyRegistry
from agency_kernel.domain.policy import IneligiblePayoutPolicy

_POLICIES = frozenset(p.value for p in IneligiblePayoutPolicy)


@dataclass
class ConfigValidationResult:
    """``is_valid`` only when ``errors`` is empty; warnings are advisory."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: AgencyConfigurationSet) -> ConfigValidationResult:
    result = ConfigValidationResult()

    _validate_identity(config, result)
    _validate_currency(config, result)
    _validate_sla(config, result)
    _validate_payout(config, result)

    return result


def _validate_identity(config: AgencyConfigurationSet, result: ConfigValidationResult) -> None:
    if not config.config_id.strip():
        result.add_error("config_id must not be empty")
    if config.version < 1:
        result.add_error(f"version must be >= 1, got {config.version}")


def _validate_currency(config: AgencyConfigurationSet, result: ConfigValidationResult) -> None:
    if not CurrencyRegistry.is_valid(config.default_currency):
        result.add_error(f"default_currency '{config.default_currency}' is not a known ISO 4217 code")


def _validate_sla(config: AgencyConfigurationSet, result: ConfigValidationResult) -> None:
    sla = config.sla
    if sla.warning_hours <= 0:
        result.add_error(f"sla.warning_hours must be positive, got {sla.warning_hours}")
    if sla.breach_hours <= sla.warning_hours:
        result.add_error(
            f"sla.breach_hours ({sla.breach_hours}) must be greater than "
            f"sla.warning_hours ({sla.warning_hours})"
        )


def _validate_payout(config: AgencyConfigurationSet, result: ConfigValidationResult) -> None:
    payout = config.payout
    if payout.lock_days < 0:
        result.add_error(f"payout.lock_days must not be negative, got {payout.lock_days}")
    elif payout.lock_days == 0:
        result.add_warning("payout.lock_days is 0: rewards are payable immediately")
    if payout.min_threshold < 0:
        result.add_error(f"payout.min_threshold must not be negative, got {payout.min_threshold}")
    if payout.ineligible_policy not in _POLICIES:
        result.add_error(
            f"payout.ineligible_policy must be one of {sorted(_POLICIES)}, "
            f"got '{payout.ineligible_policy}'"
        )
