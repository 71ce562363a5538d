"""
Configuration loader (``agency_config.loader``).

Loads a YAML configuration set and parses it into the frozen
``agency_config.schema`` types.  Build/test tooling: runtime callers go
through ``agency_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric values  -> ``ValueError`` / ``decimal.InvalidOperation``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from agency_config.schema import (
    AgencyConfigurationSet,
    PayoutSettings,
    SlaSettings,
    WorkflowSettings,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValueError(f"Cannot parse boolean from {value!r}")


def parse_configuration(data: dict[str, Any]) -> AgencyConfigurationSet:
    """
    Parse a configuration set from its YAML dict.

    Raises:
        KeyError: if a required key is missing.
        ValueError: if a value has the wrong shape.
    """
    sla = data["sla"]
    payout = data["payout"]
    workflow = data["workflow"]
    return AgencyConfigurationSet(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        default_currency=str(data["default_currency"]).strip().upper(),
        sla=SlaSettings(
            warning_hours=int(sla["warning_hours"]),
            breach_hours=int(sla["breach_hours"]),
        ),
        payout=PayoutSettings(
            lock_days=int(payout["lock_days"]),
            # YAML may hand back a float here
            min_threshold=Decimal(str(payout["min_threshold"])),
            ineligible_policy=str(payout["ineligible_policy"]).strip().lower(),
        ),
        workflow=WorkflowSettings(
            fast_track_enabled=parse_bool(workflow["fast_track_enabled"]),
        ),
        checksum=compute_checksum(data),
    )


def load_configuration_set(path: Path) -> AgencyConfigurationSet:
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; deterministic."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
