"""
agency_config -- single public entrypoint for agency configuration.

Responsibility:
    Provides the ONLY way to obtain runtime settings, through
    ``get_active_config()`` (one-shot) and ``ConfigProvider`` (held,
    versioned, explicit refresh).  No other component reads configuration
    files.  The result is a frozen ``AgencyPolicy`` that services receive
    by injection.

Architecture position:
    Configuration -- sits above ``agency_kernel``.  The kernel never
    imports from ``agency_config``; ``bridges`` translates the parsed set
    into the kernel's domain type.

Invariants enforced:
    - A set that fails validation is never returned.
    - Deterministic checksum: the same YAML always yields the same
      checksum, so a refresh can tell whether anything changed.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set with that name.
    - ``ConfigValidationError`` -- missing keys, malformed or invalid values.

Audit relevance:
    Every successful load emits an ``agency_config_loaded`` log entry with
    config_id, version and checksum.  Activating a new version through
    ``ConfigProvider`` is recorded in the audit trail by its listeners.
"""

from __future__ import annotations

import logging
from decimal import InvalidOperation
from pathlib import Path

import yaml

from agency_config.bridges import policy_from_config
from agency_config.loader import load_yaml_file, parse_configuration
from agency_config.provider import ConfigProvider
from agency_config.validator import validate_configuration
from agency_kernel.domain.policy import AgencyPolicy
from agency_kernel.exceptions import ConfigValidationError

_logger = logging.getLogger("agency_kernel.config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

__all__ = ["ConfigProvider", "get_active_config"]


def get_active_config(
    name: str = "default",
    config_dir: Path | None = None,
) -> AgencyPolicy:
    """
    Load, validate and bridge the named configuration set.

    Args:
        name: Set name; the file is ``<config_dir>/<name>.yaml``.
        config_dir: Override the directory. Defaults to agency_config/sets/.

    Raises:
        FileNotFoundError: No such set.
        ConfigValidationError: The set is malformed or invalid.
    """
    sets_dir = Path(config_dir) if config_dir is not None else _DEFAULT_CONFIG_DIR
    path = sets_dir / f"{name}.yaml"
    if not path.is_file():
        raise FileNotFoundError(f"Configuration set not found: {path}")

    try:
        data = load_yaml_file(path)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(name, [f"malformed YAML: {exc}"]) from exc

    config_id = str(data.get("config_id", name))
    try:
        config = parse_configuration(data)
    except KeyError as exc:
        raise ConfigValidationError(config_id, [f"missing key: {exc.args[0]}"]) from exc
    except (TypeError, ValueError, InvalidOperation) as exc:
        raise ConfigValidationError(config_id, [f"invalid value: {exc}"]) from exc

    validation = validate_configuration(config)
    for warning in validation.warnings:
        _logger.warning("agency_config_warning", extra={"config_id": config_id, "detail": warning})
    if not validation.is_valid:
        raise ConfigValidationError(config_id, validation.errors)

    policy = policy_from_config(config)
    _logger.info(
        "agency_config_loaded",
        extra={
            "trace_type": "AGENCY_CONFIG_TRACE",
            "config_id": policy.config_id,
            "config_version": policy.config_version,
            "checksum": policy.checksum,
            "default_currency": policy.default_currency,
            "ineligible_payout_policy": policy.ineligible_payout_policy.value,
        },
    )
    return policy
