"""
ConfigProvider -- held configuration with explicit, pull-based refresh.

``current()`` returns the policy loaded last and never touches the file.
``refresh()`` re-reads the set; when the checksum changed the new policy
becomes current and every registered listener is called with
``(old, new)``.  A refresh that fails validation keeps the previous
policy and raises.

Usage:
    provider = ConfigProvider()
    provider.add_listener(
        lambda old, new: auditor.record_config_change(
            admin_id, new.config_id, old.config_version, new.config_version, new.checksum,
        )
    )
    services = CaseService(session, auditor, policy=provider)
    ...
    provider.refresh()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from agency_kernel.domain.policy import AgencyPolicy

_logger = logging.getLogger("agency_kernel.config")

ConfigListener = Callable[[AgencyPolicy, AgencyPolicy], None]


class ConfigProvider:
    """Implements the kernel's ``PolicySource`` protocol."""

    def __init__(self, name: str = "default", config_dir: Path | None = None):
        self._name = name
        self._config_dir = config_dir
        self._listeners: list[ConfigListener] = []
        self._policy = self._load()

    def _load(self) -> AgencyPolicy:
        from agency_config import get_active_config

        return get_active_config(self._name, self._config_dir)

    def current(self) -> AgencyPolicy:
        return self._policy

    @property
    def version(self) -> int:
        return self._policy.config_version

    @property
    def checksum(self) -> str | None:
        return self._policy.checksum

    def add_listener(self, listener: ConfigListener) -> None:
        self._listeners.append(listener)

    def refresh(self) -> bool:
        """Re-read the set. Returns True when a different configuration became current."""
        new_policy = self._load()
        old_policy = self._policy
        if new_policy.checksum == old_policy.checksum:
            _logger.debug("agency_config_unchanged", extra={"checksum": old_policy.checksum})
            return False

        self._policy = new_policy
        _logger.info(
            "agency_config_refreshed",
            extra={
                "config_id": new_policy.config_id,
                "old_version": old_policy.config_version,
                "new_version": new_policy.config_version,
                "checksum": new_policy.checksum,
            },
        )
        for listener in self._listeners:
            listener(old_policy, new_policy)
        return True
