from __future__ import annotations

import fnmatch
import logging
from typing import List, Optional, Sequence

from ..catalog import SoftwareSpec
from .registry import RegistryReader, WinRegistry

logger = logging.getLogger(__name__)

CBS_REBOOT_PENDING = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\Component Based Servicing\RebootPending"
WU_REBOOT_REQUIRED = r"HKLM\SOFTWARE\Microsoft\Windows\CurrentVersion\WindowsUpdate\Auto Update\RebootRequired"
SESSION_MANAGER = r"HKLM\SYSTEM\CurrentControlSet\Control\Session Manager"
PENDING_RENAMES = "PendingFileRenameOperations"


def pending_reboot_reasons(registry: RegistryReader) -> List[str]:
    """Which OS indicators currently say a reboot is pending.

    An indicator that cannot be read counts as not pending.
    """

    checks = [
        ("component_servicing", lambda: registry.key_exists(CBS_REBOOT_PENDING)),
        ("windows_update", lambda: registry.key_exists(WU_REBOOT_REQUIRED)),
        ("pending_file_rename", lambda: registry.read_value(SESSION_MANAGER, PENDING_RENAMES)),
    ]
    reasons: list[str] = []
    for reason, check in checks:
        try:
            if check():
                reasons.append(reason)
        except OSError as e:
            logger.warning("Cannot read reboot indicator %s: %s", reason, e)
    return reasons


class RebootGate:
    """Defer reboot-sensitive software while the machine has a reboot pending."""

    def __init__(self, sensitive_patterns: Sequence[str], *, registry: Optional[RegistryReader] = None):
        self.sensitive_patterns = [p.lower() for p in sensitive_patterns]
        self.registry = registry or WinRegistry()

    def is_sensitive(self, spec: SoftwareSpec) -> bool:
        name = spec.name.lower()
        return any(fnmatch.fnmatchcase(name, p) for p in self.sensitive_patterns)

    def requires_deferral(self, spec: SoftwareSpec) -> bool:
        if not self.is_sensitive(spec):
            return False
        # Not cached: installs earlier in the run can set an indicator.
        reasons = pending_reboot_reasons(self.registry)
        if not reasons:
            return False
        logger.warning(
            "Deferring %s until after reboot (%s)",
            spec.name,
            ", ".join(reasons),
        )
        return True
