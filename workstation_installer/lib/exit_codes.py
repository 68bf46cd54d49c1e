"""Exit-code semantics per installer family.

winget reports "nothing to do" as non-zero HRESULTs. Those are treated as
success; every other non-zero winget code is a failure. For every other
family only 0 is success.

Windows hands these codes to Python unsigned (``0x8A15002B`` ==
``2316632107``) while PowerShell prints them signed (``-1978335189``). Both
forms are accepted.
"""

from __future__ import annotations

import enum
from typing import Dict, Optional


class ManagerKind(str, enum.Enum):
    WINGET = "winget"
    CHOCOLATEY = "choco"
    IDE_MODIFY = "ide_modify"
    VERSION_MANAGER = "version_manager"


class Outcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    TIMED_OUT = "timed_out"


WINGET_SENTINEL_CODES: Dict[int, str] = {
    0x8A15002B: "APPINSTALLER_CLI_ERROR_UPDATE_NOT_APPLICABLE: no applicable upgrade, already at latest version",
    0x8A150061: "APPINSTALLER_CLI_ERROR_PACKAGE_ALREADY_INSTALLED: package already installed",
}

_SENTINELS: Dict[ManagerKind, Dict[int, str]] = {
    ManagerKind.WINGET: WINGET_SENTINEL_CODES,
}


def normalize_code(exit_code: int) -> int:
    return exit_code & 0xFFFFFFFF


def sentinel_reason(manager: ManagerKind, exit_code: Optional[int]) -> Optional[str]:
    """Description of a sentinel code, or None if the code is not one."""
    if exit_code is None or exit_code == 0:
        return None
    return _SENTINELS.get(manager, {}).get(normalize_code(exit_code))


def interpret(manager: ManagerKind, exit_code: Optional[int]) -> Outcome:
    if exit_code is None:
        return Outcome.FAILURE
    if exit_code == 0:
        return Outcome.SUCCESS
    if sentinel_reason(manager, exit_code) is not None:
        return Outcome.SUCCESS
    return Outcome.FAILURE
