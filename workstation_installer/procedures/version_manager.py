from __future__ import annotations

import logging
import shlex
from typing import List

from ..catalog import InstallMethodKind, SoftwareSpec
from ..lib.exit_codes import ManagerKind
from ..lib.managers import MethodUnavailable
from .base import ProcedureCtx

logger = logging.getLogger(__name__)


def split_commands(install_command: str) -> List[List[str]]:
    """Split ``"nvm install 20; nvm use 20"`` into argv lists.

    Windows paths keep their backslashes; surrounding quotes are dropped.
    """

    out: List[List[str]] = []
    for part in install_command.split(";"):
        if not part.strip():
            continue
        tokens = [t[1:-1] if len(t) >= 2 and t[0] == t[-1] and t[0] in "\"'" else t for t in shlex.split(part, posix=False)]
        if tokens:
            out.append(tokens)
    return out


class VersionManagerProcedure:
    """Runtime installs driven by a version manager (nvm, jabba, ...).

    Each sub-command runs under the supervisor. A failing sub-command is logged
    and the sequence continues; only an exception fails the procedure.
    """

    kind = InstallMethodKind.VERSION_MANAGER

    def __init__(self, ctx: ProcedureCtx):
        self.ctx = ctx

    def run(self, spec: SoftwareSpec) -> bool:
        commands = split_commands(spec.install_command or "")
        if not commands:
            logger.error("[%s] install_command is empty", spec.name)
            return False

        binary = str((spec.options or {}).get("manager_binary") or commands[0][0])
        try:
            resolved = self.ctx.resolve(binary)
        except MethodUnavailable as e:
            logger.error("[%s] version manager unavailable: %s", spec.name, e)
            return False

        for argv in commands:
            if argv[0].lower() == binary.lower():
                argv = [resolved, *argv[1:]]
            try:
                attempt = self.ctx.supervisor.run(ManagerKind.VERSION_MANAGER, argv, spec.name)
            except MethodUnavailable as e:
                logger.error("[%s] %s", spec.name, e)
                return False
            if not attempt.succeeded:
                logger.warning(
                    "[%s] step %r finished with %s (exit code %s); continuing",
                    spec.name,
                    " ".join(argv[1:]),
                    attempt.outcome.value,
                    attempt.exit_code,
                )
        return True
