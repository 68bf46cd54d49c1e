from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .catalog import InstallMethodKind, SoftwareSpec
from .lib.managers import CHOCOLATEY, WINGET, MethodUnavailable, PackageManager
from .procedures import IdeTwoPhaseProcedure, Procedure, ProcedureCtx, VersionManagerProcedure, run_package_manager

logger = logging.getLogger(__name__)


def build_procedures(ctx: ProcedureCtx) -> List[Procedure]:
    return [
        IdeTwoPhaseProcedure(ctx),
        VersionManagerProcedure(ctx),
    ]


class MethodDispatcher:
    """Pick and run the install method for one entry.

    Order: custom procedure (no fallback), then winget, then Chocolatey.
    The first success wins.
    """

    def __init__(self, ctx: ProcedureCtx, procedures: Optional[Iterable[Procedure]] = None):
        self.ctx = ctx
        procs = list(procedures) if procedures is not None else build_procedures(ctx)
        self.procedures: Dict[InstallMethodKind, Procedure] = {p.kind: p for p in procs}

    def package_methods(self, spec: SoftwareSpec) -> List[Tuple[PackageManager, str]]:
        methods: List[Tuple[PackageManager, str]] = []
        if spec.primary_id:
            methods.append((WINGET, spec.primary_id))
        if spec.secondary_id:
            methods.append((CHOCOLATEY, spec.secondary_id))
        return methods

    def install(self, spec: SoftwareSpec) -> bool:
        if spec.method.is_custom:
            proc = self.procedures.get(spec.method)
            if proc is None:
                logger.error("[%s] no procedure registered for method %s", spec.name, spec.method.value)
                return False
            logger.info("[%s] running %s procedure", spec.name, spec.method.value)
            return bool(proc.run(spec))

        methods = self.package_methods(spec)
        if not methods:
            logger.error("[%s] no installation method configured", spec.name)
            return False

        for manager, package_id in methods:
            try:
                attempt = run_package_manager(self.ctx, manager, package_id, spec.name)
            except MethodUnavailable as e:
                logger.warning("[%s] %s unavailable, trying next method: %s", spec.name, manager.kind.value, e)
                continue
            if attempt.succeeded:
                logger.info("[%s] installed via %s", spec.name, manager.kind.value)
                return True
            logger.info("[%s] %s did not succeed (%s)", spec.name, manager.kind.value, attempt.outcome.value)

        logger.error("[%s] all installation methods failed", spec.name)
        return False
