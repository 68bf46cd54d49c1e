from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import MutableMapping, Protocol

from ..catalog import InstallMethodKind, SoftwareSpec
from ..lib.managers import PackageManager, resolve_binary
from ..lib.probe import Probe
from ..lib.supervisor import InstallationAttempt, ProcessSupervisor

logger = logging.getLogger(__name__)


class Procedure(Protocol):
    """A custom multi-step install, selected by ``SoftwareSpec.method``."""

    kind: InstallMethodKind

    def run(self, spec: SoftwareSpec) -> bool:
        ...


@dataclass(frozen=True)
class ProcedureCtx:
    supervisor: ProcessSupervisor
    probe: Probe
    environ: MutableMapping[str, str]
    dry_run: bool = False

    def resolve(self, binary: str) -> str:
        if self.dry_run:
            return binary
        return resolve_binary(binary, self.environ)


def run_package_manager(ctx: ProcedureCtx, manager: PackageManager, package_id: str, name: str) -> InstallationAttempt:
    """Install ``package_id`` through ``manager``.

    Raises MethodUnavailable if the manager binary cannot be found.
    """

    binary = ctx.resolve(manager.binary)
    return ctx.supervisor.run(manager.kind, [binary, *manager.install_args(package_id)], name)
