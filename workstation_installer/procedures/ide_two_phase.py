"""Two-phase install for IDE products whose installer is itself a product.

Phase one installs the bare product through winget. Phase two waits for the
product's own modify tool to appear and applies a workload configuration with
it. That tool often exits with codes that mean neither success nor failure,
so the outcome is settled by verification rather than by the exit code alone.

    NOT_INSTALLED -> BASE_INSTALLING -> WAITING_FOR_MODIFY_TOOL
        -> APPLYING_WORKLOADS -> VERIFYING -> INSTALLED | FAILED
"""

from __future__ import annotations

import enum
import logging
import ntpath
import os
import secrets
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from ..catalog import InstallMethodKind, SoftwareSpec
from ..lib.attempt_log import sanitize_name
from ..lib.exit_codes import ManagerKind
from ..lib.managers import WINGET, MethodUnavailable
from ..lib.supervisor import InstallationAttempt
from .base import ProcedureCtx, run_package_manager

logger = logging.getLogger(__name__)

MODIFY_TOOL_WAIT_S = 5 * 60.0
MODIFY_TOOL_POLL_S = 10.0

DEFAULT_INSTALL_PATH = r"C:\Program Files\Microsoft Visual Studio\2022\Community"
DEFAULT_MODIFY_TOOL_PATHS = (
    r"C:\Program Files (x86)\Microsoft Visual Studio\Installer\setup.exe",
    r"C:\Program Files (x86)\Microsoft Visual Studio\Installer\vs_installer.exe",
    r"C:\Program Files\Microsoft Visual Studio\Installer\setup.exe",
)
DEFAULT_PRODUCT_EXECUTABLE = r"Common7\IDE\devenv.exe"


class IdeState(str, enum.Enum):
    NOT_INSTALLED = "not_installed"
    BASE_INSTALLING = "base_installing"
    WAITING_FOR_MODIFY_TOOL = "waiting_for_modify_tool"
    APPLYING_WORKLOADS = "applying_workloads"
    VERIFYING = "verifying"
    INSTALLED = "installed"
    FAILED = "failed"


@dataclass(frozen=True)
class IdeOptions:
    install_path: str
    modify_tool_paths: List[str]
    config_file: Optional[str]
    product_executable: str

    @classmethod
    def from_spec(cls, spec: SoftwareSpec) -> "IdeOptions":
        o = spec.options or {}
        tools = o.get("modify_tool_paths") or list(DEFAULT_MODIFY_TOOL_PATHS)
        if isinstance(tools, str):
            tools = [tools]
        return cls(
            install_path=str(o.get("install_path") or DEFAULT_INSTALL_PATH),
            modify_tool_paths=[str(t) for t in tools],
            config_file=str(o["config_file"]) if o.get("config_file") else None,
            product_executable=str(o.get("product_executable") or DEFAULT_PRODUCT_EXECUTABLE),
        )

    @property
    def product_executable_path(self) -> str:
        exe = self.product_executable
        if os.path.isabs(exe) or ntpath.isabs(exe):
            return exe
        if "\\" in self.install_path:
            return ntpath.join(self.install_path, exe)
        return os.path.join(self.install_path, exe)


def stage_config_file(source: str, name: str) -> Path:
    """Copy the workload config to a temp path unique to this process."""

    src = Path(source)
    dst = Path(tempfile.gettempdir()) / f"{sanitize_name(name)}-{os.getpid()}-{secrets.token_hex(4)}{src.suffix}"
    shutil.copy2(src, dst)
    return dst


class IdeTwoPhaseProcedure:
    kind = InstallMethodKind.IDE_TWO_PHASE

    def __init__(
        self,
        ctx: ProcedureCtx,
        *,
        wait_timeout_s: float = MODIFY_TOOL_WAIT_S,
        poll_interval_s: float = MODIFY_TOOL_POLL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        exists: Callable[[str], bool] = os.path.exists,
    ):
        self.ctx = ctx
        self.wait_timeout_s = wait_timeout_s
        self.poll_interval_s = poll_interval_s
        self._clock = clock
        self._sleep = sleep
        self._exists = exists
        self.history: List[IdeState] = []

    def _enter(self, spec: SoftwareSpec, state: IdeState) -> None:
        self.history.append(state)
        logger.info("[%s] %s", spec.name, state.value)

    def _fail(self, spec: SoftwareSpec, reason: str) -> bool:
        logger.error("[%s] %s", spec.name, reason)
        self._enter(spec, IdeState.FAILED)
        return False

    def run(self, spec: SoftwareSpec) -> bool:
        self.history = []
        opts = IdeOptions.from_spec(spec)
        self._enter(spec, IdeState.NOT_INSTALLED)

        self._enter(spec, IdeState.BASE_INSTALLING)
        if not spec.primary_id:
            return self._fail(spec, "base install needs a winget id")
        try:
            base = run_package_manager(self.ctx, WINGET, spec.primary_id, spec.name)
        except MethodUnavailable as e:
            return self._fail(spec, f"base install unavailable: {e}")
        if not base.succeeded:
            return self._fail(spec, f"base install failed ({base.outcome.value}), see {base.log_path}")

        self._enter(spec, IdeState.WAITING_FOR_MODIFY_TOOL)
        tool = self.wait_for_modify_tool(opts.modify_tool_paths)
        if tool is None:
            return self._fail(
                spec,
                f"modify tool did not appear within {self.wait_timeout_s:.0f}s "
                f"(looked in: {', '.join(opts.modify_tool_paths)})",
            )

        self._enter(spec, IdeState.APPLYING_WORKLOADS)
        if not opts.config_file or not (self.ctx.dry_run or os.path.exists(opts.config_file)):
            return self._fail(spec, f"workload configuration not found: {opts.config_file}")
        attempt = self.apply_workloads(spec, tool, opts)

        self._enter(spec, IdeState.VERIFYING)
        if self.verify(spec, attempt, opts):
            self._enter(spec, IdeState.INSTALLED)
            return True
        return self._fail(spec, "verification failed: no exit-code, probe or executable evidence of install")

    def wait_for_modify_tool(self, candidates: Sequence[str]) -> Optional[str]:
        if self.ctx.dry_run:
            return candidates[0] if candidates else None

        deadline = self._clock() + self.wait_timeout_s
        while True:
            for c in candidates:
                if self._exists(c):
                    logger.info("Modify tool found: %s", c)
                    return c
            if self._clock() >= deadline:
                return None
            self._sleep(min(self.poll_interval_s, max(0.0, deadline - self._clock())))

    def apply_workloads(self, spec: SoftwareSpec, tool: str, opts: IdeOptions) -> Optional[InstallationAttempt]:
        source = str(opts.config_file)
        staged: Optional[Path] = None
        try:
            if self.ctx.dry_run:
                config_arg = source
            else:
                staged = stage_config_file(source, spec.name)
                config_arg = str(staged)
            argv = [tool, "modify", "--installPath", opts.install_path, "--config", config_arg, "--quiet"]
            return self.ctx.supervisor.run(ManagerKind.IDE_MODIFY, argv, spec.name)
        except MethodUnavailable as e:
            logger.warning("[%s] modify tool could not be started: %s", spec.name, e)
            return None
        finally:
            if staged is not None:
                staged.unlink(missing_ok=True)

    def verify(self, spec: SoftwareSpec, attempt: Optional[InstallationAttempt], opts: IdeOptions) -> bool:
        if attempt is not None and attempt.succeeded:
            return True
        if attempt is not None:
            logger.info(
                "[%s] modify tool returned %s (exit code %s); checking install state",
                spec.name,
                attempt.outcome.value,
                attempt.exit_code,
            )
        if self.ctx.probe.is_installed(spec):
            logger.info("[%s] probe reports installed", spec.name)
            return True
        exe = opts.product_executable_path
        if self._exists(exe):
            logger.info("[%s] product executable present: %s", spec.name, exe)
            return True
        return False
