from __future__ import annotations

import logging
import os
import re
import shutil
from typing import Callable, Dict, Mapping, Optional

import psutil

from ..catalog import ProbeKind, ProbeSpec, SoftwareSpec
from .command import run_cmd
from .managers import search_path
from .registry import RegistryReader, WinRegistry

logger = logging.getLogger(__name__)

PROBE_TIMEOUT_S = 30.0


def expand_path(raw: str, environ: Mapping[str, str]) -> str:
    """Expand ``%VAR%``, ``$VAR`` and ``~`` against ``environ``."""

    def _win(m: "re.Match[str]") -> str:
        name = m.group(1)
        for k, v in environ.items():
            if k.upper() == name.upper():
                return v
        return m.group(0)

    expanded = re.sub(r"%([^%]+)%", _win, raw)
    expanded = re.sub(
        r"\$(\w+)|\$\{(\w+)\}",
        lambda m: environ.get(m.group(1) or m.group(2), m.group(0)),
        expanded,
    )
    return os.path.expanduser(expanded)


class Probe:
    """Idempotency check: is this software already present?

    ``is_installed`` never raises. Anything that goes wrong while evaluating a
    probe counts as "not installed", which at worst causes a redundant install
    attempt.
    """

    def __init__(
        self,
        *,
        environ: Optional[Mapping[str, str]] = None,
        registry: Optional[RegistryReader] = None,
        timeout_s: float = PROBE_TIMEOUT_S,
    ):
        self.environ = environ if environ is not None else os.environ
        self.registry = registry or WinRegistry()
        self.timeout_s = timeout_s
        self._strategies: Dict[ProbeKind, Callable[[ProbeSpec], bool]] = {
            ProbeKind.COMMAND: self._command,
            ProbeKind.PATH: self._path,
            ProbeKind.REGISTRY: self._registry,
            ProbeKind.SERVICE: self._service,
            ProbeKind.VERSION: self._version,
            ProbeKind.EXEC: self._exec,
            ProbeKind.ANY: self._any,
        }

    def is_installed(self, spec: SoftwareSpec) -> bool:
        if spec.probe is None:
            return False
        try:
            found = self.evaluate(spec.probe)
        except Exception as e:
            logger.debug("Probe for %s failed, treating as not installed: %s", spec.name, e)
            return False
        logger.debug("Probe for %s: %s", spec.name, "present" if found else "absent")
        return found

    def evaluate(self, probe: ProbeSpec) -> bool:
        return bool(self._strategies[probe.kind](probe))

    def _command(self, probe: ProbeSpec) -> bool:
        return shutil.which(probe.target, path=search_path(self.environ)) is not None

    def _path(self, probe: ProbeSpec) -> bool:
        return os.path.exists(expand_path(probe.target, self.environ))

    def _registry(self, probe: ProbeSpec) -> bool:
        if probe.value_name:
            return self.registry.read_value(probe.target, probe.value_name) is not None
        return self.registry.key_exists(probe.target)

    def _service(self, probe: ProbeSpec) -> bool:
        get_service = getattr(psutil, "win_service_get", None)
        if get_service is None:
            return False
        try:
            get_service(probe.target)
        except psutil.NoSuchProcess:
            return False
        return True

    def _run(self, probe: ProbeSpec):
        return run_cmd(
            [probe.target, *probe.args],
            check=False,
            env=self.environ,
            timeout_s=self.timeout_s,
        )

    def _version(self, probe: ProbeSpec) -> bool:
        r = self._run(probe)
        return re.search(probe.pattern or "", r.output, re.MULTILINE) is not None

    def _exec(self, probe: ProbeSpec) -> bool:
        return self._run(probe).returncode == 0

    def _any(self, probe: ProbeSpec) -> bool:
        for child in probe.children:
            try:
                if self.evaluate(child):
                    return True
            except Exception as e:
                logger.debug("Probe alternative %s failed: %s", child.kind.value, e)
        return False
