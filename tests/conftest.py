# tests/conftest.py
import os
import stat
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from workstation_installer.catalog import ProbeKind, ProbeSpec, SoftwareSpec
from workstation_installer.lib.exit_codes import interpret
from workstation_installer.lib.managers import MethodUnavailable
from workstation_installer.lib.probe import Probe
from workstation_installer.lib.supervisor import InstallationAttempt
from workstation_installer.procedures import ProcedureCtx
from workstation_installer.run_context import RunContext


class FakeSupervisor:
    """Stands in for ProcessSupervisor; exit codes are scripted per manager kind."""

    def __init__(self, run_dir, exit_codes=None, raise_for=()):
        self.run_dir = Path(run_dir)
        self.exit_codes = {k: (list(v) if isinstance(v, list) else v) for k, v in (exit_codes or {}).items()}
        self.raise_for = set(raise_for)
        self.calls = []

    def run(self, manager, argv, package_name):
        self.calls.append((manager, list(argv), package_name))
        if manager in self.raise_for:
            raise MethodUnavailable(f"{argv[0]}: not startable")
        code = self.exit_codes.get(manager, 0)
        if isinstance(code, list):
            code = code.pop(0)
        now = datetime.now()
        return InstallationAttempt(
            manager=manager,
            command=argv[0],
            arguments=list(argv[1:]),
            log_path=self.run_dir / "fake.log",
            start_time=now,
            end_time=now,
            exit_code=code,
            outcome=interpret(manager, code),
        )

    @property
    def managers_called(self):
        return [c[0] for c in self.calls]


@pytest.fixture
def run_context(tmp_path):
    return RunContext.create(tmp_path / "logs")


@pytest.fixture
def fake_bin(tmp_path):
    """Create stub executables in a directory and return that directory."""

    def _make(*names):
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        for name in names:
            suffix = ".bat" if os.name == "nt" else ""
            p = bin_dir / f"{name}{suffix}"
            p.write_text("@exit /b 0\n" if suffix else "#!/bin/sh\nexit 0\n", encoding="utf-8")
            p.chmod(p.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return bin_dir

    return _make


@pytest.fixture
def make_ctx(run_context):
    """Build a ProcedureCtx around a FakeSupervisor and a mocked probe."""

    def _make(*, path="", exit_codes=None, raise_for=(), installed=False, dry_run=False):
        supervisor = FakeSupervisor(run_context.run_dir, exit_codes=exit_codes, raise_for=raise_for)
        probe = MagicMock(spec=Probe)
        probe.is_installed.return_value = installed
        ctx = ProcedureCtx(supervisor=supervisor, probe=probe, environ={"PATH": str(path)}, dry_run=dry_run)
        return ctx, supervisor, probe

    return _make


def make_spec(name="Tool", **kwargs):
    kwargs.setdefault("category", "Test")
    return SoftwareSpec(name=name, **kwargs)


def command_probe(target):
    return ProbeSpec(kind=ProbeKind.COMMAND, target=target)

