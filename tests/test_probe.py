# tests/test_probe.py
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import psutil
import pytest

from conftest import make_spec
from workstation_installer.catalog import ProbeKind, ProbeSpec
from workstation_installer.lib.probe import Probe, expand_path
from workstation_installer.lib.registry import MappingRegistry

PY = sys.executable


def _probe(**kwargs):
    kwargs.setdefault("environ", {"PATH": os.path.dirname(PY)})
    kwargs.setdefault("registry", MappingRegistry())
    return Probe(**kwargs)


def test_no_probe_means_not_installed():
    assert _probe().is_installed(make_spec()) is False


def test_command_probe_finds_binary_on_search_path():
    spec = make_spec(probe=ProbeSpec(kind=ProbeKind.COMMAND, target=Path(PY).name))
    assert _probe().is_installed(spec) is True


def test_command_probe_uses_given_environment_only(tmp_path):
    spec = make_spec(probe=ProbeSpec(kind=ProbeKind.COMMAND, target=Path(PY).name))
    assert _probe(environ={"PATH": str(tmp_path)}).is_installed(spec) is False


def test_path_probe_expands_windows_style_variables(tmp_path):
    (tmp_path / "tool.exe").write_text("", encoding="utf-8")
    spec = make_spec(probe=ProbeSpec(kind=ProbeKind.PATH, target="%MyRoot%/tool.exe"))
    assert _probe(environ={"MYROOT": str(tmp_path)}).is_installed(spec) is True


def test_expand_path_leaves_unknown_variables():
    assert expand_path("%NOPE%/x", {}) == "%NOPE%/x"
    assert expand_path("$HOME_X/y", {"HOME_X": "/h"}) == "/h/y"


def test_registry_probe_key_and_value():
    reg = MappingRegistry({r"HKLM\SOFTWARE\7-Zip": {"Path": r"C:\Program Files\7-Zip"}})
    key_only = make_spec(probe=ProbeSpec(kind=ProbeKind.REGISTRY, target=r"HKLM\SOFTWARE\7-Zip"))
    with_value = make_spec(probe=ProbeSpec(kind=ProbeKind.REGISTRY, target=r"hklm\software\7-zip", value_name="path"))
    missing_value = make_spec(probe=ProbeSpec(kind=ProbeKind.REGISTRY, target=r"HKLM\SOFTWARE\7-Zip", value_name="Nope"))

    probe = _probe(registry=reg)
    assert probe.is_installed(key_only) is True
    assert probe.is_installed(with_value) is True
    assert probe.is_installed(missing_value) is False


def test_version_probe_matches_output():
    match = make_spec(
        probe=ProbeSpec(kind=ProbeKind.VERSION, target=PY, args=("-c", "print('v20.11.1')"), pattern=r"^v20\.")
    )
    no_match = make_spec(
        probe=ProbeSpec(kind=ProbeKind.VERSION, target=PY, args=("-c", "print('v18.0.0')"), pattern=r"^v20\.")
    )
    probe = _probe()
    assert probe.is_installed(match) is True
    assert probe.is_installed(no_match) is False


def test_version_probe_sees_stderr():
    spec = make_spec(
        probe=ProbeSpec(
            kind=ProbeKind.VERSION,
            target=PY,
            args=("-c", "import sys; sys.stderr.write('openjdk version \"17.0.9\"\\n')"),
            pattern=r"version \"17\.",
        )
    )
    assert _probe().is_installed(spec) is True


@pytest.mark.parametrize("code,expected", [(0, True), (3, False)])
def test_exec_probe_uses_exit_code(code, expected):
    spec = make_spec(probe=ProbeSpec(kind=ProbeKind.EXEC, target=PY, args=("-c", f"import sys; sys.exit({code})")))
    assert _probe().is_installed(spec) is expected


def test_service_probe(monkeypatch):
    def fake_get(name):
        if name == "MSSQLSERVER":
            return MagicMock()
        raise psutil.NoSuchProcess(0)

    monkeypatch.setattr(psutil, "win_service_get", fake_get, raising=False)
    probe = _probe()
    assert probe.is_installed(make_spec(probe=ProbeSpec(kind=ProbeKind.SERVICE, target="MSSQLSERVER"))) is True
    assert probe.is_installed(make_spec(probe=ProbeSpec(kind=ProbeKind.SERVICE, target="Other"))) is False


def test_service_probe_without_service_support(monkeypatch):
    monkeypatch.delattr(psutil, "win_service_get", raising=False)
    spec = make_spec(probe=ProbeSpec(kind=ProbeKind.SERVICE, target="MSSQLSERVER"))
    assert _probe().is_installed(spec) is False


class ExplodingRegistry:
    def key_exists(self, path):
        raise RuntimeError("registry on fire")

    def read_value(self, path, name):
        raise PermissionError("denied")


@pytest.mark.parametrize(
    "probe_spec",
    [
        ProbeSpec(kind=ProbeKind.EXEC, target="definitely-not-a-real-binary-8f3a"),
        ProbeSpec(kind=ProbeKind.VERSION, target="definitely-not-a-real-binary-8f3a", pattern="x"),
        ProbeSpec(kind=ProbeKind.VERSION, target=PY, args=("-c", "print(1)"), pattern="("),
        ProbeSpec(kind=ProbeKind.REGISTRY, target=r"HKLM\SOFTWARE\X"),
        ProbeSpec(kind=ProbeKind.REGISTRY, target=r"HKLM\SOFTWARE\X", value_name="V"),
        ProbeSpec(kind=ProbeKind.REGISTRY, target=r"NOTAHIVE\X"),
        ProbeSpec(kind=ProbeKind.ANY, children=(ProbeSpec(kind=ProbeKind.EXEC, target="nope-8f3a"),)),
    ],
)
def test_probe_never_raises(probe_spec):
    probe = _probe(registry=ExplodingRegistry())
    assert probe.is_installed(make_spec(probe=probe_spec)) is False


def test_probe_timeout_counts_as_not_installed():
    spec = make_spec(probe=ProbeSpec(kind=ProbeKind.EXEC, target=PY, args=("-c", "import time; time.sleep(30)")))
    assert _probe(timeout_s=0.5).is_installed(spec) is False


def test_any_probe_skips_failing_alternatives(tmp_path):
    (tmp_path / "present").write_text("", encoding="utf-8")
    spec = make_spec(
        probe=ProbeSpec(
            kind=ProbeKind.ANY,
            children=(
                ProbeSpec(kind=ProbeKind.EXEC, target="nope-8f3a"),
                ProbeSpec(kind=ProbeKind.PATH, target=str(tmp_path / "present")),
            ),
        )
    )
    assert _probe().is_installed(spec) is True
