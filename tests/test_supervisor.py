# tests/test_supervisor.py
import sys
import time
from datetime import datetime

import pytest

from workstation_installer.lib.attempt_log import attempt_log_path, sanitize_name
from workstation_installer.lib.exit_codes import ManagerKind, Outcome
from workstation_installer.lib.managers import MethodUnavailable
from workstation_installer.lib.supervisor import (
    HARD_TIMEOUT_S,
    KILL_GRACE_S,
    POLL_INTERVAL_S,
    WARN_AFTER_S,
    ProcessSupervisor,
)
from workstation_installer.run_context import RunContext

PY = sys.executable


def _py(code):
    return [PY, "-c", code]


def test_default_thresholds():
    assert POLL_INTERVAL_S == 5.0
    assert WARN_AFTER_S == 600.0
    assert HARD_TIMEOUT_S == 1200.0


def test_successful_run_writes_header_body_and_trailer(run_context):
    sup = ProcessSupervisor(run_context, poll_interval_s=0.1)
    attempt = sup.run(ManagerKind.CHOCOLATEY, _py("print('hello'); print('world')"), "My Pkg/1.0")

    assert attempt.outcome is Outcome.SUCCESS
    assert attempt.succeeded
    assert attempt.exit_code == 0
    assert attempt.output == ["hello", "world"]
    assert attempt.end_time >= attempt.start_time

    log = attempt.log_path
    assert log.parent == run_context.run_dir
    assert log.name.startswith("choco_My_Pkg_1.0_")
    text = log.read_text(encoding="utf-8")
    assert "Package:   My Pkg/1.0" in text
    assert f"Command:   {PY}" in text
    assert "] hello" in text
    assert "] world" in text
    assert "Exit code: 0" in text
    assert "Duration:" in text
    assert "Outcome:   success" in text
    assert text.index("Started:") < text.index("] hello") < text.index("Exit code:")


def test_non_zero_exit_is_failure(run_context):
    sup = ProcessSupervisor(run_context, poll_interval_s=0.1)
    attempt = sup.run(ManagerKind.CHOCOLATEY, _py("import sys; sys.exit(5)"), "pkg")
    assert attempt.outcome is Outcome.FAILURE
    assert attempt.exit_code == 5
    assert "Exit code: 5" in attempt.log_path.read_text(encoding="utf-8")


def test_stderr_is_captured_with_stdout(run_context):
    sup = ProcessSupervisor(run_context, poll_interval_s=0.1)
    attempt = sup.run(ManagerKind.WINGET, _py("import sys; sys.stderr.write('oops\\n')"), "pkg")
    assert "oops" in attempt.output


def test_heartbeat_and_soft_warning_keep_waiting(run_context, caplog):
    sup = ProcessSupervisor(run_context, poll_interval_s=0.1, warn_after_s=0.3, hard_timeout_s=30)
    with caplog.at_level("WARNING"):
        attempt = sup.run(ManagerKind.WINGET, _py("import time; time.sleep(1.0)"), "slow")

    assert attempt.outcome is Outcome.SUCCESS
    assert attempt.warned
    text = attempt.log_path.read_text(encoding="utf-8")
    assert "heartbeat" in text
    assert text.count("WARNING: still running") == 1
    assert any("still running" in r.getMessage() for r in caplog.records)


def test_hard_timeout_kills_process_and_reports_failure(run_context):
    sup = ProcessSupervisor(run_context, poll_interval_s=0.2, warn_after_s=0.5, hard_timeout_s=1.0)
    t0 = time.monotonic()
    attempt = sup.run(ManagerKind.WINGET, _py("import time; print('started', flush=True); time.sleep(120)"), "forever")
    elapsed = time.monotonic() - t0

    assert attempt.outcome is Outcome.TIMED_OUT
    assert attempt.timed_out
    assert not attempt.succeeded
    assert elapsed < 1.0 + KILL_GRACE_S + 5
    text = attempt.log_path.read_text(encoding="utf-8")
    assert "TIMEOUT" in text
    assert "Outcome:   timed_out" in text
    assert "started" in text


def test_hard_timeout_also_kills_children(run_context):
    code = (
        "import subprocess, sys, time;"
        "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(120)']);"
        "time.sleep(120)"
    )
    sup = ProcessSupervisor(run_context, poll_interval_s=0.2, hard_timeout_s=1.0)
    t0 = time.monotonic()
    attempt = sup.run(ManagerKind.CHOCOLATEY, _py(code), "tree")
    assert attempt.timed_out
    assert time.monotonic() - t0 < 1.0 + KILL_GRACE_S + 5


def test_missing_binary_raises_method_unavailable(run_context):
    sup = ProcessSupervisor(run_context)
    with pytest.raises(MethodUnavailable):
        sup.run(ManagerKind.WINGET, ["definitely-not-a-real-binary-8f3a", "install"], "pkg")
    logs = list(run_context.run_dir.glob("winget_pkg_*.log"))
    assert len(logs) == 1
    assert "launch failed" in logs[0].read_text(encoding="utf-8")


def test_dry_run_does_not_spawn(run_context):
    sup = ProcessSupervisor(run_context, dry_run=True)
    attempt = sup.run(ManagerKind.WINGET, ["definitely-not-a-real-binary-8f3a", "install"], "pkg")
    assert attempt.succeeded
    assert "dry run" in attempt.log_path.read_text(encoding="utf-8")


def test_empty_command_rejected(run_context):
    with pytest.raises(ValueError):
        ProcessSupervisor(run_context).run(ManagerKind.WINGET, [], "pkg")


def test_log_names_never_collide(run_context):
    now = datetime(2026, 1, 2, 3, 4, 5, 6)
    first = attempt_log_path(run_context.run_dir, "winget", "Git", now=now)
    first.write_text("", encoding="utf-8")
    second = attempt_log_path(run_context.run_dir, "winget", "Git", now=now)
    assert first != second
    assert first.name == "winget_Git_20260102_030405_000006.log"


def test_sanitize_name():
    assert sanitize_name("Visual Studio 2022 / Community") == "Visual_Studio_2022_Community"
    assert sanitize_name("..") == "package"


def test_run_directories_are_unique(tmp_path):
    now = datetime(2026, 5, 6, 7, 8, 9)
    a = RunContext.create(tmp_path, now=now)
    b = RunContext.create(tmp_path, now=now)
    assert a.run_dir != b.run_dir
    assert a.run_dir.name == "run_20260506_070809"
    assert b.run_dir.name == "run_20260506_070809_2"
