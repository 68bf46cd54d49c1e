"""Supervised execution of long-running installer processes.

One attempt = one external command. The calling thread never blocks on the
process itself: a reader thread pumps the combined output and signals an
event when the process exits, and the supervising loop waits on that event in
fixed ticks. Every tick writes a heartbeat. A soft threshold logs a warning.
The hard threshold kills the whole process tree and reports TIMED_OUT.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

import psutil

from ..run_context import RunContext
from .attempt_log import AttemptLog, attempt_log_path
from .command import fmt_argv
from .exit_codes import ManagerKind, Outcome, interpret, sentinel_reason
from .managers import MethodUnavailable

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 5.0
WARN_AFTER_S = 10 * 60.0
HARD_TIMEOUT_S = 20 * 60.0

# Bounded waits used after the process is gone or killed.
PIPE_DRAIN_S = 5.0
KILL_GRACE_S = 5.0


@dataclass
class InstallationAttempt:
    manager: ManagerKind
    command: str
    arguments: List[str]
    log_path: Path
    start_time: datetime
    end_time: Optional[datetime] = None
    exit_code: Optional[int] = None
    outcome: Outcome = Outcome.FAILURE
    warned: bool = False
    output: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESS

    @property
    def timed_out(self) -> bool:
        return self.outcome is Outcome.TIMED_OUT

    @property
    def duration_s(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()


class _OutputPump:
    def __init__(self, proc: subprocess.Popen, name: str):
        self._proc = proc
        self._lines: List[Tuple[datetime, str]] = []
        self._lock = threading.Lock()
        self.done = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name=f"supervise-{name}")

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        try:
            stream = self._proc.stdout
            if stream is not None:
                for raw in stream:
                    with self._lock:
                        self._lines.append((datetime.now(), raw.rstrip("\r\n")))
        except (OSError, ValueError) as e:
            # Pipe torn down by a kill.
            logger.debug("Output pump stopped: %s", e)
        finally:
            self._proc.wait()
            self.done.set()

    def drain(self) -> List[Tuple[datetime, str]]:
        """Lines captured since the previous call."""
        with self._lock:
            lines, self._lines = self._lines, []
        return lines


def kill_process_tree(proc: subprocess.Popen, *, grace_s: float = KILL_GRACE_S) -> None:
    """Kill ``proc`` and all of its descendants.

    Descendants go through psutil; the root is killed through Popen so that
    Popen still reaps it and records its status.
    """

    try:
        children = psutil.Process(proc.pid).children(recursive=True)
    except psutil.NoSuchProcess:
        children = []

    for p in children:
        try:
            p.kill()
        except psutil.NoSuchProcess:
            continue
    if proc.poll() is None:
        proc.kill()

    _gone, alive = psutil.wait_procs(children, timeout=grace_s)
    for p in alive:
        logger.warning("Process %s did not exit after kill", p.pid)


class ProcessSupervisor:
    def __init__(
        self,
        context: RunContext,
        *,
        environ: Optional[Mapping[str, str]] = None,
        dry_run: bool = False,
        poll_interval_s: float = POLL_INTERVAL_S,
        warn_after_s: float = WARN_AFTER_S,
        hard_timeout_s: float = HARD_TIMEOUT_S,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.context = context
        self.environ = environ
        self.dry_run = dry_run
        self.poll_interval_s = poll_interval_s
        self.warn_after_s = warn_after_s
        self.hard_timeout_s = hard_timeout_s
        self._clock = clock

    def run(self, manager: ManagerKind, argv: Sequence[str], package_name: str) -> InstallationAttempt:
        argv_list = [str(a) for a in argv]
        if not argv_list:
            raise ValueError("empty command")

        started = datetime.now()
        log = AttemptLog(attempt_log_path(self.context.run_dir, manager.value, package_name, now=started))
        log.header(
            package=package_name,
            manager=manager.value,
            command=argv_list[0],
            arguments=argv_list[1:],
            started=started,
        )
        attempt = InstallationAttempt(
            manager=manager,
            command=argv_list[0],
            arguments=argv_list[1:],
            log_path=log.path,
            start_time=started,
        )
        logger.info("[%s] %s: %s", package_name, manager.value, fmt_argv(argv_list))

        if self.dry_run:
            log.entry("dry run: command not executed")
            return self._finish(attempt, log, exit_code=0, outcome=Outcome.SUCCESS)

        t0 = self._clock()
        try:
            proc = subprocess.Popen(
                argv_list,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                env=dict(self.environ) if self.environ is not None else None,
                creationflags=getattr(subprocess, "CREATE_NO_WINDOW", 0),
            )
        except OSError as e:
            log.entry(f"launch failed: {e}")
            self._finish(attempt, log, exit_code=None, outcome=Outcome.FAILURE)
            raise MethodUnavailable(f"{argv_list[0]}: {e}") from e

        pump = _OutputPump(proc, package_name)
        pump.start()

        while True:
            remaining = self.hard_timeout_s - (self._clock() - t0)
            if remaining <= 0:
                return self._time_out(attempt, log, proc, pump, package_name)

            if pump.done.wait(min(self.poll_interval_s, remaining)):
                break
            if proc.poll() is not None:
                # A grandchild can keep the pipe open after the installer exits.
                pump.done.wait(PIPE_DRAIN_S)
                break

            self._flush(attempt, log, pump)
            elapsed = self._clock() - t0
            log.entry(f"heartbeat: running, elapsed {elapsed:.0f}s")
            if elapsed >= self.warn_after_s and not attempt.warned:
                attempt.warned = True
                log.entry(f"WARNING: still running after {elapsed:.0f}s, continuing to wait")
                logger.warning(
                    "[%s] %s still running after %.0f minutes (hard limit %.0f minutes)",
                    package_name,
                    manager.value,
                    elapsed / 60.0,
                    self.hard_timeout_s / 60.0,
                )

        exit_code = proc.wait()
        self._flush(attempt, log, pump)

        outcome = interpret(manager, exit_code)
        reason = sentinel_reason(manager, exit_code)
        if reason:
            log.entry(f"exit code {exit_code} treated as success: {reason}")
            logger.info("[%s] %s: %s", package_name, manager.value, reason)
        return self._finish(attempt, log, exit_code=exit_code, outcome=outcome)

    def _time_out(
        self,
        attempt: InstallationAttempt,
        log: AttemptLog,
        proc: subprocess.Popen,
        pump: _OutputPump,
        package_name: str,
    ) -> InstallationAttempt:
        kill_process_tree(proc)
        pump.done.wait(KILL_GRACE_S)

        self._flush(attempt, log, pump)
        log.entry(f"TIMEOUT: exceeded hard limit of {self.hard_timeout_s:.0f}s, process tree killed")
        logger.error(
            "[%s] %s timed out after %.0f minutes; process killed",
            package_name,
            attempt.manager.value,
            self.hard_timeout_s / 60.0,
        )
        return self._finish(attempt, log, exit_code=proc.poll(), outcome=Outcome.TIMED_OUT)

    @staticmethod
    def _flush(attempt: InstallationAttempt, log: AttemptLog, pump: _OutputPump) -> None:
        lines = pump.drain()
        if lines:
            log.output(lines)
            attempt.output.extend(text for _at, text in lines)

    def _finish(
        self,
        attempt: InstallationAttempt,
        log: AttemptLog,
        *,
        exit_code: Optional[int],
        outcome: Outcome,
    ) -> InstallationAttempt:
        attempt.end_time = datetime.now()
        attempt.exit_code = exit_code
        attempt.outcome = outcome
        log.trailer(
            exit_code=exit_code,
            ended=attempt.end_time,
            duration_s=attempt.duration_s,
            outcome=outcome.value,
        )
        if outcome is not Outcome.SUCCESS:
            logger.warning(
                "[%s] %s finished with %s (exit code %s), log: %s",
                attempt.command,
                attempt.manager.value,
                outcome.value,
                exit_code,
                attempt.log_path,
            )
        return attempt
