from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")

RULE = "=" * 72


def sanitize_name(name: str) -> str:
    cleaned = _UNSAFE.sub("_", name.strip()).strip("._")
    return cleaned or "package"


def timestamp(dt: Optional[datetime] = None) -> str:
    return (dt or datetime.now()).astimezone().isoformat(timespec="milliseconds")


def attempt_log_path(run_dir: Path, manager: str, package_name: str, *, now: Optional[datetime] = None) -> Path:
    """Unique log path for one attempt: ``<manager>_<package>_<timestamp>.log``."""

    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S_%f")
    base = f"{sanitize_name(manager)}_{sanitize_name(package_name)}_{stamp}"
    candidate = run_dir / f"{base}.log"
    n = 1
    while candidate.exists():
        n += 1
        candidate = run_dir / f"{base}_{n}.log"
    return candidate


class AttemptLog:
    """Append-only UTF-8 log for one installer attempt.

    Layout: header block, timestamped body lines, trailer block. Each write
    opens and closes the file so the log is readable while the attempt runs.
    """

    def __init__(self, path: Path):
        self.path = path

    def _write(self, lines: Iterable[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8", newline="\n") as f:
            for ln in lines:
                f.write(ln + "\n")

    def header(self, *, package: str, manager: str, command: str, arguments: Sequence[str], started: datetime) -> None:
        self._write(
            [
                RULE,
                f"Package:   {package}",
                f"Manager:   {manager}",
                f"Command:   {command}",
                f"Arguments: {' '.join(arguments)}",
                f"Started:   {timestamp(started)}",
                RULE,
            ]
        )

    def entry(self, message: str, *, at: Optional[datetime] = None) -> None:
        self._write([f"[{timestamp(at)}] {message}"])

    def output(self, lines: Iterable[Tuple[datetime, str]]) -> None:
        self._write(f"[{timestamp(at)}] {text}" for at, text in lines)

    def trailer(self, *, exit_code: Optional[int], ended: datetime, duration_s: float, outcome: str) -> None:
        self._write(
            [
                RULE,
                f"Exit code: {'none' if exit_code is None else exit_code}",
                f"Ended:     {timestamp(ended)}",
                f"Duration:  {duration_s:.1f}s",
                f"Outcome:   {outcome}",
                RULE,
            ]
        )
