from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = "orchestrator.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"

# Marker attribute on handlers this module installs.
_OWNED = "_workstation_installer_handler"


def _owned_handlers(root: logging.Logger, kind: type) -> list[logging.Handler]:
    return [h for h in root.handlers if getattr(h, _OWNED, None) == kind.__name__]


def _open_file_handler(log_path: str, fmt: logging.Formatter) -> tuple[logging.Handler, str]:
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_path, encoding="utf-8")
        chosen = log_path
    except OSError:
        chosen = str(Path.cwd() / LOG_FILE_NAME)
        handler = logging.FileHandler(chosen, encoding="utf-8")
    handler.setFormatter(fmt)
    setattr(handler, _OWNED, logging.FileHandler.__name__)
    return handler, chosen


def configure_logging(
    log_path: str,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Point the orchestrator log at ``log_path`` for the current run.

    Orchestrator decisions go to ``<run_dir>/orchestrator.log`` and, optionally,
    the console. Installer output is not routed here; each attempt writes its
    own log file.

    Notes:
    - If the run directory is not writable, fall back to a file in the current
      working directory and keep going.
    - Calling this again (a second run in the same process) swaps the file
      handler for the new run directory. The console handler is installed once.

    Returns the actual file path being used.
    """

    root = logging.getLogger()
    root.setLevel(level)
    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    for old in _owned_handlers(root, logging.FileHandler):
        root.removeHandler(old)
        old.close()

    handler, chosen_path = _open_file_handler(log_path, fmt)
    root.addHandler(handler)

    if also_console and not _owned_handlers(root, logging.StreamHandler):
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        setattr(console, _OWNED, logging.StreamHandler.__name__)
        root.addHandler(console)

    log = logging.getLogger(__name__)
    if chosen_path != log_path:
        log.warning("Could not open %s, logging to %s instead", log_path, chosen_path)
    log.info("Logging to %s", chosen_path)
    return chosen_path


def current_log_path() -> Optional[str]:
    """File the orchestrator log is currently written to, if configured."""

    for h in _owned_handlers(logging.getLogger(), logging.FileHandler):
        return getattr(h, "baseFilename", None)
    return None
