from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_LOG_ROOT = "logs"


@dataclass(frozen=True)
class RunContext:
    """Where one invocation writes its artifacts.

    Created once at orchestration start and shared read-only by every component
    that writes a log. There is no teardown.
    """

    run_dir: Path
    started_at: datetime

    @classmethod
    def create(cls, log_root: str | Path = DEFAULT_LOG_ROOT, *, now: Optional[datetime] = None) -> "RunContext":
        started = now or datetime.now()
        root = Path(log_root).expanduser()
        root.mkdir(parents=True, exist_ok=True)

        base = f"run_{started.strftime('%Y%m%d_%H%M%S')}"
        candidate = root / base
        n = 1
        while True:
            try:
                candidate.mkdir(parents=False, exist_ok=False)
                break
            except FileExistsError:
                n += 1
                candidate = root / f"{base}_{n}"

        logger.info("Run directory: %s", candidate)
        return cls(run_dir=candidate.resolve(), started_at=started)
