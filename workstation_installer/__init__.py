"""Workstation installer (catalog-driven, idempotent).

Core design goals:
- Idempotent: probe first, install only what is missing
- Serialized installs, one supervised process at a time
- Per-family exit-code semantics
- Bounded waits everywhere (no install can hang the run)
- One log file per installer attempt
"""

__all__ = []
