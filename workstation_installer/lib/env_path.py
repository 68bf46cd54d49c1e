"""Refresh the executable search path from the machine and user registry values.

Installers update ``Path`` in the registry, not in our process. Re-reading it
after each item lets the next item find a binary that was just installed.
The refresh is returned as an observation; applying it is up to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import MutableMapping, Optional

from .probe import expand_path
from .registry import RegistryReader, WinRegistry

logger = logging.getLogger(__name__)

MACHINE_ENV_KEY = r"HKLM\SYSTEM\CurrentControlSet\Control\Session Manager\Environment"
USER_ENV_KEY = r"HKCU\Environment"


@dataclass(frozen=True)
class PathRefresh:
    previous: Optional[str]
    value: Optional[str]

    @property
    def available(self) -> bool:
        return self.value is not None

    @property
    def changed(self) -> bool:
        return self.available and self.value != self.previous


def _path_key(environ: MutableMapping[str, str]) -> str:
    for key in environ:
        if key.upper() == "PATH":
            return key
    return "PATH"


class PathRefresher:
    def __init__(self, *, registry: Optional[RegistryReader] = None):
        self.registry = registry or WinRegistry()

    def read(self, environ: MutableMapping[str, str]) -> PathRefresh:
        """Compute the new search path; ``value`` is None when the registry has none."""

        current = environ.get(_path_key(environ))
        parts = []
        for key in (MACHINE_ENV_KEY, USER_ENV_KEY):
            raw = self.registry.read_value(key, "Path")
            if raw:
                parts.append(expand_path(str(raw), environ).strip(";"))
        if not parts:
            return PathRefresh(previous=current, value=None)
        return PathRefresh(previous=current, value=";".join(p for p in parts if p))

    def apply(self, refresh: PathRefresh, environ: MutableMapping[str, str]) -> None:
        if not refresh.changed:
            return
        environ[_path_key(environ)] = refresh.value  # type: ignore[assignment]
        logger.info("Executable search path refreshed")
