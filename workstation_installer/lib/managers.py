from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional

from .exit_codes import ManagerKind

logger = logging.getLogger(__name__)


class MethodUnavailable(RuntimeError):
    """The binary an install method needs is not on the search path."""


@dataclass(frozen=True)
class PackageManager:
    kind: ManagerKind
    binary: str
    build_args: Callable[[str], List[str]]

    def install_args(self, package_id: str) -> List[str]:
        return self.build_args(package_id)


WINGET = PackageManager(
    kind=ManagerKind.WINGET,
    binary="winget",
    build_args=lambda pid: [
        "install",
        "--id",
        pid,
        "--silent",
        "--accept-source-agreements",
        "--accept-package-agreements",
        "--verbose",
    ],
)

CHOCOLATEY = PackageManager(
    kind=ManagerKind.CHOCOLATEY,
    binary="choco",
    build_args=lambda pid: ["install", pid, "-y", "--verbose"],
)


def search_path(environ: Mapping[str, str]) -> Optional[str]:
    # Windows spells it "Path"; a plain dict is case-sensitive.
    for key in ("PATH", "Path"):
        if environ.get(key):
            return environ[key]
    for key, value in environ.items():
        if key.upper() == "PATH":
            return value
    return None


def resolve_binary(binary: str, environ: Mapping[str, str]) -> str:
    """Locate ``binary`` on the search path carried by ``environ``.

    Raises MethodUnavailable when it cannot be found.
    """
    if os.path.isabs(binary) and os.path.exists(binary):
        return binary
    found = shutil.which(binary, path=search_path(environ))
    if not found:
        raise MethodUnavailable(f"{binary} not found on PATH")
    return found
