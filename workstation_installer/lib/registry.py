"""Read-only access to the Windows registry.

Everything here answers "absent" on hosts without a registry so callers do not
need platform checks of their own.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

_HIVE_ALIASES = {
    "HKLM": "HKEY_LOCAL_MACHINE",
    "HKEY_LOCAL_MACHINE": "HKEY_LOCAL_MACHINE",
    "HKCU": "HKEY_CURRENT_USER",
    "HKEY_CURRENT_USER": "HKEY_CURRENT_USER",
    "HKCR": "HKEY_CLASSES_ROOT",
    "HKEY_CLASSES_ROOT": "HKEY_CLASSES_ROOT",
    "HKU": "HKEY_USERS",
    "HKEY_USERS": "HKEY_USERS",
}


class RegistryReader(Protocol):
    def key_exists(self, path: str) -> bool:
        ...

    def read_value(self, path: str, name: str) -> Optional[Any]:
        ...


def split_key(path: str) -> Tuple[str, str]:
    """Split ``HKLM\\Software\\X`` (or ``HKLM:\\Software\\X``) into hive and subkey."""

    norm = path.replace("/", "\\").strip()
    hive, _, sub = norm.partition("\\")
    hive = hive.rstrip(":").upper()
    if hive not in _HIVE_ALIASES:
        raise ValueError(f"Unknown registry hive in {path!r}")
    return _HIVE_ALIASES[hive], sub.strip("\\")


class WinRegistry:
    """RegistryReader backed by ``winreg``."""

    @property
    def available(self) -> bool:
        return sys.platform == "win32"

    def _open(self, path: str):
        import winreg  # type: ignore

        hive_name, sub = split_key(path)
        return winreg.OpenKey(getattr(winreg, hive_name), sub, 0, winreg.KEY_READ)

    def key_exists(self, path: str) -> bool:
        if not self.available:
            return False
        try:
            key = self._open(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Cannot open registry key %s: %s", path, e)
            return False
        key.Close()
        return True

    def read_value(self, path: str, name: str) -> Optional[Any]:
        if not self.available:
            return None
        import winreg  # type: ignore

        try:
            with self._open(path) as key:
                value, _type = winreg.QueryValueEx(key, name)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Cannot read registry value %s\\%s: %s", path, name, e)
            return None
        return value


class MappingRegistry:
    """RegistryReader over a plain dict: ``{key_path: {value_name: value}}``.

    Used for dry runs and tests. Key lookup is case-insensitive like the real
    registry.
    """

    def __init__(self, keys: Optional[dict] = None):
        self._keys = {self._norm(k): dict(v or {}) for k, v in (keys or {}).items()}

    @staticmethod
    def _norm(path: str) -> str:
        hive, sub = split_key(path)
        return f"{hive}\\{sub}".lower()

    def key_exists(self, path: str) -> bool:
        return self._norm(path) in self._keys

    def read_value(self, path: str, name: str) -> Optional[Any]:
        values = self._keys.get(self._norm(path))
        if values is None:
            return None
        for k, v in values.items():
            if k.lower() == name.lower():
                return v
        return None

    def set_key(self, path: str, values: Optional[dict] = None) -> None:
        """Create or replace a key, e.g. to simulate an installer leaving one behind."""
        self._keys[self._norm(path)] = dict(values or {})
