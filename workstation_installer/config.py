from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

from .run_context import DEFAULT_LOG_ROOT

DEFAULT_REBOOT_SENSITIVE = [
    "Microsoft SQL Server*",
    "SQL Server*",
    "Visual Studio 20*",
]


@dataclass(frozen=True)
class OrchestratorConfig:
    raw: Dict[str, Any]
    source_path: Path | None = None
    overrides: Dict[str, Any] = field(default_factory=dict)

    def _settings(self) -> Dict[str, Any]:
        return self.raw.get("settings") or {}

    def _get(self, key: str, default: Any) -> Any:
        if self.overrides.get(key) is not None:
            return self.overrides[key]
        value = self._settings().get(key)
        return default if value is None else value

    @property
    def base_dir(self) -> Path:
        """Directory that relative paths in the catalog are resolved against."""
        if self.source_path is None:
            return Path.cwd()
        return self.source_path.resolve().parent

    @property
    def log_root(self) -> str:
        return str(self._get("log_root", DEFAULT_LOG_ROOT))

    @property
    def dry_run(self) -> bool:
        return bool(self._get("dry_run", False))

    @property
    def reboot_sensitive(self) -> List[str]:
        patterns = self._get("reboot_sensitive", DEFAULT_REBOOT_SENSITIVE)
        if not isinstance(patterns, list):
            raise ValueError("settings.reboot_sensitive must be a list of name patterns")
        return [str(p) for p in patterns]

    @property
    def only_categories(self) -> List[str]:
        return list(self.overrides.get("only_categories") or [])

    @property
    def categories_raw(self) -> List[Dict[str, Any]]:
        cats = self.raw.get("categories") or []
        if not isinstance(cats, list):
            raise ValueError("categories must be a list of {name, software} mappings")
        return cats

    def with_overrides(self, **overrides: Any) -> "OrchestratorConfig":
        merged = dict(self.overrides)
        merged.update({k: v for k, v in overrides.items() if v is not None})
        return OrchestratorConfig(raw=self.raw, source_path=self.source_path, overrides=merged)


def load_config(path: str) -> OrchestratorConfig:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(path)

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ValueError("software catalog must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise RuntimeError("PyYAML is required to read the software catalog") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("software catalog must contain a mapping/object")

    return OrchestratorConfig(raw=raw, source_path=p)
