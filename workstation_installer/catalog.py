"""Software catalog: the declarative list of things to install.

The YAML shape::

    settings:
      log_root: logs
      reboot_sensitive: ["Microsoft SQL Server*"]
    categories:
      - name: Development
        software:
          - name: Git
            probe: {type: command, name: git}
            winget_id: Git.Git
            choco_id: git

A ``probe`` given as a list means "installed if any of these match".
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .config import OrchestratorConfig

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    pass


class InstallMethodKind(str, enum.Enum):
    PACKAGE = "package"
    IDE_TWO_PHASE = "ide_two_phase"
    VERSION_MANAGER = "version_manager"

    @property
    def is_custom(self) -> bool:
        return self is not InstallMethodKind.PACKAGE


class ProbeKind(str, enum.Enum):
    COMMAND = "command"
    PATH = "path"
    REGISTRY = "registry"
    SERVICE = "service"
    VERSION = "version"
    EXEC = "exec"
    ANY = "any"


@dataclass(frozen=True)
class ProbeSpec:
    kind: ProbeKind
    target: str = ""
    args: Tuple[str, ...] = ()
    pattern: Optional[str] = None
    value_name: Optional[str] = None
    children: Tuple["ProbeSpec", ...] = ()


@dataclass(frozen=True)
class SoftwareSpec:
    name: str
    category: str
    probe: Optional[ProbeSpec] = None
    primary_id: Optional[str] = None
    secondary_id: Optional[str] = None
    method: InstallMethodKind = InstallMethodKind.PACKAGE
    install_command: Optional[str] = None
    options: Mapping[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        if not self.name.strip():
            raise ConfigError(f"Software entry in category {self.category!r} has no name")
        if not (self.method.is_custom or self.primary_id or self.secondary_id):
            raise ConfigError(
                f"{self.name}: no installation method (set winget_id, choco_id or a custom method)"
            )
        if self.method is InstallMethodKind.VERSION_MANAGER and not (self.install_command or "").strip():
            raise ConfigError(f"{self.name}: version_manager method requires install_command")


@dataclass(frozen=True)
class Category:
    name: str
    software: Tuple[SoftwareSpec, ...]


@dataclass(frozen=True)
class Catalog:
    categories: Tuple[Category, ...]

    def all_software(self) -> List[SoftwareSpec]:
        return [s for c in self.categories for s in c.software]


_PROBE_TARGET_KEYS = ("name", "path", "key", "command")


def parse_probe(raw: Any, *, where: str) -> Optional[ProbeSpec]:
    if raw is None:
        return None

    if isinstance(raw, list):
        children = tuple(p for p in (parse_probe(r, where=where) for r in raw) if p is not None)
        if not children:
            return None
        return ProbeSpec(kind=ProbeKind.ANY, children=children)

    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: probe must be a mapping or a list of mappings")

    try:
        kind = ProbeKind(str(raw.get("type", "")).strip().lower())
    except ValueError as e:
        raise ConfigError(f"{where}: unknown probe type {raw.get('type')!r}") from e

    if kind is ProbeKind.ANY:
        return parse_probe(list(raw.get("probes") or []), where=where)

    target_raw: Any = None
    for key in _PROBE_TARGET_KEYS:
        if raw.get(key) is not None:
            target_raw = raw[key]
            break
    if target_raw is None:
        raise ConfigError(f"{where}: {kind.value} probe needs one of {', '.join(_PROBE_TARGET_KEYS)}")

    # Commands may be written as a list: [node, --version]
    args: Tuple[str, ...] = tuple(str(a) for a in (raw.get("args") or []))
    if isinstance(target_raw, list):
        if not target_raw:
            raise ConfigError(f"{where}: empty probe command")
        target = str(target_raw[0])
        args = tuple(str(a) for a in target_raw[1:]) + args
    else:
        target = str(target_raw)

    pattern = raw.get("match")
    if kind is ProbeKind.VERSION and not pattern:
        raise ConfigError(f"{where}: version probe needs a 'match' pattern")

    return ProbeSpec(
        kind=kind,
        target=target,
        args=args,
        pattern=str(pattern) if pattern is not None else None,
        value_name=str(raw["value"]) if raw.get("value") is not None else None,
    )


def parse_software(raw: Dict[str, Any], *, category: str, base_dir: Path) -> SoftwareSpec:
    name = str(raw.get("name") or "").strip()
    where = f"{category}/{name or '?'}"

    method_raw = str(raw.get("method") or InstallMethodKind.PACKAGE.value).strip().lower()
    try:
        method = InstallMethodKind(method_raw)
    except ValueError as e:
        raise ConfigError(f"{where}: unknown install method {method_raw!r}") from e

    options = dict(raw.get("options") or {})
    cfg_file = options.get("config_file")
    if cfg_file and not Path(str(cfg_file)).is_absolute():
        options["config_file"] = str(base_dir / str(cfg_file))

    spec = SoftwareSpec(
        name=name,
        category=category,
        probe=parse_probe(raw.get("probe"), where=where),
        primary_id=(str(raw["winget_id"]).strip() or None) if raw.get("winget_id") else None,
        secondary_id=(str(raw["choco_id"]).strip() or None) if raw.get("choco_id") else None,
        method=method,
        install_command=str(raw["install_command"]) if raw.get("install_command") else None,
        options=options,
    )
    spec.validate()
    return spec


def load_catalog(cfg: OrchestratorConfig) -> Catalog:
    """Build the catalog, keeping category and entry order as written."""

    only = {c.lower() for c in cfg.only_categories}
    categories: list[Category] = []
    seen: set[str] = set()

    for cat_raw in cfg.categories_raw:
        if not isinstance(cat_raw, dict):
            raise ConfigError("Each category must be a mapping with 'name' and 'software'")
        cat_name = str(cat_raw.get("name") or "").strip()
        if not cat_name:
            raise ConfigError("Category without a name")
        if only and cat_name.lower() not in only:
            logger.info("Category %s not selected, skipping", cat_name)
            continue

        entries = cat_raw.get("software") or []
        if not isinstance(entries, list):
            raise ConfigError(f"Category {cat_name}: software must be a list")

        specs: list[SoftwareSpec] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ConfigError(f"Category {cat_name}: software entries must be mappings")
            if entry.get("enabled") is False:
                logger.info("Skipping disabled entry %s/%s", cat_name, entry.get("name"))
                continue
            spec = parse_software(entry, category=cat_name, base_dir=cfg.base_dir)
            key = spec.name.lower()
            if key in seen:
                raise ConfigError(f"Duplicate software name: {spec.name}")
            seen.add(key)
            specs.append(spec)

        categories.append(Category(name=cat_name, software=tuple(specs)))

    return Catalog(categories=tuple(categories))


def catalog_from_specs(groups: Iterable[Tuple[str, Sequence[SoftwareSpec]]]) -> Catalog:
    return Catalog(categories=tuple(Category(name=n, software=tuple(s)) for n, s in groups))
