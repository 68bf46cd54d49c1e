from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, List, MutableMapping, Optional, Protocol, Sequence

from .catalog import Catalog, SoftwareSpec
from .lib.env_path import PathRefresh, PathRefresher
from .lib.probe import Probe
from .lib.reboot import RebootGate
from .reporter import LoggingReporter, Reporter

logger = logging.getLogger(__name__)


class Installer(Protocol):
    def install(self, spec: SoftwareSpec) -> bool:
        ...


class ItemStatus(str, enum.Enum):
    ALREADY_INSTALLED = "already_installed"
    INSTALLED = "installed"
    DEFERRED = "deferred"
    PREREQUISITE_MISSING = "prerequisite_missing"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self in (ItemStatus.ALREADY_INSTALLED, ItemStatus.INSTALLED)


@dataclass(frozen=True)
class ItemResult:
    name: str
    status: ItemStatus


@dataclass
class CategoryResult:
    category: str
    total: int = 0
    succeeded: int = 0
    items: List[ItemResult] = field(default_factory=list)
    path_refreshes: List[PathRefresh] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    def record(self, name: str, status: ItemStatus) -> None:
        self.total += 1
        if status.ok:
            self.succeeded += 1
        self.items.append(ItemResult(name=name, status=status))


def no_prerequisites(spec: SoftwareSpec) -> bool:
    return True


class CategoryOrchestrator:
    """Walk each category's entries strictly in order, one install at a time."""

    def __init__(
        self,
        *,
        probe: Probe,
        reboot_gate: RebootGate,
        installer: Installer,
        path_refresher: PathRefresher,
        environ: MutableMapping[str, str],
        prerequisites: Callable[[SoftwareSpec], bool] = no_prerequisites,
        reporter: Optional[Reporter] = None,
    ):
        self.probe = probe
        self.reboot_gate = reboot_gate
        self.installer = installer
        self.path_refresher = path_refresher
        self.environ = environ
        self.prerequisites = prerequisites
        self.reporter = reporter or LoggingReporter()

    def _process(self, spec: SoftwareSpec) -> ItemStatus:
        if self.probe.is_installed(spec):
            logger.info("[%s] already installed, skipping", spec.name)
            return ItemStatus.ALREADY_INSTALLED

        if self.reboot_gate.requires_deferral(spec):
            return ItemStatus.DEFERRED

        if not self.prerequisites(spec):
            logger.warning("[%s] prerequisites not met, skipping", spec.name)
            return ItemStatus.PREREQUISITE_MISSING

        logger.info("[%s] installing", spec.name)
        ok = self.installer.install(spec)
        return ItemStatus.INSTALLED if ok else ItemStatus.FAILED

    def refresh_path(self) -> Optional[PathRefresh]:
        """Re-read the search path; None if the refresh itself failed."""
        try:
            refresh = self.path_refresher.read(self.environ)
            self.path_refresher.apply(refresh, self.environ)
        except Exception:
            logger.exception("PATH refresh failed; keeping the current search path")
            return None
        return refresh

    def run_category(self, specs: Sequence[SoftwareSpec], category_name: str) -> CategoryResult:
        result = CategoryResult(category=category_name)
        logger.info("=== Category: %s (%d entries) ===", category_name, len(specs))

        for spec in specs:
            try:
                status = self._process(spec)
            except Exception:
                logger.exception("[%s] failed; continuing with next entry", spec.name)
                status = ItemStatus.FAILED
            result.record(spec.name, status)
            logger.info("[%s] %s", spec.name, status.value)
            refresh = self.refresh_path()
            if refresh is not None:
                result.path_refreshes.append(refresh)

        self.reporter.report_category(result)
        return result

    def run(self, catalog: Catalog) -> List[CategoryResult]:
        results = [self.run_category(list(c.software), c.name) for c in catalog.categories]
        self.reporter.report_run(results)
        return results
