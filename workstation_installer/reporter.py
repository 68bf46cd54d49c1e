from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Sequence

if TYPE_CHECKING:
    from .orchestrator import CategoryResult

logger = logging.getLogger(__name__)


class Reporter(Protocol):
    def report_category(self, result: "CategoryResult") -> None:
        ...

    def report_run(self, results: Sequence["CategoryResult"]) -> None:
        ...


class LoggingReporter:
    """Counts only; anything fancier belongs to an external reporter."""

    def report_category(self, result: "CategoryResult") -> None:
        logger.info(
            "Category %s: %d/%d succeeded",
            result.category,
            result.succeeded,
            result.total,
        )
        for item in result.items:
            if not item.status.ok:
                logger.warning("  %s: %s", item.name, item.status.value)

    def report_run(self, results: Sequence["CategoryResult"]) -> None:
        total = sum(r.total for r in results)
        succeeded = sum(r.succeeded for r in results)
        logger.info("Run complete: %d/%d succeeded across %d categories", succeeded, total, len(results))
