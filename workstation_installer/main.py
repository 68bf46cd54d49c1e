from __future__ import annotations

import argparse
import logging
import os
from typing import List, MutableMapping, Optional

from .catalog import ConfigError, load_catalog
from .config import load_config
from .dispatcher import MethodDispatcher
from .lib.env_path import PathRefresher
from .lib.probe import Probe
from .lib.reboot import RebootGate
from .lib.registry import RegistryReader, WinRegistry
from .lib.supervisor import ProcessSupervisor
from .logging_utils import LOG_FILE_NAME, configure_logging
from .orchestrator import CategoryOrchestrator, CategoryResult
from .procedures import ProcedureCtx
from .run_context import RunContext

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "software.yaml"


def run(
    *,
    config_path: str = DEFAULT_CONFIG_PATH,
    log_root: Optional[str] = None,
    categories: Optional[List[str]] = None,
    dry_run: bool = False,
    environ: Optional[MutableMapping[str, str]] = None,
    registry: Optional[RegistryReader] = None,
) -> List[CategoryResult]:
    """Install everything in the catalog that is not already present."""

    cfg = load_config(config_path).with_overrides(
        log_root=log_root,
        dry_run=True if dry_run else None,
        only_categories=categories,
    )

    context = RunContext.create(cfg.log_root)
    configure_logging(log_path=str(context.run_dir / LOG_FILE_NAME))
    logger.info("Catalog: %s (dry_run=%s)", cfg.source_path, cfg.dry_run)

    try:
        catalog = load_catalog(cfg)
    except ConfigError:
        logger.exception("Invalid software catalog")
        raise

    env = environ if environ is not None else os.environ
    reg = registry or WinRegistry()

    probe = Probe(environ=env, registry=reg)
    supervisor = ProcessSupervisor(context, environ=env, dry_run=cfg.dry_run)
    ctx = ProcedureCtx(supervisor=supervisor, probe=probe, environ=env, dry_run=cfg.dry_run)

    orchestrator = CategoryOrchestrator(
        probe=probe,
        reboot_gate=RebootGate(cfg.reboot_sensitive, registry=reg),
        installer=MethodDispatcher(ctx),
        path_refresher=PathRefresher(registry=reg),
        environ=env,
    )
    return orchestrator.run(catalog)


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="workstation-installer")
    p.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to the software catalog (yaml)")
    p.add_argument("--log-root", default=None, help="Directory that receives the per-run log directory")
    p.add_argument(
        "--category",
        action="append",
        default=None,
        help="Only process this category (repeatable)",
    )
    p.add_argument("--dry-run", action="store_true", help="Log what would run without starting installers")

    args = p.parse_args(argv)

    try:
        results = run(
            config_path=args.config,
            log_root=args.log_root,
            categories=args.category,
            dry_run=bool(args.dry_run),
        )
    except (ConfigError, FileNotFoundError, ValueError) as e:
        logger.error("Configuration error: %s", e)
        return 2

    return 0 if all(r.failed == 0 for r in results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
