# tests/test_main.py
from workstation_installer.lib.registry import MappingRegistry
from workstation_installer.logging_utils import LOG_FILE_NAME, current_log_path
from workstation_installer.main import main, run

CATALOG = """
settings:
  reboot_sensitive: []
categories:
  - name: Core
    software:
      - name: Missing Tool
        probe: {type: command, name: definitely-not-installed-5c1e}
        winget_id: Vendor.MissingTool
        choco_id: missing-tool
  - name: Runtimes
    software:
      - name: Other Tool
        probe: {type: command, name: also-not-installed-5c1e}
        choco_id: other-tool
"""


def _catalog(tmp_path, text=CATALOG):
    p = tmp_path / "software.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_dry_run_end_to_end(tmp_path):
    cfg = _catalog(tmp_path)
    log_root = tmp_path / "logs"

    code = main(["--config", str(cfg), "--log-root", str(log_root), "--dry-run"])

    assert code == 0
    run_dirs = [d for d in log_root.iterdir() if d.is_dir()]
    assert len(run_dirs) == 1
    assert run_dirs[0].name.startswith("run_")
    assert len(list(run_dirs[0].glob("winget_Missing_Tool_*.log"))) == 1
    assert len(list(run_dirs[0].glob("choco_Other_Tool_*.log"))) == 1
    assert not list(run_dirs[0].glob("choco_Missing_Tool_*.log"))

    orchestrator_log = run_dirs[0] / LOG_FILE_NAME
    assert current_log_path() == str(orchestrator_log.resolve())
    text = orchestrator_log.read_text(encoding="utf-8")
    assert "Missing Tool" in text
    assert "Run complete" in text


def test_run_returns_per_category_results(tmp_path):
    environ = {"PATH": str(tmp_path)}
    results = run(
        config_path=str(_catalog(tmp_path)),
        log_root=str(tmp_path / "logs"),
        categories=["runtimes"],
        dry_run=True,
        environ=environ,
        registry=MappingRegistry(),
    )

    assert [r.category for r in results] == ["Runtimes"]
    assert (results[0].total, results[0].succeeded) == (1, 1)
    assert len(results[0].path_refreshes) == 1
    assert environ == {"PATH": str(tmp_path)}


def test_without_managers_the_run_fails(tmp_path):
    results = run(
        config_path=str(_catalog(tmp_path)),
        log_root=str(tmp_path / "logs"),
        environ={"PATH": str(tmp_path)},
        registry=MappingRegistry(),
    )
    assert [r.failed for r in results] == [1, 1]


def test_invalid_catalog_exits_with_config_error(tmp_path):
    cfg = _catalog(tmp_path, "categories:\n  - name: C\n    software:\n      - {name: Lonely}\n")
    assert main(["--config", str(cfg), "--log-root", str(tmp_path / "logs")]) == 2


def test_missing_catalog_exits_with_config_error(tmp_path):
    assert main(["--config", str(tmp_path / "absent.yaml"), "--log-root", str(tmp_path / "logs")]) == 2
