import json
import logging

import pytest

from openrq import cli
from openrq.core.logging_config import setup_production_logging


def test_new_then_info(tmp_path, capsys):
    path = tmp_path / "demo"
    cli.main(["new", str(path)])
    assert "demo.orq" in capsys.readouterr().out

    cli.main(["info", str(path)])
    payload = json.loads(capsys.readouterr().out)
    assert payload["name"] == "demo"
    assert payload["versions"] == 1
    assert payload["items"] == 0


def test_new_refuses_existing_file(tmp_path):
    cli.main(["new", str(tmp_path / "demo")])
    with pytest.raises(SystemExit):
        cli.main(["new", str(tmp_path / "demo")])


def test_commands_require_existing_project(tmp_path):
    with pytest.raises(SystemExit):
        cli.main(["list", str(tmp_path / "missing")])
    assert not (tmp_path / "missing.orq").exists()


def test_add_and_list_items(tmp_path, capsys):
    path = str(tmp_path / "demo")
    cli.main(["new", path])
    cli.main(["add-requirement", path, "--description", "Fast startup"])
    cli.main(["add-solution", path, "--description", "Lazy imports", "--parent", "1"])
    cli.main(["add-version", path, "--name", "beta"])
    capsys.readouterr()

    cli.main(["list", path])
    out = capsys.readouterr().out
    assert "Fast startup" in out
    assert "Lazy imports" in out

    cli.main(["list", path, "--version", "2"])
    assert "No items" in capsys.readouterr().out

    cli.main(["versions", path])
    assert "beta" in capsys.readouterr().out

    cli.main(["validate", path])
    assert json.loads(capsys.readouterr().out) == []


def test_store_errors_exit_with_code_two(tmp_path, capsys):
    path = str(tmp_path / "demo")
    cli.main(["new", path])
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["add-solution", path, "--parent", "404"])
    assert excinfo.value.code == 2
    assert "error:" in capsys.readouterr().err


def test_setup_production_logging_writes_files(tmp_path):
    root = logging.getLogger()
    orq_logger = logging.getLogger("openrq")
    saved_root = list(root.handlers)
    saved_level = root.level
    try:
        log_dir = setup_production_logging(log_dir=tmp_path / "logs")
        logging.getLogger("openrq.tests").error("something broke")
        for handler in root.handlers + orq_logger.handlers:
            handler.flush()
        assert "something broke" in (log_dir / "openrq.log").read_text(encoding="utf-8")
        assert "something broke" in (log_dir / "errors.log").read_text(encoding="utf-8")
    finally:
        for handler in list(root.handlers) + list(orq_logger.handlers):
            handler.close()
        root.handlers = saved_root
        root.setLevel(saved_level)
        orq_logger.handlers = []
        orq_logger.setLevel(logging.NOTSET)
