"""Production-grade logging configuration with file rotation."""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


def setup_production_logging(
    app_name: str = "OpenRQ",
    console_level: int = logging.WARNING,
    log_dir: Path | None = None,
) -> Path:
    """
    Configure logging with file rotation.

    Creates two log files:
    - openrq.log: DEBUG+ messages from the ``openrq`` package (5 MB per file, 3 rotations)
    - errors.log: ERROR+ messages from every logger (2 MB per file, 2 rotations)

    Args:
        app_name: Application name for log directory
        console_level: Minimum level for console output (default: WARNING)
        log_dir: Override for the platform log directory

    Returns:
        Path to the log directory
    """
    log_dir = log_dir if log_dir is not None else _get_log_directory(app_name)
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    # Remove any existing handlers (in case this is called multiple times)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    detailed_formatter = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    simple_formatter = logging.Formatter("%(levelname)-8s | %(name)s | %(message)s")

    orq_logger = logging.getLogger("openrq")
    orq_logger.setLevel(logging.DEBUG)
    for handler in list(orq_logger.handlers):
        orq_logger.removeHandler(handler)
        handler.close()

    app_log_path = log_dir / "openrq.log"
    app_handler = RotatingFileHandler(
        app_log_path,
        maxBytes=5 * 1024 * 1024,  # 5 MB
        backupCount=3,
        encoding="utf-8",
    )
    app_handler.setLevel(logging.DEBUG)
    app_handler.setFormatter(detailed_formatter)
    orq_logger.addHandler(app_handler)

    # Error-only log (easier to scan for problems)
    error_log_path = log_dir / "errors.log"
    error_handler = RotatingFileHandler(
        error_log_path,
        maxBytes=2 * 1024 * 1024,  # 2 MB
        backupCount=2,
        encoding="utf-8",
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(detailed_formatter)
    root_logger.addHandler(error_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(simple_formatter)
    orq_logger.addHandler(console_handler)

    log = logging.getLogger(__name__)
    log.info("%s logging initialized", app_name)
    log.info("Log directory: %s", log_dir)
    log.info("Platform: %s, Python: %s", sys.platform, sys.version.split()[0])

    return log_dir


def _get_log_directory(app_name: str) -> Path:
    """
    Get platform-specific log directory.

    - Windows: %LOCALAPPDATA%\\AppName\\logs
    - macOS: ~/Library/Logs/AppName
    - Linux: ~/.local/share/AppName/logs
    """
    home = Path.home()

    if sys.platform == "win32":
        base = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local"))
        return base / app_name / "logs"

    elif sys.platform == "darwin":
        return home / "Library" / "Logs" / app_name

    else:
        xdg_data_home = os.environ.get("XDG_DATA_HOME", home / ".local" / "share")
        return Path(xdg_data_home) / app_name / "logs"
