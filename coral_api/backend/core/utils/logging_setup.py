"""
Logging configuration for the CLI and the API server.

Interactive commands log through Rich; a production server logs plain
timestamped lines so that hosting platforms can parse them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

PLAIN_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# Third-party loggers that are chatty at INFO.
QUIET_LOGGERS = ("matplotlib", "statsmodels", "httpx", "slowapi", "PIL")


def level_from_name(name: str | int | None, default: int = logging.INFO) -> int:
    """``"debug"`` / ``"WARNING"`` / ``10`` to a logging level; unknown names give ``default``."""
    if isinstance(name, int):
        return name
    if not name:
        return default
    level = logging.getLevelName(str(name).upper())
    return level if isinstance(level, int) else default


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | str | None = None,
    rich_console: bool = True,
) -> None:
    """
    Configure the root logger.

    Args:
        level: Console logging level
        log_file: Optional file receiving DEBUG and above
        rich_console: Rich-formatted console output; plain lines when False
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(min(level, logging.DEBUG) if log_file else level)
    root_logger.handlers.clear()

    if rich_console:
        console_handler: logging.Handler = RichHandler(show_time=False, show_path=False, rich_tracebacks=True)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_from_config(config: dict[str, Any], override_level: int | None = None) -> None:
    """Apply the ``logging`` config section (``level``, ``file``); production uses plain output."""
    section = config.get("logging", {}) or {}
    level = override_level if override_level is not None else level_from_name(section.get("level"))
    production = str(config.get("api", {}).get("environment", "")).lower() == "production"
    setup_logging(level, section.get("file"), rich_console=not production)
