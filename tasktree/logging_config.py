"""Logging setup for tasktree.

Everything logs through ``get_logger(__name__)``. An application embedding
the reorder core calls ``setup_logging()`` once at startup; the level of
drift and reconciliation-failure diagnostics can be tuned separately from
the rest of the package.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from textual.logging import TextualHandler

LOG_DIR = Path.home() / ".tasktree" / "logs"
LOG_FILE = LOG_DIR / "tasktree.log"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_BYTES = 10 * 1024 * 1024  # 10MB
BACKUP_COUNT = 5

# Drift is logged at WARNING, failed submissions at ERROR
DIAGNOSTICS_LOGGER = "tasktree.services.diagnostics"


def _resolve_level(level: Optional[str], env_var: str, default: str) -> int:
    """Turn a level name (argument, then environment) into a logging level."""
    if level is None:
        level = os.getenv(env_var, default)
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        return getattr(logging, default)
    return numeric_level


def setup_logging(
    log_level: Optional[str] = None,
    diagnostics_level: Optional[str] = None,
    use_textual_handler: bool = False,
) -> None:
    """Configure the root logger for an application using tasktree.

    Args:
        log_level: Root level. Falls back to TASKTREE_LOG_LEVEL, then INFO.
        diagnostics_level: Level of the diagnostics logger. Falls back to
            TASKTREE_DIAGNOSTICS_LOG_LEVEL, then the root level. ``ERROR``
            keeps failed submissions and silences drift reports.
        use_textual_handler: Send records to the textual devtools console
            instead of the rotating log file.
    """
    root_level = _resolve_level(log_level, "TASKTREE_LOG_LEVEL", "INFO")
    diagnostics = _resolve_level(
        diagnostics_level,
        "TASKTREE_DIAGNOSTICS_LOG_LEVEL",
        logging.getLevelName(root_level),
    )

    if use_textual_handler:
        handler: logging.Handler = TextualHandler()
    else:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            LOG_FILE, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    for old in list(root_logger.handlers):
        root_logger.removeHandler(old)
        old.close()
    root_logger.addHandler(handler)
    root_logger.setLevel(root_level)
    logging.getLogger(DIAGNOSTICS_LOGGER).setLevel(diagnostics)

    logging.getLogger(__name__).info(
        f"Logging initialized: level={logging.getLevelName(root_level)}, "
        f"diagnostics={logging.getLevelName(diagnostics)}, "
        f"handler={type(handler).__name__}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get the logger for a module, typically ``get_logger(__name__)``."""
    return logging.getLogger(name)
