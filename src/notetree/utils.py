"""Utility functions for notetree."""

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

LOG_FILE_NAME = "notetree.log"


def setup_logging(
    log_level: str = "INFO",
    log_to_file: bool = False,
    log_to_stderr: bool = False,
    log_dir: Optional[Path] = None,
) -> None:  # pragma: no cover
    """Configure loguru sinks for the current entry point.

    Args:
        log_level: Minimum level for every sink
        log_to_file: Write to a rotating file in the app data directory
        log_to_stderr: Write to stderr (never stdout, so command output stays clean)
        log_dir: Override for the log directory (defaults to ~/.notetree)
    """
    logger.remove()

    if log_to_file:
        if log_dir is None:
            config_dir = os.getenv("NOTETREE_CONFIG_DIR")
            log_dir = Path(config_dir) if config_dir else Path.home() / ".notetree"
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / LOG_FILE_NAME),
            level=log_level,
            rotation="10 MB",
            retention=3,
            backtrace=True,
            diagnose=False,
            enqueue=False,
            colorize=False,
        )

    if log_to_stderr:
        logger.add(sys.stderr, level=log_level, backtrace=True, diagnose=False, colorize=True)

    logger.debug(f"Logging configured: level={log_level}, file={log_to_file}, stderr={log_to_stderr}")
