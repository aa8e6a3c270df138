"""loguru sinks for the CLI and engine-hosted runs."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

from loguru import logger


def configure_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure loguru logging."""
    logger.remove()

    level = "DEBUG" if verbose else os.getenv("SDM_LOG_LEVEL", "INFO").upper()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level:<8}</level> | <cyan>{name}</cyan> - {message}",
        level=level,
        colorize=True,
    )

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            rotation="10 MB",
            retention="7 days",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level:<8} | {name} - {message}",
            level="DEBUG",
        )
        logger.info(f"Logging to {log_file}")
