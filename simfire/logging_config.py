"""Centralized logging configuration for SimFire."""

import logging
import os
from typing import Optional

DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
DEFAULT_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
        level: Optional[str] = None,
        format: str = DEFAULT_FORMAT,
        datefmt: str = DEFAULT_DATEFMT
) -> logging.Logger:
    """
    Configure application logging.

    Args:
        level: Explicit log level. Falls back to ``SIMFIRE_LOG_LEVEL`` or INFO.
        format: Log format string.
        datefmt: Date format string.

    Returns:
        The ``simfire`` logger.
    """
    raw_level = level if level is not None else os.getenv("SIMFIRE_LOG_LEVEL")
    resolved_level = (raw_level or "INFO").upper()
    logging.basicConfig(level=resolved_level, format=format, datefmt=datefmt)

    app_logger = logging.getLogger("simfire")
    app_logger.setLevel(resolved_level)

    app_logger.debug("Logging configured at %s", resolved_level)
    return app_logger
