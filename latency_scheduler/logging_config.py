"""
Logging configuration for the scheduler process.

Modules only ever call logging.getLogger(__name__); the handler and format
are installed once, from the CLI entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional, Union

DEFAULT_FORMAT = "[%(asctime)s] [SCHEDULER] %(levelname)s %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the root logger to write to stdout.

    Args:
        level:         Logging level name or number.
        format_string: Custom format string (default provided).

    Returns:
        The "latency_scheduler" package logger.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(
        level=level,
        format=format_string or DEFAULT_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    # httpx logs every request at INFO; one line per probe drowns the decisions
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("latency_scheduler")
    logger.debug("Logging initialised (level=%s)", logging.getLevelName(level))
    return logger
