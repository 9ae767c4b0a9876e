#!/usr/bin/env python3
"""
Logging setup for the update engine client.

All client output goes to stderr so that stdout stays free for callers.
The level is controlled through the environment:
- LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL
- DEBUG: "1"/"true" selects DEBUG when LOG_LEVEL is not set

Usage:
    from log_config import setup_logging

    setup_logging()
    logger = logging.getLogger(__name__)
"""

import logging
import os
import sys
from typing import Optional

DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_logging_configured = False


def get_log_level() -> int:
    """Resolve the log level from LOG_LEVEL, falling back to the DEBUG flag."""
    level_str = os.environ.get("LOG_LEVEL", "").upper().strip()

    if not level_str:
        debug_flag = os.environ.get("DEBUG", "").lower().strip()
        if debug_flag in ("1", "true", "yes", "on"):
            level_str = "DEBUG"
        else:
            level_str = DEFAULT_LOG_LEVEL

    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "WARN": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
        "FATAL": logging.CRITICAL,
    }

    return level_map.get(level_str, logging.INFO)


def setup_logging(
    level: Optional[int] = None,
    force: bool = False,
) -> logging.Logger:
    """Configure the root logger on stderr.

    Args:
        level: Log level, None reads it from the environment
        force: Reconfigure even if logging was already set up

    Returns:
        The root logger
    """
    global _logging_configured

    if _logging_configured and not force:
        return logging.getLogger()

    if level is None:
        level = get_log_level()

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=force or not _logging_configured,
    )

    # asyncio logs every unix socket connect at DEBUG
    logging.getLogger("asyncio").setLevel(max(level, logging.WARNING))

    _logging_configured = True

    logger = logging.getLogger()
    logger.debug(f"Logging configured: level={logging.getLevelName(level)}")
    return logger
