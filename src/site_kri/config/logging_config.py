"""Logging configuration for Site KRI."""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    return handler


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Union[str, Path]] = None,
    log_to_console: bool = True,
) -> logging.Logger:
    """
    Configure the package logger.

    Analysis stages log what they produced at INFO and data anomalies
    (orphan event rows, untimed rows, excluded subjects) at WARNING.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to a log file; parent directories are created
        log_to_console: Whether to also log to stdout

    Returns:
        The configured "site_kri" logger
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    logger = logging.getLogger("site_kri")
    logger.setLevel(level)
    logger.handlers.clear()

    if log_to_console:
        logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level))

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.addHandler(_handler(logging.FileHandler(log_file, encoding="utf-8"), level))

    return logger


def get_logger(name: str = "site_kri") -> logging.Logger:
    """
    Get a package logger.

    Args:
        name: Module name, prefixed with 'site_kri.'

    Returns:
        Logger instance
    """
    if name == "site_kri" or name.startswith("site_kri."):
        return logging.getLogger(name)
    return logging.getLogger(f"site_kri.{name}")
