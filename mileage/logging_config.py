"""
Logging configuration using loguru.
"""
import logging
import os
import sys
from typing import Any, Optional

from loguru import logger

DEFAULT_LOG_LEVEL = "INFO"

DEFAULT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Routes standard library logging records through loguru."""

    def emit(self, record):
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller the record originated from
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.bind(name=record.name).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def configure_logging(
    log_level: Optional[str] = None, log_file: Optional[str] = None
) -> None:
    """
    Configure the loguru sinks.

    Args:
        log_level: Minimum level. Defaults to MILEAGE_LOG_LEVEL or INFO.
        log_file: Optional file sink. Defaults to MILEAGE_LOG_FILE if set.
    """
    if log_level is None:
        log_level = os.environ.get("MILEAGE_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    if log_file is None:
        log_file = os.environ.get("MILEAGE_LOG_FILE")

    logger.remove()
    logger.configure(extra={"name": "mileage"})
    logger.add(
        sys.stderr,
        format=DEFAULT_FORMAT,
        level=log_level.upper(),
        colorize=True,
        backtrace=True,
    )

    if log_file:
        logger.add(
            log_file,
            rotation="10 MB",
            retention="1 week",
            format=DEFAULT_FORMAT,
            level=log_level.upper(),
            backtrace=True,
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)


def get_logger(name: str) -> Any:
    """Get a logger bound to a module name."""
    return logger.bind(name=name)


__all__ = ["logger", "configure_logging", "get_logger"]
