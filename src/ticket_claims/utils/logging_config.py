"""Logging setup and timing helpers built on loguru."""

import sys
import time
from typing import Any, Optional

from loguru import logger

from ..config import get_settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def setup_logging(level: Optional[str] = None, colorize: bool = True) -> None:
    """Setup loguru logging with the project format.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR). Uses settings if None.
        colorize: Emit ANSI colours on the stdout sink.
    """
    log_level = (level or get_settings().LOG_LEVEL).upper()

    # Remove default logger
    logger.remove()
    logger.add(
        sys.stdout,
        format=LOG_FORMAT,
        level=log_level,
        colorize=colorize,
    )

    logger.debug(f"Logging initialized at level: {log_level}")


class LatencyLogger:
    """Context manager for logging operation latency."""

    def __init__(self, operation: str, level: str = "DEBUG", **extra: Any) -> None:
        self._operation = operation
        self._level = level
        self._extra = extra
        self._start_time: float = 0

    def __enter__(self) -> "LatencyLogger":
        self._start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        elapsed_ms = (time.perf_counter() - self._start_time) * 1000
        bound = logger.bind(**self._extra)

        if exc_type is not None:
            bound.warning(f"{self._operation} failed after {elapsed_ms:.2f}ms: {exc_val}")
        else:
            bound.log(self._level, f"{self._operation} completed in {elapsed_ms:.2f}ms")


def latency_log(operation: str, level: str = "DEBUG", **extra: Any) -> LatencyLogger:
    """
    Create a latency logging context manager.

    Args:
        operation: Operation name.
        level: Loguru level name for the success line.
        **extra: Values bound to the log record.

    Returns:
        LatencyLogger context manager.
    """
    return LatencyLogger(operation, level, **extra)
