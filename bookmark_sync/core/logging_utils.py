"""Structured logging.

Modules log through the stdlib (``logging.getLogger(__name__)``) with a
snake_case event name and ``extra={...}`` fields. :func:`setup_json_logging`
routes those records into loguru, which writes one JSON object per line.
"""

from __future__ import annotations

import inspect
import logging
import sys
import uuid
from typing import Any

from loguru import logger as loguru_logger

# LogRecord attributes that are not user-supplied ``extra`` fields.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_QUIET_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default", "apscheduler.scheduler")


def record_extra(record: logging.LogRecord) -> dict[str, Any]:
    """The ``extra`` fields attached to ``record``."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class LoguruBridge(logging.Handler):
    """Stdlib handler that re-emits records through loguru, keeping ``extra``."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: int | str = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk past the logging module so loguru reports the real caller.
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        loguru_logger.bind(logger_name=record.name, **record_extra(record)).opt(
            depth=depth, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_json_logging(
    level: str = "INFO",
    log_file: str | None = None,
    rotation: str = "100 MB",
    retention: str = "30 days",
) -> None:
    """Send every stdlib record to loguru's serialized JSON sinks.

    Args:
        level: Minimum level for all sinks.
        log_file: Optional rotating file sink in addition to stdout.
        rotation: Loguru rotation policy for ``log_file``.
        retention: Loguru retention policy for ``log_file``.
    """
    level = level.upper()
    numeric = logging.getLevelName(level)
    if not isinstance(numeric, int):
        level, numeric = "INFO", logging.INFO

    loguru_logger.remove()
    loguru_logger.add(sys.stdout, level=level, serialize=True, enqueue=True, diagnose=False)
    if log_file:
        loguru_logger.add(
            log_file,
            level=level,
            serialize=True,
            enqueue=True,
            rotation=rotation,
            retention=retention,
            compression="gz",
        )

    logging.basicConfig(handlers=[LoguruBridge()], level=numeric, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric, logging.WARNING))

    logging.getLogger(__name__).info(
        "logging_initialized", extra={"level": level, "file": log_file}
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def generate_correlation_id() -> str:
    """Short random id tying together the log lines of one refresh."""
    return uuid.uuid4().hex[:12]


__all__ = [
    "LoguruBridge",
    "generate_correlation_id",
    "get_logger",
    "record_extra",
    "setup_json_logging",
]
