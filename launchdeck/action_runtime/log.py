"""Service logging through loguru.

Launchdeck modules log through loguru directly.  Records sent to stdlib
``logging`` (uvicorn, SQLAlchemy, the launch coordinator) are forwarded by
``_LoguruBridge`` so there is a single pipeline with one format.

Sinks:

- stderr, human readable, at the configured level.
- optionally a JSON-lines file (``LAUNCHDECK_LOG_FILE``), rotated by size
  and pruned by age.  Captured run output never goes here; it lives in the
  ``run_logs`` table.
"""

from __future__ import annotations

import inspect
import logging
import sys

from loguru import logger

_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> "
    "<level>{level: <7}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)

_FILE_ROTATION = "10 MB"
_FILE_RETENTION = "7 days"

# Chatty at INFO.
_QUIET_LOGGERS = ("uvicorn.access", "aiosqlite", "sqlalchemy.engine", "sse_starlette")


class _LoguruBridge(logging.Handler):
    """Forward stdlib ``logging`` records to loguru, keeping the original call site."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame is not None and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = "INFO", *, log_file: str | None = None) -> None:
    """Install the launchdeck sinks and route stdlib logging into them.

    Safe to call more than once (tests, CLI commands that start a server):
    previous sinks are replaced, not duplicated.
    """
    level = level.upper()

    logger.remove()
    logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)
    if log_file:
        logger.add(
            log_file,
            level=level,
            serialize=True,
            rotation=_FILE_ROTATION,
            retention=_FILE_RETENTION,
        )

    logging.basicConfig(handlers=[_LoguruBridge()], level=0, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug("Logging configured (level={}, file={})", level, log_file or "-")
