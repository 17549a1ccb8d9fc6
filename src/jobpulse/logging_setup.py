"""Root logger configuration for the runner and for isolated workers."""

from __future__ import annotations

import logging
import sys

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
WORKER_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _BelowLevelFilter(logging.Filter):
    def __init__(self, level: int) -> None:
        super().__init__()
        self._level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self._level


def resolve_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(level.strip().upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Unknown log level: {level!r}")
    return resolved


def _reset_root(level: int) -> logging.Logger:
    root = logging.getLogger()
    root.setLevel(level)
    # Remove any pre-existing handlers to avoid duplicates.
    for handler in list(root.handlers):
        root.removeHandler(handler)
    return root


def setup_logging(level: str | int = "INFO") -> None:
    """Console logging for the runner. Call this once, before the first log line."""

    root = _reset_root(resolve_level(level))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    logging.captureWarnings(True)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def setup_worker_logging(level: str | int = "INFO") -> None:
    """Split worker output: below WARNING to stdout, WARNING and up to stderr.

    The parent re-logs stdout lines at DEBUG and stderr lines at ERROR, and
    adds its own timestamps.
    """

    root = _reset_root(resolve_level(level))
    formatter = logging.Formatter(fmt=WORKER_LOG_FORMAT)

    out = logging.StreamHandler(sys.stdout)
    out.setFormatter(formatter)
    out.addFilter(_BelowLevelFilter(logging.WARNING))
    root.addHandler(out)

    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    err.setFormatter(formatter)
    root.addHandler(err)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
