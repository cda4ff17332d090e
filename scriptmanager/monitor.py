"""Runtime logging helpers for scriptmanager."""

from __future__ import annotations

import logging
import os
import sys
from collections import deque
from pathlib import Path
from typing import List, Optional

LOGGER_NAME = 'scriptmanager'

_FORMAT = '%(asctime)s | %(levelname)s | %(threadName)s | %(message)s'
_DATEFMT = '%Y-%m-%d %H:%M:%S'

_log_file: Optional[str] = None


def _default_log_path() -> Path:
    from .shared_config import LOGS_DIR

    base = Path(LOGS_DIR)
    base.mkdir(parents=True, exist_ok=True)
    return base / 'events.log'


def setup_monitoring(log_file: Optional[str] = None, echo: bool = True,
                     level: int = logging.INFO) -> logging.Logger:
    """
    Configure the package logger.

    Replaces any handlers from a previous call, so it is safe to call again
    with a different log file (tests do this).

    Args:
        log_file: Path of the event log. Defaults to logs/events.log in the
            app data directory.
        echo: Also write events to stderr.
        level: Logger level.
    """
    global _log_file
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATEFMT)

    path = Path(log_file) if log_file else _default_log_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = logging.FileHandler(path, encoding='utf-8')
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    _log_file = str(path)

    if echo:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    logger.debug('Log file: %s', path)
    return logger


def set_verbose(enabled: bool) -> None:
    """Toggle debug output, driven by the 'log' setting."""
    logging.getLogger(LOGGER_NAME).setLevel(logging.DEBUG if enabled else logging.INFO)


def log_event(event: str, message: str, level: int = logging.INFO) -> None:
    """Emit a categorized event, e.g. log_event('manifest.purge', '...')."""
    logging.getLogger(LOGGER_NAME).log(level, '%s: %s', event, message)


def tail_events(limit: int = 50, log_file: Optional[str] = None) -> List[str]:
    """Return the last `limit` lines of the event log."""
    path = log_file or _log_file
    if not path or not os.path.exists(path):
        return []
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        return [line.rstrip('\n') for line in deque(f, maxlen=limit)]
