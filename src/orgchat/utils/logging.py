"""Logging setup shared by the CLI and library callers.

Records go to a rotating ``orgchat.log`` file. The console only shows
warnings and errors, so streamed replies and JSON output stay readable.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import TextIO

__all__ = ["get_log_path", "reset_logging", "setup_logging"]

LOG_FILE_NAME = "orgchat.log"
_DEFAULT_LOG_DIR = Path.home() / ".orgchat" / "logs"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_THIRD_PARTY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_installed: list[logging.Handler] = []
_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    stream: TextIO | None = None,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the orgchat handlers on the root logger and return the log file path.

    Repeated calls are no-ops unless ``force`` is set, in which case the
    previously installed handlers are replaced.
    """

    global _log_path
    if _installed and not force and _log_path is not None:
        return _log_path
    reset_logging()

    directory = Path(log_dir or os.environ.get("ORGCHAT_LOG_DIR") or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILE_NAME
    formatter = logging.Formatter(fmt=_FORMAT, datefmt=_DATE_FORMAT)

    handlers: list[logging.Handler] = [_file_handler(log_path, level, max_bytes, backup_count)]
    if console:
        handlers.append(_console_handler(stream, level))

    root = logging.getLogger()
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)
    logging.captureWarnings(True)
    for name in _THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    _installed.extend(handlers)
    _log_path = log_path
    return log_path


def reset_logging() -> None:
    """Detach and close the handlers installed by :func:`setup_logging`."""

    global _log_path
    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()
    _log_path = None


def get_log_path() -> Path | None:
    """Return the current log file, if logging has been set up."""

    return _log_path


def _file_handler(path: Path, level: int, max_bytes: int, backup_count: int) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    return handler


def _console_handler(stream: TextIO | None, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream)
    handler.setLevel(max(level, logging.WARNING))
    return handler
