"""Logging setup for the quillstream command line tool.

Every run is recorded in a rotating log file. The console only shows warnings
unless debug logging is on, so it does not drown the trigger listing.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

__all__ = ["LOG_DIR_ENV", "get_log_path", "setup_logging"]

LOG_DIR_ENV = "QUILLSTREAM_LOG_DIR"
_DEFAULT_LOG_DIR = Path.home() / ".quillstream" / "logs"
_LOG_FILENAME = "quillstream.log"
_FILE_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
_CONSOLE_FORMAT = "%(levelname)s: %(message)s"
# These log every HTTP request at INFO or DEBUG.
_CHATTY_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "openai")

_installed: list[logging.Handler] = []
_log_path: Path | None = None


def setup_logging(debug: bool = False, *, log_dir: Path | str | None = None) -> Path:
    """Install the file and console handlers, replacing ones installed earlier.

    ``log_dir`` wins over ``$QUILLSTREAM_LOG_DIR``, which wins over
    ``~/.quillstream/logs``. Returns the log file path.
    """

    global _log_path
    target_dir = Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / _LOG_FILENAME

    root = logging.getLogger()
    for handler in _installed:
        root.removeHandler(handler)
        handler.close()
    _installed.clear()

    file_handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG if debug else logging.INFO)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    for handler in (file_handler, console_handler):
        root.addHandler(handler)
        _installed.append(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    chatty_level = logging.DEBUG if debug else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(chatty_level)

    _log_path = path
    return path


def get_log_path() -> Path | None:
    """Log file of the last :func:`setup_logging` call, if any."""

    return _log_path
