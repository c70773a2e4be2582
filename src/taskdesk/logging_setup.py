# src/taskdesk/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE = "taskdesk.log"

# Minimum level shown on the console, by logger-name prefix. First match wins.
CONSOLE_FLOORS: tuple[tuple[str, int], ...] = (
    ("taskdesk.connectors.matrix_", logging.WARNING),
    ("taskdesk.", logging.NOTSET),
    ("aiohttp.web", logging.WARNING),
)
DEFAULT_CONSOLE_FLOOR = logging.ERROR

# Library loggers capped for the file handler too.
LIBRARY_LEVELS = {
    "nio": logging.INFO,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "aiohttp.access": logging.WARNING,
}


class _ConsoleNoiseFilter(logging.Filter):
    """Console-only filter; the file handler still receives everything."""

    def __init__(self, floors: tuple[tuple[str, int], ...] = CONSOLE_FLOORS) -> None:
        super().__init__()
        self._floors = floors

    def filter(self, record: logging.LogRecord) -> bool:
        for prefix, floor in self._floors:
            if record.name.startswith(prefix):
                return record.levelno >= floor
        # Third-party loggers and captured warnings ('py.warnings').
        return record.levelno >= DEFAULT_CONSOLE_FLOOR


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskdesk",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Console handler (filtered, for the operator) + file handler (full detail).

    Call once at start-up, before the first log line. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    for name, level in LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(level)

    return log_file
