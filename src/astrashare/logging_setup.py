# src/astrashare/logging_setup.py

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Console thresholds for chatty astrashare loggers, longest prefix wins.
# Background loops and per-frame stream logs go to the file; the console
# already prints their summaries through command replies.
CONSOLE_MIN_LEVELS: dict[str, int] = {
    "astrashare.tasks.task_poller": logging.WARNING,
    "astrashare.tasks.task_detail": logging.WARNING,
    "astrashare.tasks.live_analysis": logging.WARNING,
    "astrashare.scan.scan_session": logging.WARNING,
    "astrashare.scan.sse": logging.WARNING,
    "astrashare.notify.gate": logging.WARNING,
    "astrashare.backend.client": logging.WARNING,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the interactive console readable while a scan or a poll is running:
    - astrashare logs pass, subject to CONSOLE_MIN_LEVELS
    - httpx / httpcore request lines and py.warnings only at ERROR+
    """

    def __init__(self, min_levels: dict[str, int] | None = None) -> None:
        super().__init__()
        levels = CONSOLE_MIN_LEVELS if min_levels is None else min_levels
        self._prefixes = sorted(levels.items(), key=lambda kv: len(kv[0]), reverse=True)

    def _threshold(self, name: str) -> int:
        for prefix, level in self._prefixes:
            if name == prefix or name.startswith(prefix + "."):
                return level
        return logging.NOTSET

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name == "astrashare" or name.startswith("astrashare."):
            return record.levelno >= self._threshold(name)
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path = ".local/astrashare",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    file_name: str = "astrashare.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> Path:
    """
    Console handler (filtered, stderr) plus a size-rotated debug log file.

    Call once, before the first log record. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / file_name

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

    # A tracking session can run for hours; keep the file bounded.
    file_handler = RotatingFileHandler(
        str(log_file), maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)

    # httpx logs one INFO line per request; httpcore is connection-level detail.
    logging.getLogger("httpx").setLevel(logging.INFO)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    return log_file
