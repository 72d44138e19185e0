"""
Logging for the forecasting loop, three outputs:
  - stderr: compact colored lines, tagged with the task thread (scanner/watcher)
  - file (always): verbose debug log at logs/run_YYYYMMDD_HHMMSS.log
  - file (optional): newline-delimited JSON
"""

from __future__ import annotations

import json
import logging
import os
import sys
import threading
import time
from datetime import datetime, timezone

_RESET = "\033[0m"
_BOLD = "\033[1m"
_DIM = "\033[2m"
_RED = "\033[31m"
_YELLOW = "\033[33m"
_MAGENTA = "\033[35m"
_CYAN = "\033[36m"
_WHITE = "\033[37m"

_LEVEL_STYLES = {
    "DEBUG": (_DIM, "DBG"),
    "INFO": (_CYAN, "INF"),
    "WARNING": (_YELLOW, "WRN"),
    "ERROR": (_RED, "ERR"),
    "CRITICAL": (_RED + _BOLD, "CRT"),
}

_NOISY_LOGGERS = ("httpx", "httpcore")
_DEFAULT_LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "logs")


def _task_tag(record: logging.LogRecord) -> str:
    """Thread name for background tasks, empty on the main thread."""
    if record.threadName in (None, "MainThread") or record.thread == threading.main_thread().ident:
        return ""
    return record.threadName or ""


class ConsoleFormatter(logging.Formatter):
    def __init__(self, use_color: bool = True):
        super().__init__()
        self._use_color = use_color and _supports_color()

    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime("%H:%M:%S", time.localtime(record.created))
        color, tag = _LEVEL_STYLES.get(record.levelname, (_WHITE, "???"))
        task = _task_tag(record)
        msg = record.getMessage()

        if self._use_color:
            task_part = f"{_MAGENTA}[{task}]{_RESET} " if task else ""
            line = f"{_DIM}{ts}{_RESET} {color}{tag}{_RESET} {task_part}{msg}"
        else:
            task_part = f"[{task}] " if task else ""
            line = f"{ts} {tag} {task_part}{msg}"

        if record.exc_info and record.exc_info[1]:
            exc = f"{type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
            line += f"\n{_RED}     {exc}{_RESET}" if self._use_color else f"\n     {exc}"
        return line


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = f"{type(record.exc_info[1]).__name__}: {record.exc_info[1]}"
        return json.dumps(entry, separators=(",", ":"))


def setup_logging(
    level: str = "INFO",
    json_log_file: str | None = None,
    log_dir: str | None = None,
) -> str:
    """
    Configure the root logger and return the verbose log file path.

    The root sits at DEBUG so the file log captures everything; the console
    handler filters at `level`.
    """
    console_level = logging.getLevelName(level.upper())
    if not isinstance(console_level, int):
        raise ValueError(f"unknown log level {level!r}")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(ConsoleFormatter())
    root.addHandler(console)

    directory = log_dir or _DEFAULT_LOG_DIR
    os.makedirs(directory, exist_ok=True)
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    log_path = os.path.join(directory, f"run_{stamp}.log")
    verbose = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    verbose.setLevel(logging.DEBUG)
    verbose.setFormatter(logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)-8s %(threadName)s %(name)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))
    root.addHandler(verbose)

    if json_log_file:
        fh = logging.FileHandler(json_log_file, mode="a", encoding="utf-8")
        fh.setFormatter(JSONFormatter())
        root.addHandler(fh)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return log_path


def _supports_color() -> bool:
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("FORCE_COLOR"):
        return True
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
