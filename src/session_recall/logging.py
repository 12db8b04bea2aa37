"""Logging for session-recall.

Every module logs through a child of the "session_recall" logger, so one
call to setup_logging at a process entry point routes sync, indexing and
search messages to the same log file.
"""

import logging
import sys
from pathlib import Path

DEFAULT_LOG_DIR = Path.home() / ".session-recall" / "logs"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(
    name: str,
    log_dir: Path | None = None,
    level: int = logging.INFO,
    console: bool = True,
) -> logging.Logger:
    """Attach file and stderr handlers to the package logger.

    Args:
        name: Entry point name; messages go to <log_dir>/<name>.log
        log_dir: Log directory, ~/.session-recall/logs/ when omitted
        level: Threshold for the package logger and its handlers
        console: Also write to stderr

    Returns:
        The entry point's logger
    """
    log_dir = log_dir or DEFAULT_LOG_DIR
    log_dir.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger("session_recall")
    package_logger.setLevel(level)
    logger = get_logger(name)

    # A second entry point in the same process keeps the first one's handlers
    if package_logger.handlers:
        return logger

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers: list[logging.Handler] = [logging.FileHandler(log_dir / f"{name}.log", encoding="utf-8")]
    if console:
        handlers.append(logging.StreamHandler(sys.stderr))
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Logger for one component, e.g. get_logger("sync") -> session_recall.sync."""
    return logging.getLogger(f"session_recall.{name}")
