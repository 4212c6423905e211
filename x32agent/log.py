"""Logging utilities for the X32 agent."""
import logging
import logging.handlers
import os
import sys
import threading
from pathlib import Path
from typing import Optional


# Thread-safe lock for logger initialization
_logger_init_lock = threading.Lock()

# Verbosity → level for the package root logger
#   0: silent in normal operation (warnings and errors only)
#   1: value changes and cascade dispatch
#   2: full diagnostics including raw wire bytes
VERBOSITY_LEVELS = {
    0: logging.WARNING,
    1: logging.INFO,
    2: logging.DEBUG,
}

ROOT_LOGGER_NAME = "x32agent"


class AgentFormatter(logging.Formatter):
    """Compact console format, one line per record.

    Example: [I 14:23:45.123 engine   ] Rule 0.0:float32 matched on /config/mute/2
    """

    FORMAT = "[%(level_char)s %(asctime)s.%(msecs)03d %(component)-9.9s] %(message)s"

    def __init__(self):
        super().__init__(self.FORMAT, datefmt="%H:%M:%S")

    def format(self, record):
        record.level_char = record.levelname[0]
        record.component = record.name.rsplit('.', 1)[-1]
        return super().format(record)


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get logger for an agent component.

    Module loggers normally stay at NOTSET and inherit the level chosen by
    setup_logging() on the package root. Passing level, or setting
    X32AGENT_LOG_LEVEL, pins the level on this logger instead.

    Args:
        name: Component name (usually __name__)
        level: Optional level (DEBUG/INFO/WARNING/ERROR)

    Returns:
        Logger instance
    """
    logger = logging.getLogger(name)

    if level is None:
        level = os.getenv("X32AGENT_LOG_LEVEL")
    if level is not None:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    return logger


def setup_logging(verbosity: int = 0, log_file: Optional[str] = None,
                  max_bytes: int = 10485760, backup_count: int = 5) -> logging.Logger:
    """Configure the package root logger for a verbosity level.

    Installs a stdout handler with AgentFormatter and, when log_file is
    given, a rotating file handler. Calling again replaces the handlers.

    Args:
        verbosity: 0, 1 or 2 (values above 2 are treated as 2)
        log_file: Optional path for a rotating log file
        max_bytes: Rotation size for the log file (default 10MB)
        backup_count: Number of rotated files kept

    Returns:
        The configured package root logger
    """
    level = VERBOSITY_LEVELS.get(min(max(verbosity, 0), 2))
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.propagate = False

    with _logger_init_lock:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(AgentFormatter())
        root.addHandler(console_handler)

        if log_file:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s.%(msecs)03d %(levelname)s [%(name)s] %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            ))
            root.addHandler(file_handler)

    return root
