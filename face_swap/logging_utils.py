"""
Logging setup for the face-swap application.

Modules log through ``logging.getLogger(__name__)``; only the entry point
calls :func:`setup_logging`.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)-24s | %(message)s"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name on terminals."""

    COLORS = {
        logging.DEBUG: "\033[36m",      # Cyan
        logging.INFO: "\033[32m",       # Green
        logging.WARNING: "\033[33m",    # Yellow
        logging.ERROR: "\033[31m",      # Red
        logging.CRITICAL: "\033[35m",   # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno)
        if color is None:
            return super().format(record)

        original = record.levelname
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup_logging(level: Union[int, str] = logging.INFO,
                  log_file: Optional[Path] = None,
                  color: Optional[bool] = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Logging level (name or number)
        log_file: Optional file that receives an uncolored copy of the log
        color: Force colored console output on/off (auto-detect if None)

    Returns:
        The package logger
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if color is None:
        color = sys.stderr.isatty()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    formatter_cls = ColoredFormatter if color else logging.Formatter
    console_handler.setFormatter(formatter_cls(LOG_FORMAT))
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root_logger.addHandler(file_handler)

    return logging.getLogger("face_swap")
