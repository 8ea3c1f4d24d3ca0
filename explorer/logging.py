"""
Logging configuration for ch2k-explorer.

Two destinations:
  - File: always DEBUG, one file per session in <data_dir>/logs/
  - Console (stderr): style picked by the ``console_format`` config key
    - "simple": (default) bare messages for DEBUG/INFO, [LEVEL] prefix for WARNING+
    - "full":   same structured format as the file handler
    - "clean":  no console output at all (file logging still active)

Format of the file log: "timestamp | level | name | message".
Library modules log through ``logging.getLogger("ch2k-explorer")``.
"""

import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path
from typing import Optional

from config import get_data_dir

LOGGER_NAME = "ch2k-explorer"

_current_log_file: Optional[Path] = None


def get_log_dir() -> Path:
    """Directory holding the per-session log files."""
    return get_data_dir() / "logs"


class _ConsoleFormatter(logging.Formatter):
    """Console formatter: shows [LEVEL] prefix only for WARNING and above."""

    def format(self, record: logging.LogRecord) -> str:
        if record.levelno >= logging.WARNING:
            return f"  [{record.levelname}] {record.getMessage()}"
        return f"  {record.getMessage()}"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """Configure logging for the explorer.

    Args:
        verbose: If True, show DEBUG level on console; otherwise INFO only

    Returns:
        Configured logger instance
    """
    global _current_log_file
    log_dir = get_log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)  # Capture everything, filter at handler level

    # Clear existing handlers (in case of re-init)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    session_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"explorer_{session_timestamp}.log"
    _current_log_file = log_file
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_format = logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    file_handler.setFormatter(file_format)
    logger.addHandler(file_handler)

    import config as _config
    console_format = _config.get("console_format", "simple")

    if console_format != "clean":
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        if console_format == "full":
            console_handler.setFormatter(file_format)  # identical to file handler
        else:
            console_handler.setFormatter(_ConsoleFormatter())
        logger.addHandler(console_handler)

    logger.debug("=" * 60)
    logger.debug(f"Session started at {datetime.now().isoformat()}")
    logger.debug(f"Log file: {log_file}")

    return logger


def get_logger() -> logging.Logger:
    """Get the explorer logger, configuring defaults on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        return setup_logging(verbose=False)
    return logger


def get_current_log_file() -> Optional[Path]:
    """Path of the active session log file, if logging was set up."""
    return _current_log_file


def log_error(
    message: str,
    exc: Optional[Exception] = None,
    context: Optional[dict] = None,
) -> None:
    """Log an error with full details including stack trace.

    Args:
        message: Error description
        exc: Optional exception to include stack trace from
        context: Optional dict of additional context (source, record, etc.)
    """
    logger = get_logger()

    lines = [message]

    if context:
        lines.append("Context:")
        for key, value in context.items():
            lines.append(f"  {key}: {value}")

    if exc:
        lines.append(f"Exception type: {type(exc).__name__}")
        lines.append(f"Exception message: {exc}")
        lines.append("Stack trace:")
        lines.append("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))

    logger.error("\n".join(lines))
