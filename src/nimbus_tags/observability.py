"""Observability utilities for Nimbus Tags.

Provides console logging tagged by category (Note, Warning, Error, Abort),
persistent disk logging with rotation, and run/operation timing.
"""
import logging
import sys
import time
import warnings
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, TextIO, Union

from nimbus_tags.exceptions import DuplicateTitleWarning

logger = logging.getLogger(__name__)

# Default log directory (can be overridden via configure_logging)
DEFAULT_LOG_DIR = Path.home() / ".nimbus_tags" / "logs"

# File logging format with ISO 8601 timestamps
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

ROOT_LOGGER = "nimbus_tags"

# ANSI escape sequences
RESET = "\033[0m"
BOLD_RED_ON_BLACK = "\033[1;31;40m"
BOLD_YELLOW_ON_BLACK = "\033[1;33;40m"
BOLD_GREEN = "\033[1;32m"
BOLD_BLACK_ON_WHITE = "\033[1;30;47m"

# level -> (tag, color of the tag, color the whole line)
CATEGORIES = {
    logging.DEBUG: ("Debug", BOLD_GREEN, True),
    logging.INFO: ("Note", BOLD_BLACK_ON_WHITE, False),
    logging.WARNING: ("Warning", BOLD_YELLOW_ON_BLACK, False),
    logging.ERROR: ("Error", BOLD_RED_ON_BLACK, True),
    logging.CRITICAL: ("Abort", BOLD_RED_ON_BLACK, True),
}


class CategoryFormatter(logging.Formatter):
    """Console formatter that prefixes each message with its category.

    Errors and aborts are colored as a whole, warnings and notes only in
    their tag. Colors are used only when the stream is a terminal.
    """

    def __init__(self, use_color: bool = False):
        super().__init__("%(message)s")
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        tag, color, whole_line = category_for(record.levelno)

        if not self.use_color:
            return f"{tag}: {message}"
        if whole_line:
            return f"{color}{tag}: {message}{RESET}"
        return f"{color} {tag} {RESET} {message}"


def category_for(levelno: int):
    """Map a logging level, including custom ones, onto a console category."""
    for threshold in sorted(CATEGORIES, reverse=True):
        if levelno >= threshold:
            return CATEGORIES[threshold]
    return CATEGORIES[logging.DEBUG]


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB per file
    backup_count: int = 5,
    console: bool = True,
    stream: Optional[TextIO] = None,
) -> Path:
    """Configure console and persistent file logging.

    Sets up a rotating file handler for the nimbus_tags logger hierarchy
    and, optionally, a tagged console handler. Python warnings (such as
    DuplicateTitleWarning) are routed into logging as well.

    Args:
        log_dir: Directory for log files. Defaults to ~/.nimbus_tags/logs/
        level: Logging level (default: INFO)
        max_bytes: Maximum size per log file before rotation (default: 10 MB)
        backup_count: Number of rotated files to keep (default: 5)
        console: Also log to the console (default: True)
        stream: Console stream, defaults to stdout

    Returns:
        Path to the log directory
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger(ROOT_LOGGER)
    root_logger.setLevel(level)
    root_logger.propagate = False
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    log_file = log_path / "findtags.log"
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    root_logger.addHandler(file_handler)

    if console:
        out = stream or sys.stdout
        console_handler = logging.StreamHandler(out)
        console_handler.setLevel(level)
        console_handler.setFormatter(
            CategoryFormatter(use_color=hasattr(out, "isatty") and out.isatty())
        )
        root_logger.addHandler(console_handler)

    # Every duplicate title is worth reporting, not just the first per line
    warnings.simplefilter("always", DuplicateTitleWarning)
    logging.captureWarnings(True)
    warnings_logger = logging.getLogger("py.warnings")
    for handler in list(warnings_logger.handlers):
        warnings_logger.removeHandler(handler)
    for handler in root_logger.handlers:
        warnings_logger.addHandler(handler)
    warnings_logger.propagate = False

    root_logger.debug(f"Logging configured: {log_file} (max {max_bytes} bytes, {backup_count} backups)")
    return log_path


def format_run_time(seconds: float, program: str) -> str:
    """Format a run time like "--- 2m 05s findtags run time ---"."""
    hours = int(seconds // 3600)
    minutes = int((seconds - hours * 3600) // 60)
    secs = int(seconds % 60)
    if hours == 0:
        return f"--- {minutes}m {secs:02d}s {program} run time ---"
    return f"--- {hours}h {minutes:2d}m {secs:02d}s {program} run time ---"


@contextmanager
def run_timer(program: str) -> Iterator[None]:
    """Log a start banner and, however the block ends, the run time."""
    start = time.perf_counter()
    logger.info(f"--- {time.strftime('%Y-%m-%d %H:%M:%S')} ---")
    try:
        yield
    finally:
        logger.info(format_run_time(time.perf_counter() - start, program))


@contextmanager
def timed_operation(operation: str, **context) -> Iterator[Dict[str, Any]]:
    """Context manager for timing and logging operations.

    Args:
        operation: Name of the operation being performed
        **context: Additional context to include in log messages

    Yields:
        A dictionary where you can store result info (e.g., processed)

    Example:
        with timed_operation('traverse', skip='Pizza') as op:
            result = controller.run()
            op['processed'] = len(result.processed)
    """
    start_time = time.perf_counter()
    result_info: Dict[str, Any] = {}

    context_str = ", ".join(f"{k}={v}" for k, v in context.items())
    logger.debug(f"START {operation} ({context_str})")

    error_msg = None
    try:
        yield result_info
    except Exception as e:
        error_msg = str(e)
        raise
    finally:
        duration_ms = (time.perf_counter() - start_time) * 1000
        result_str = ", ".join(f"{k}={v}" for k, v in result_info.items())
        status = "OK" if error_msg is None else f"ERROR: {error_msg}"
        logger.debug(f"END {operation} ({duration_ms:.2f}ms) [{status}] {result_str}")
