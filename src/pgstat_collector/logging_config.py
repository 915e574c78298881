"""
Shared logging configuration for the collector.

Provides:
- Consistent log formatting for every module (timestamped lines on stderr)
- Configurable log levels (DEBUG, INFO, WARNING, ERROR)
- Optional file output
- Helpers to log a fatal error together with its causal chain
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional


ROOT_LOGGER_NAME = "pgstat_collector"

# Default format: timestamp, level, name, message
DEFAULT_FORMAT = "%(asctime)s [%(levelname)-8s] [%(name)s] %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Detailed format for debugging (includes filename, line number)
DEBUG_FORMAT = (
    "%(asctime)s [%(levelname)-8s] [%(name)s] [%(filename)s:%(lineno)d] %(message)s"
)


def setup_logging(
    *,
    name: str = ROOT_LOGGER_NAME,
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: bool = False,
    debug: bool = False,
) -> logging.Logger:
    """
    Setup logging for the collector process.

    Diagnostics go to stderr so stdout stays free for `once` output.

    Args:
        name: Logger name; module loggers are children of it
        level: Log level string (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        quiet: If True, only show warnings and errors on console
        debug: If True, use detailed debug format

    Returns:
        Configured logger instance

    Example:
        logger = setup_logging(level="INFO")
        logger.info("collecting every 53s")
        logger.warning("retrying error: ...")
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)  # Capture everything, filter at handler level
    logger.handlers.clear()

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    console_handler = logging.StreamHandler(sys.stderr)
    if quiet:
        console_handler.setLevel(logging.WARNING)
    else:
        console_handler.setLevel(numeric_level)

    log_format = DEBUG_FORMAT if debug else DEFAULT_FORMAT
    console_formatter = logging.Formatter(log_format, datefmt=DEFAULT_DATE_FORMAT)
    console_handler.setFormatter(console_formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always log everything to file
        file_formatter = logging.Formatter(DEBUG_FORMAT, datefmt=DEFAULT_DATE_FORMAT)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

        logger.info(f"Logging to file: {log_file}")

    return logger


def add_logging_args(parser) -> None:
    """
    Add standard logging arguments to an ArgumentParser.

    Adds:
        --log-level: Set log level (DEBUG, INFO, WARNING, ERROR)
        --log-file: Optional log file path
        --quiet: Suppress console output except warnings/errors
        --debug: Enable detailed debug logging format
    """
    log_group = parser.add_argument_group("logging")

    log_group.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set log level (default: INFO)",
    )

    log_group.add_argument(
        "--log-file",
        default=None,
        help="Optional log file path (logs to stderr by default)",
    )

    log_group.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress console output except warnings and errors",
    )

    log_group.add_argument(
        "--debug",
        action="store_true",
        help="Enable detailed debug logging format with file/line info",
    )


def describe_error(exc: BaseException) -> str:
    """
    Flatten an exception and its causes into one line.

    Example:
        "fetch after reconnection: server closed the connection unexpectedly"
    """
    parts: list[str] = []
    seen: set[int] = set()
    cur: Optional[BaseException] = exc
    while cur is not None and id(cur) not in seen:
        seen.add(id(cur))
        text = str(cur).strip() or type(cur).__name__
        parts.append(text.splitlines()[0])
        cur = cur.__cause__ or cur.__context__
    return ": ".join(parts)
