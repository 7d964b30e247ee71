"""Structured logging configuration for the SERP ads monitor."""

import logging
import re
import sys
from pathlib import Path
from typing import Optional


DEFAULT_LOG_DIR = Path("logs")
DEFAULT_LOG_FILE = "serp_ads.log"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
ROOT_LOGGER_NAME = "serp_ads"

_UNSAFE_NAME = re.compile(r"[^a-z0-9]+")


def log_file_name(client: Optional[str] = None) -> str:
    """Log file name for a run, one file per client when a client is given."""
    if not client:
        return DEFAULT_LOG_FILE
    slug = _UNSAFE_NAME.sub("-", client.lower()).strip("-")
    return f"serp_ads_{slug}.log" if slug else DEFAULT_LOG_FILE


def setup_logging(
    log_file: Optional[Path] = None,
    log_dir: Optional[Path] = None,
    level: int = logging.INFO,
    console: bool = True,
    format_string: Optional[str] = None,
    client: Optional[str] = None,
) -> logging.Logger:
    """Configure structured logging for the SERP ads monitor.

    Args:
        log_file: Path to log file (default: logs/serp_ads.log)
        log_dir: Directory for log files (default: logs/)
        level: Logging level (default: INFO)
        console: Whether to also log to console (default: True)
        format_string: Custom log format string
        client: Client name; picks logs/serp_ads_<client>.log when no file is given

    Returns:
        The configured ``serp_ads`` namespace logger
    """
    if log_dir is None:
        log_dir = DEFAULT_LOG_DIR

    if log_file is None:
        log_file = log_dir / log_file_name(client)
    elif not log_file.is_absolute():
        log_file = log_dir / log_file

    log_file.parent.mkdir(parents=True, exist_ok=True)

    fmt = format_string or DEFAULT_FORMAT
    formatter = logging.Formatter(fmt, datefmt=DEFAULT_DATE_FORMAT)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    logger.propagate = False

    logger.info(f"Logging initialized: {log_file}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a specific module.

    Args:
        name: Logger name (typically module name)

    Returns:
        Logger instance under the serp_ads namespace
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
