"""Logging configuration for the variant mapper."""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

# Libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
    quiet_loggers: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """Configure logging for the mapping engine and CLI.

    Console output goes to stderr: the ``inject`` and ``payload`` commands
    write HTML to stdout and log lines must not end up in it.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path, written in addition to the console
        format_string: Optional custom format string
        quiet_loggers: Logger names pinned to WARNING
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    handlers: list = [logging.StreamHandler(sys.stderr)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=numeric_level,
        format=format_string or DEFAULT_FORMAT,
        handlers=handlers,
        force=True  # Override any existing configuration
    )

    for name in quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)
