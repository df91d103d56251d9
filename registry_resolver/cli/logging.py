"""
Logging utilities for registry_resolver scripts.

Provides logging setup and header printing functions with tqdm compatibility.
"""

import logging
import sys
import time
from pathlib import Path

from registry_resolver.utils.tqdm_logging import TqdmLoggingHandler

# External loggers that clutter console output
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "urllib3", "neo4j")


class FlushingFileHandler(logging.FileHandler):
    """File handler that flushes after every record."""

    def emit(self, record):
        super().emit(record)
        self.flush()


def setup_logging(
    script_name: str,
    execute: bool = False,
    log_dir: Path = Path("logs"),
    tqdm_compatible: bool = True,
) -> logging.Logger:
    """
    Set up logging for a script.

    Args:
        script_name: Name of the script (for log file naming)
        execute: If True, log to file + console. If False, only console.
        log_dir: Directory for log files
        tqdm_compatible: If True, use TqdmLoggingHandler for clean progress bar output

    Returns:
        Configured logger instance
    """
    for noisy_logger in NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.ERROR)

    if not execute:
        logging.basicConfig(
            level=logging.INFO,
            format="%(message)s",
            stream=sys.stdout,
        )
        return logging.getLogger(script_name)

    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"{script_name}_{timestamp}.log"

    logger = logging.getLogger(script_name)
    logger.setLevel(logging.DEBUG)
    logger.handlers = []

    # File: DEBUG and above
    file_handler = FlushingFileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    console_formatter = logging.Formatter("%(message)s")

    def _console(level: int) -> logging.Handler:
        handler = (
            TqdmLoggingHandler(level=level) if tqdm_compatible else logging.StreamHandler(sys.stderr)
        )
        handler.setLevel(level)
        handler.setFormatter(console_formatter)
        return handler

    logger.addHandler(file_handler)
    logger.addHandler(_console(logging.INFO))
    logger.propagate = False

    # Package loggers: everything to file, degradations (WARNING+) to console
    pkg_logger = logging.getLogger("registry_resolver")
    pkg_logger.setLevel(logging.DEBUG)
    pkg_logger.handlers = []
    pkg_logger.addHandler(file_handler)
    pkg_logger.addHandler(_console(logging.WARNING))
    pkg_logger.propagate = False

    logger.info(f"Log file: {log_file}")
    return logger


def print_dry_run_header(title: str, logger: logging.Logger | None = None):
    """Print a standard dry-run header."""
    if logger is None:
        logger = logging.getLogger(__name__)

    logger.info("=" * 70)
    logger.info(f"{title} (Dry Run)")
    logger.info("=" * 70)


def print_execute_header(title: str, logger: logging.Logger | None = None):
    """Print a standard execute mode header."""
    if logger is None:
        logger = logging.getLogger(__name__)

    logger.info("=" * 70)
    logger.info(title)
    logger.info("=" * 70)
