"""
Tqdm-compatible logging handler.

Routes log messages through tqdm.write() so they do not break the progress
bars drawn by execute_parallel and batch embedding.
"""

import logging
import sys
from typing import TextIO

from tqdm import tqdm


class TqdmLoggingHandler(logging.Handler):
    """
    Logging handler that writes through tqdm.write().

    Usage:
        handler = TqdmLoggingHandler(level=logging.INFO)
        logger.addHandler(handler)
    """

    def __init__(self, level: int = logging.NOTSET, stream: TextIO | None = None):
        """
        Args:
            level: Minimum logging level to handle
            stream: Output stream (default: sys.stderr, where tqdm draws)
        """
        super().__init__(level)
        self.stream = stream or sys.stderr

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            tqdm.write(msg, file=self.stream)
        except RecursionError:
            raise
        except Exception:
            self.handleError(record)
