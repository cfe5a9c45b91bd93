"""
Logging setup for the Lampo backend.

Imported for its side effect: loguru becomes the single sink and records
from stdlib `logging` (the core package, uvicorn) are forwarded to it.
"""

import logging
import os
import sys

from loguru import logger

LOG_LEVEL = os.environ.get("LAMPO_LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


class InterceptHandler(logging.Handler):
    """Forward stdlib logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller outside the logging module so loguru reports the right origin
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(level: str = LOG_LEVEL) -> None:
    logger.remove()
    logger.add(sys.stderr, format=LOG_FORMAT, level=level)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


setup_logging()
