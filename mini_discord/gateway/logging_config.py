"""
Gateway Logging Configuration

Gateway records go to LOG_DIR/gateway.log; only warnings reach the console.
"""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from mini_discord.config import LOG_DIR

GATEWAY_LOGGER_NAME = "mini_discord.gateway"
GATEWAY_LOG_FILE = "gateway.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# 10MB per file, keep 5
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_FILE_HANDLER = "gateway-file"
_CONSOLE_HANDLER = "gateway-console"


def _named_handler(logger: logging.Logger, name: str) -> Optional[logging.Handler]:
    for handler in logger.handlers:
        if handler.get_name() == name:
            return handler
    return None


def _attach(logger: logging.Logger, handler: logging.Handler, name: str) -> logging.Handler:
    handler.set_name(name)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(handler)
    return handler


def setup_gateway_logging(log_level: int = logging.INFO, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Route gateway logs to a rotating file and warnings to the console.

    The logger is set up at import time with the default level. Calling this
    again (e.g. from run_gateway.py with --log-level DEBUG) keeps the attached
    handlers and only changes their levels.

    Args:
        log_level: Level of the logger and of the file handler
        log_dir: Directory of gateway.log (default: LOG_DIR)

    Returns:
        The gateway logger
    """
    logger = logging.getLogger(GATEWAY_LOGGER_NAME)
    logger.setLevel(log_level)

    console_handler = _named_handler(logger, _CONSOLE_HANDLER)
    if console_handler is None:
        console_handler = _attach(logger, logging.StreamHandler(), _CONSOLE_HANDLER)
    console_handler.setLevel(logging.WARNING)

    file_handler = _named_handler(logger, _FILE_HANDLER)
    if file_handler is None:
        directory = log_dir or LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = _attach(
            logger,
            RotatingFileHandler(
                directory / GATEWAY_LOG_FILE,
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            ),
            _FILE_HANDLER,
        )
        logger.info(f"Gateway logging initialized: {Path(file_handler.baseFilename)}")
    file_handler.setLevel(log_level)

    # Both handlers are in place; root handlers from basicConfig would repeat every record
    logger.propagate = False
    return logger


def get_gateway_logger() -> logging.Logger:
    """Get the gateway logger, setting it up on first use."""
    logger = logging.getLogger(GATEWAY_LOGGER_NAME)

    if not logger.handlers:
        try:
            setup_gateway_logging()
        except OSError as e:
            # Log directory not writable, the console handler still works
            logging.getLogger(__name__).warning(f"Gateway file logging disabled: {e}")

    return logger
