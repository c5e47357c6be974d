"""Logging configuration for the rackctl package."""
import logging
import sys
from pathlib import Path
from typing import Optional

from .config import Config


def setup_logging(debug_mode: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the ``rackctl`` logger hierarchy.

    Args:
        debug_mode: Force DEBUG level regardless of ``LOG_LEVEL``
        log_file: Optional file to mirror log records to (default: ``RACKCTL_LOG_FILE``)

    Returns:
        The package root logger
    """
    level = logging.DEBUG if debug_mode else getattr(logging, Config.LOG_LEVEL, logging.INFO)
    logger = logging.getLogger("rackctl")
    logger.setLevel(level)

    # Replace handlers from a previous call; sys.stderr may have been swapped since
    for old in list(logger.handlers):
        logger.removeHandler(old)
        old.close()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(Config.LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(handler)

    log_file = log_file or Config.LOG_FILE
    if log_file:
        path = Path(log_file).expanduser().absolute()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path)
        file_handler.setFormatter(logging.Formatter(Config.LOG_FORMAT))
        logger.addHandler(file_handler)

    for handler in logger.handlers:
        handler.setLevel(level)

    # Disable debug logging for noisy libraries
    if not debug_mode:
        logging.getLogger('kubernetes').setLevel(logging.WARNING)
        logging.getLogger('urllib3').setLevel(logging.WARNING)

    return logger
