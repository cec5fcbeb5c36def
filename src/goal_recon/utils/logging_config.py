"""Logging setup for the goal_recon package. Library modules only emit."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

APP_LOGGER = "goal_recon"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Configure the package logger.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        level: Console logging level
        log_file: Optional rotating log file, always written at DEBUG
        log_format: Console format string (DEFAULT_FORMAT when omitted)

    Returns:
        The configured package logger
    """
    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(logging.DEBUG if log_file else level)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    app_logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        app_logger.addHandler(file_handler)

    return app_logger
