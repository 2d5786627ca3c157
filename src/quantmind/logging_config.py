"""
Logging Configuration
Sets up file-based logging with separate log files for the service, the LLM
clients and JSON recovery
"""

import os
import logging
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

# Default logs directory: <cwd>/logs
DEFAULT_LOG_DIR = Path.cwd() / "logs"

# Logger name -> log file name
LOG_FILES = {
    "quantmind.app": "app.log",
    "quantmind.llm": "llm_client.log",
    "quantmind.json": "json_recovery.log",
}

# Log format
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Max log file size (10MB)
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5


def setup_file_logger(name: str, log_file: Path, level: int = logging.INFO) -> logging.Logger:
    """
    Set up a file-based logger with rotation

    Args:
        name: Logger name
        log_file: Path to log file
        level: Logging level

    Returns:
        Configured logger
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Close and drop existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers = []

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    # Console handler: warnings and errors only
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger


def setup_logging(log_dir: Optional[Union[str, Path]] = None, level: Optional[str] = None) -> Path:
    """
    Set up all quantmind loggers. Returns the directory holding the log files.
    """
    log_level = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    numeric_level = getattr(logging, log_level, logging.INFO)

    directory = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    directory.mkdir(parents=True, exist_ok=True)

    for name, file_name in LOG_FILES.items():
        setup_file_logger(name, directory / file_name, numeric_level)

    logging.getLogger("quantmind.app").info("Logging configured. Log files in: %s", directory)
    return directory


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance (creates if doesn't exist)
    """
    return logging.getLogger(name)
