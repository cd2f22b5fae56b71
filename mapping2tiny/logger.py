"""
Logging configuration.

Library modules only ask for loggers; handlers are attached by the entry
points (the CLI and the HTTP server) through initialize_logger().
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from mapping2tiny.config.env import get_converter_config

PACKAGE_LOGGER = "mapping2tiny"

logging.getLogger(PACKAGE_LOGGER).addHandler(logging.NullHandler())


def initialize_logger(level: Optional[str] = None, log_file: Optional[Path] = None):
    """Initialize the package logger with a console and an optional file handler."""
    if level is None:
        level = get_converter_config().log_level

    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Clear existing handlers
    logger.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper(), logging.INFO))
    console.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    ))
    logger.addHandler(console)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
        logger.addHandler(file_handler)
        logger.debug(f"Log file: {log_file}")
    return logger


def get_logger(name: Optional[str] = None):
    """Get the package logger, or a child of it when `name` is given."""
    logger = logging.getLogger(PACKAGE_LOGGER)
    if name:
        return logger.getChild(name)
    return logger
