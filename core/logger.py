"""
Service Logger Setup

Configures a named service logger from LoggingConfig.

Usage:
    from core.logger import setup_service_logger

    logger = setup_service_logger("delivery_service")
"""

import logging
import sys
from typing import Optional

from core.config import LoggingConfig


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Create (or reconfigure) the logger for a service.

    Args:
        service_name: Logger name, usually the service package name
        level: Overrides the configured log level
        config: Logging config (defaults to LoggingConfig.from_env())

    Returns:
        Configured logger
    """
    config = config or LoggingConfig.from_env()
    level_name = (level or config.log_level).upper()

    # Module loggers (logging.getLogger(__name__)) go through the root logger
    logging.basicConfig(level=level_name, format=config.log_format)

    logger = logging.getLogger(service_name)
    logger.setLevel(level_name)

    # Avoid stacking handlers when called more than once
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(config.log_format)

    if config.enable_console:
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(formatter)
        logger.addHandler(console)

    if config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    logger.propagate = False
    return logger
