"""Logging configuration for the bridge."""

import logging
import os
import sys

LOGGER_NAME = "claudebridge"


def setup_logging(level: str | None = None) -> logging.Logger:
    """Set up the bridge logger with a stdout handler.

    The level comes from the argument, then ``CLAUDEBRIDGE_LOG_LEVEL``,
    then INFO.
    """
    level_name = (level or os.getenv("CLAUDEBRIDGE_LOG_LEVEL") or "INFO").upper()
    resolved_level = getattr(logging, level_name, logging.INFO)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(resolved_level)

    # Clear any existing handlers
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(resolved_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Propagate so pytest's caplog and uvicorn's root handlers still see records
    logger.propagate = True

    return logger


# Global logger instance
logger = setup_logging()
