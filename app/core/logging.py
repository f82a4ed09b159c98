"""Logging configuration for the application."""

import logging
import sys

from app.core.config import settings

# httpx logs every request line at INFO, including upstream URLs.
QUIET_LOGGERS = ("httpx", "httpcore")


def setup_logging() -> logging.Logger:
    """Configure and return the application logger."""

    logger = logging.getLogger("teacher_ai")
    logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    # Prevent duplicate handlers on reload
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)

    if settings.DEBUG:
        formatter = logging.Formatter(
            "\n%(levelname)s [%(asctime)s] %(name)s.%(module)s\n"
            "└── %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
    else:
        formatter = logging.Formatter(
            "%(levelname)s [%(asctime)s] %(message)s",
            datefmt="%H:%M:%S"
        )

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    return logger


# Application logger instance
logger = setup_logging()
