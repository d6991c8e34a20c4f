"""
Logging configuration for the Bank Cards API.

Service modules create their own loggers with logging.getLogger(__name__);
this module only wires handlers and levels, once, at application startup.
"""

import logging

from bankcards.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging() -> None:
    """
    Configure the root logger and the bankcards package logger.

    Safe to call more than once: existing handlers on the package logger
    are replaced, not duplicated.
    """
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    app_logger = logging.getLogger("bankcards")
    app_logger.setLevel(level)
    app_logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    app_logger.addHandler(console_handler)
    app_logger.propagate = False

    # SQL statements are only interesting while debugging
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.DEBUG else logging.WARNING
    )
