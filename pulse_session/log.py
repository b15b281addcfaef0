"""Logging configuration."""

import logging
import sys

APP_LOGGER = "pulse_session"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def setup_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional path that also receives application log records
    """
    level_upper = level.upper()
    invalid_level = None
    if level_upper not in VALID_LEVELS:
        invalid_level = level
        level_upper = "INFO"

    # Root stays at WARNING so bleak and websockets stay quiet;
    # stderr keeps stdout free for the device prompt
    logging.basicConfig(
        level=logging.WARNING,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=sys.stderr,
        force=True,
    )

    app_logger = logging.getLogger(APP_LOGGER)
    app_logger.setLevel(getattr(logging, level_upper))

    for handler in list(app_logger.handlers):
        if isinstance(handler, logging.FileHandler):
            app_logger.removeHandler(handler)
            handler.close()
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        app_logger.addHandler(file_handler)

    if invalid_level:
        app_logger.warning("Unknown log level '%s', defaulting to INFO", invalid_level)
