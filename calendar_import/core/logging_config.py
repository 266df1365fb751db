"""
Central logging configuration for calendar_import.

Sets package log levels, quiets chatty third-party loggers and tags every
record with the current import run id.
"""

import logging
import os
from typing import Optional


class RunIdFilter(logging.Filter):
    """Add the import run correlation ID to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add run ID to log record.

        Args:
            record: Log record to enhance

        Returns:
            True to allow record to be logged
        """
        from .correlation import get_run_id

        record.run_id = get_run_id()
        return True


# Third-party libraries that generate excessive debug logs
NOISY_LOGGERS: dict[str, int] = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "asyncio": logging.WARNING,
    "charset_normalizer": logging.WARNING,
}

PACKAGE_LOGGERS = [
    "calendar_import",
    "calendar_import.calendar.ics_parser",
    "calendar_import.calendar.rrule_expander",
    "calendar_import.domain.preview_builder",
    "calendar_import.domain.batch_importer",
    "calendar_import.sources.ics_fetcher",
]


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    log_level: Optional[str] = None,
) -> None:
    """
    Configure logging levels for calendar_import.

    Debug mode can be overridden via environment variable for troubleshooting.

    Args:
        debug_mode: Whether to enable debug logging for calendar_import modules
        force_debug: Override debug mode setting (None to use env var detection)
        log_level: Root level name, usually ``ImportSettings.log_level``;
            "DEBUG" also enables debug logging for calendar_import modules

    Environment Variables:
        CALENDAR_IMPORT_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        CALENDAR_IMPORT_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_debug = os.getenv("CALENDAR_IMPORT_DEBUG", "").lower() in ("1", "true", "yes")
    env_log_level = os.getenv("CALENDAR_IMPORT_LOG_LEVEL", "").upper()
    requested_level = env_log_level or (log_level or "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif env_debug or requested_level == "DEBUG":
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if requested_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, requested_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    run_filter = RunIdFilter()

    # Only add a handler if the host application has not configured one
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter("[%(asctime)s] [%(run_id)s] %(levelname)s - %(name)s - %(message)s")
        )
        handler.addFilter(run_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, RunIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(run_filter)

    logger_config = dict(NOISY_LOGGERS)
    package_level = logging.DEBUG if final_debug else logging.INFO
    for module in PACKAGE_LOGGERS:
        logger_config[module] = package_level

    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for calendar_import modules")
    else:
        root_logger.debug("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["calendar_import", *NOISY_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
