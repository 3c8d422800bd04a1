"""
Central logging configuration for examsync.

Console output goes through a colorlog formatter; chatty third-party HTTP
loggers are capped at WARNING so sync summaries stay readable.
"""

import logging
import os
import sys
from typing import Optional

from colorlog import ColoredFormatter

DEBUG_ENV_VAR = "EXAMSYNC_DEBUG"
LOG_LEVEL_ENV_VAR = "EXAMSYNC_LOG_LEVEL"

LOG_FORMAT = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"
LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "bold_red",
}

QUIET_LOGGERS = ("httpx", "httpcore", "asyncio", "icalendar")

EXAMSYNC_MODULES = [
    "examsync",
    "examsync.calendar",
    "examsync.core",
    "examsync.domain",
]


def _env_debug_enabled() -> bool:
    return os.getenv(DEBUG_ENV_VAR, "").strip().lower() in ("1", "true", "yes", "on")


def build_console_handler(level: int) -> logging.Handler:
    """Stream handler on stderr with the colored level column."""
    handler = logging.StreamHandler(stream=sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS))
    return handler


def configure_logging(
    debug_mode: bool = False,
    force_debug: Optional[bool] = None,
    level_name: Optional[str] = None,
) -> None:
    """
    Configure the root logger and examsync module loggers.

    Args:
        debug_mode: Whether to enable debug logging for examsync modules
        force_debug: Override debug mode setting (None to use env var detection)
        level_name: Root level from configuration (e.g. Config.log_level)

    Environment Variables:
        EXAMSYNC_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        EXAMSYNC_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    env_log_level = os.getenv(LOG_LEVEL_ENV_VAR, "").upper()

    if force_debug is not None:
        final_debug = force_debug
    elif _env_debug_enabled():
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    if not final_debug and level_name and level_name.upper() in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, level_name.upper())
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    # Only add a handler once; repeated calls just adjust levels
    if not root_logger.handlers:
        root_logger.addHandler(build_console_handler(root_level))
    else:
        for handler in root_logger.handlers:
            handler.setLevel(root_level)

    for logger_name in QUIET_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    module_level = logging.DEBUG if final_debug else root_level
    for module in EXAMSYNC_MODULES:
        logging.getLogger(module).setLevel(module_level)

    if final_debug:
        root_logger.debug("Debug logging enabled for examsync modules")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ["examsync", *QUIET_LOGGERS]:
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
