"""Logging utilities for macup.

Architecture:
    Application -> QueueHandler -> Queue -> QueueListener thread
                                                -> console + file handlers

Rules for contributors:
    1. Always use ``logger = get_logger(__name__)``
    2. Never call ``logging.basicConfig()``
    3. Never attach handlers to child loggers
    4. Use %-formatting in log calls, never f-strings

Environment Variables:
    MACUP_LOG_DIR: Redirects the log file (used by the test suite)
"""

from macup.logger.config import (
    update_logger_from_config as _update_config,
)
from macup.logger.formatters import (
    ColoredConsoleFormatter,
    HybridConsoleFormatter,
    SimpleConsoleFormatter,
)
from macup.logger.handlers import ConfigurationError
from macup.logger.logger import (
    clear_logger_state,
    flush_all_handlers,
    get_logger,
    setup_logging,
)
from macup.logger.state import _state, get_state

__all__ = [
    "ColoredConsoleFormatter",
    "ConfigurationError",
    "HybridConsoleFormatter",
    "SimpleConsoleFormatter",
    "_state",  # For testing only
    "clear_logger_state",
    "flush_all_handlers",
    "get_logger",
    "setup_logging",
    "update_logger_from_config",
]


def update_logger_from_config() -> None:
    """Re-level handlers from settings.conf using the global state."""
    _update_config(get_state())
