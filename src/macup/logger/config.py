"""Bootstrap and config-driven log levels.

The logger must be usable before settings.conf has been read, so it starts
from hard-coded defaults and is re-levelled once the config layer is up.
"""

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from macup.constants import (
    CONFIG_DIR_NAME,
    DEFAULT_CONSOLE_LOG_LEVEL,
    DEFAULT_LOG_LEVEL,
)

if TYPE_CHECKING:
    from macup.logger.state import _LoggerState

LOG_DIR_ENV = "MACUP_LOG_DIR"


def load_log_settings() -> tuple[str, str, Path]:
    """Return bootstrap console level, file level and log path.

    ``MACUP_LOG_DIR`` overrides the log directory; the test suite sets it so
    pytest runs never write into ``~/.config/macup/logs``.

    Returns:
        Tuple of (console_level, file_level, log_path)

    """
    env_log_dir = os.getenv(LOG_DIR_ENV)
    if env_log_dir:
        log_path = Path(env_log_dir).expanduser() / "macup.log"
    else:
        log_path = (
            Path.home() / ".config" / CONFIG_DIR_NAME / "logs" / "macup.log"
        )
    return DEFAULT_CONSOLE_LOG_LEVEL, DEFAULT_LOG_LEVEL, log_path


def update_logger_from_config(state: "_LoggerState") -> None:
    """Apply ``log_level`` and ``console_log_level`` from settings.conf.

    Only handler levels change; handlers are never added or removed here.

    Args:
        state: Logger state object (from logger.state module)

    """
    try:
        from macup.config import ConfigManager  # noqa: PLC0415

        config = ConfigManager().load_global_config()
    except (ImportError, KeyError, AttributeError):
        # Config package not importable yet; keep bootstrap levels
        return

    console_level = getattr(
        logging, config.get("console_log_level", "WARNING"), logging.WARNING
    )
    file_level = getattr(logging, config.get("log_level", "INFO"), logging.INFO)

    if state.queue_listener is not None:
        for handler in state.queue_listener.handlers:
            if isinstance(handler, RotatingFileHandler):
                handler.setLevel(file_level)
            elif isinstance(handler, logging.StreamHandler):
                handler.setLevel(console_level)

    state.config_applied = True
