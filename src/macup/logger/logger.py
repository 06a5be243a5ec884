"""Public logging API: setup, lookup, flush and test reset."""

import atexit
import contextlib
import logging
import time
from pathlib import Path

from macup.constants import APP_NAME
from macup.logger.config import load_log_settings
from macup.logger.handlers import setup_root_logger
from macup.logger.state import get_state

_FLUSH_TIMEOUT_SECONDS = 5.0


def flush_all_handlers() -> None:
    """Drain the log queue and flush every listener handler.

    QueueListener does not use ``task_done()``, so the queue is polled
    until empty (bounded by a short timeout) before handlers are flushed.
    """
    state = get_state()
    if state.queue_listener is None or state.log_queue is None:
        return

    start_time = time.monotonic()
    while not state.log_queue.empty():
        if time.monotonic() - start_time > _FLUSH_TIMEOUT_SECONDS:
            break
        time.sleep(0.01)
    time.sleep(0.1)

    for handler in state.queue_listener.handlers:
        with contextlib.suppress(OSError, ValueError):
            handler.flush()


def _cleanup_logging() -> None:
    """Stop the queue listener at interpreter exit."""
    state = get_state()
    if state.queue_listener is not None:
        flush_all_handlers()
        state.queue_listener.stop()
        state.queue_listener = None


atexit.register(_cleanup_logging)


def setup_logging(
    name: str = APP_NAME,
    console_level: str | None = None,
    file_level: str | None = None,
    log_file: Path | None = None,
    enable_file_logging: bool = True,  # noqa: FBT001, FBT002
) -> logging.Logger:
    """Initialize the root ``macup`` logger once and return ``name``.

    Child loggers (``macup.core.checkers.github``) carry no handlers of
    their own and propagate to the root.

    Args:
        name: Logger name, typically ``__name__``
        console_level: Console log level
        file_level: File log level
        log_file: Path to log file
        enable_file_logging: Whether to enable file logging

    Returns:
        Logger instance

    Raises:
        ConfigurationError: If file logging setup fails

    """
    state = get_state()
    with state.lock:
        if not state.root_initialized:
            if console_level is None or file_level is None or log_file is None:
                cfg_console, cfg_file, cfg_path = load_log_settings()
                console_level = console_level or cfg_console
                file_level = file_level or cfg_file
                log_file = log_file or cfg_path

            setup_root_logger(
                state,
                console_level,
                file_level,
                log_file,
                enable_file_logging,
            )

    return logging.getLogger(name)


def get_logger(
    name: str = APP_NAME,
    enable_file_logging: bool = True,  # noqa: FBT001, FBT002
) -> logging.Logger:
    """Return a module logger; use ``get_logger(__name__)``.

    Args:
        name: Logger name
        enable_file_logging: Whether the root should log to file

    Returns:
        Configured logger instance

    """
    return setup_logging(name=name, enable_file_logging=enable_file_logging)


def clear_logger_state() -> None:
    """Tear down the listener and forget every macup logger.

    Intended for tests only.
    """
    state = get_state()
    with state.lock:
        if state.queue_listener is not None:
            flush_all_handlers()
            state.queue_listener.stop()
            state.queue_listener = None

        state.log_queue = None
        state.root_initialized = False
        state.config_applied = False

        for logger_name in list(logging.Logger.manager.loggerDict.keys()):
            if logger_name.startswith(("test-", APP_NAME)):
                log_instance = logging.getLogger(logger_name)
                for handler in log_instance.handlers[:]:
                    handler.close()
                    log_instance.removeHandler(handler)
                logging.Logger.manager.loggerDict.pop(logger_name, None)
