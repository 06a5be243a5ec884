"""Process-wide logger state.

The macup root logger is configured once per process. The flags and the
queue listener that back that single configuration live in one module
level object so that every importer sees the same state.
"""

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import queue
    from logging.handlers import QueueListener


class _LoggerState:
    """Mutable logger bookkeeping.

    Attributes:
        lock: Guards first-time root logger initialization
        root_initialized: Root handlers are attached
        config_applied: Levels from settings.conf were applied
        queue_listener: Thread draining ``log_queue`` into real handlers
        log_queue: Queue shared by every macup logger

    """

    def __init__(self) -> None:
        """Initialize empty state."""
        self.lock = threading.Lock()
        self.root_initialized = False
        self.config_applied = False
        self.queue_listener: QueueListener | None = None
        self.log_queue: queue.Queue | None = None


_state = _LoggerState()


def get_state() -> _LoggerState:
    """Return the logger state singleton."""
    return _state
