"""Update executors and the router that selects them."""

from macup.core.executors.base import EscalationLadder, Executor
from macup.core.executors.router import ExecutorRouter, is_downloadable_url

__all__ = [
    "EscalationLadder",
    "Executor",
    "ExecutorRouter",
    "is_downloadable_url",
]
