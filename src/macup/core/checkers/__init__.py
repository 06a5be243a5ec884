"""Update checkers and the dispatcher that runs them."""

from macup.core.checkers.base import Checker
from macup.core.checkers.dispatcher import Dispatcher, default_checkers

__all__ = ["Checker", "Dispatcher", "default_checkers"]
