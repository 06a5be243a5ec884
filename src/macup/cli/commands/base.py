"""Base command handler for macup CLI commands.

Every handler receives the configuration facade and the GitHub auth
manager from :class:`~macup.cli.runner.CLIRunner`, which acts as the
composition root. Engine services are built per command through
:meth:`BaseCommandHandler.create_services`, which tests override to
inject fakes.
"""

from abc import ABC, abstractmethod
from argparse import Namespace

from macup.cli.container import ServiceContainer
from macup.config import ConfigManager
from macup.core.auth import GitHubAuthManager
from macup.infrastructure.store import JsonAppStore


class BaseCommandHandler(ABC):
    """Abstract base class for all command handlers."""

    def __init__(
        self,
        config_manager: ConfigManager,
        auth_manager: GitHubAuthManager,
        store: JsonAppStore | None = None,
    ) -> None:
        """Initialize the command handler with shared dependencies.

        Args:
            config_manager: Configuration management instance
            auth_manager: GitHub authentication manager
            store: App registry override (mainly for tests)

        """
        self.config_manager = config_manager
        self.global_config = config_manager.load_global_config()
        self.auth_manager = auth_manager
        self._store = store

    def create_services(self) -> ServiceContainer:
        """Return a fresh service container for one command run."""
        return ServiceContainer(
            self.config_manager, self.auth_manager, store=self._store
        )

    @property
    def store(self) -> JsonAppStore:
        """App registry, built on first use."""
        if self._store is None:
            self._store = self.create_services().store
        return self._store

    @abstractmethod
    async def execute(self, args: Namespace) -> None:
        """Execute the command with the given arguments.

        Args:
            args: Parsed command-line arguments

        """
