"""CLI runner for macup.

Orchestrates the execution of CLI commands by routing parsed
arguments to the appropriate command handlers.
"""

import sys
from argparse import Namespace
from collections.abc import Sequence

from macup import __version__
from macup.cli.commands.add import AddHandler
from macup.cli.commands.base import BaseCommandHandler
from macup.cli.commands.check import CheckHandler
from macup.cli.commands.debug import DebugHandler
from macup.cli.commands.list import ListHandler
from macup.cli.commands.token import TokenHandler
from macup.cli.commands.update import UpdateHandler
from macup.cli.parser import CLIParser
from macup.config import ConfigManager
from macup.core.auth import GitHubAuthManager
from macup.logger import get_logger, update_logger_from_config

logger = get_logger(__name__)


class CLIRunner:
    """CLI command runner and composition root."""

    def __init__(
        self,
        config_manager: ConfigManager | None = None,
        auth_manager: GitHubAuthManager | None = None,
    ) -> None:
        """Initialize the runner with shared dependencies.

        Args:
            config_manager: Configuration access (default: ~/.config/macup)
            auth_manager: GitHub token and rate-limit tracking

        """
        self.config_manager = config_manager or ConfigManager()
        self.global_config = self.config_manager.load_global_config()
        self.auth_manager = auth_manager or GitHubAuthManager()
        update_logger_from_config()
        self.command_handlers: dict[str, BaseCommandHandler] = {
            "add": AddHandler(self.config_manager, self.auth_manager),
            "list": ListHandler(self.config_manager, self.auth_manager),
            "check": CheckHandler(self.config_manager, self.auth_manager),
            "update": UpdateHandler(self.config_manager, self.auth_manager),
            "debug": DebugHandler(self.config_manager, self.auth_manager),
            "token": TokenHandler(self.config_manager, self.auth_manager),
        }

    async def run(self, argv: Sequence[str] | None = None) -> None:
        """Parse arguments and run the selected command.

        Args:
            argv: Arguments to parse (defaults to ``sys.argv[1:]``)

        """
        try:
            args = CLIParser(self.global_config).parse_args(argv)

            if getattr(args, "version", False):
                print(__version__)
                return

            if not args.command:
                print("❌ No command specified. Use --help.")
                sys.exit(1)

            await self._execute_command(args)

        except KeyboardInterrupt:
            print("\n⏹️  Operation cancelled by user")
            sys.exit(1)
        except Exception as e:
            logger.error("Unexpected error: %s", e)  # noqa: TRY400
            print(f"❌ Unexpected error: {e}")
            sys.exit(1)

    async def _execute_command(self, args: Namespace) -> None:
        handler = self.command_handlers.get(args.command)
        if handler is None:
            print(f"❌ Unknown command: {args.command}")
            sys.exit(1)
        logger.debug("Running command: %s", args.command)
        await handler.execute(args)
