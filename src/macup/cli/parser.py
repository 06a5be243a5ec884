"""CLI argument parser for macup.

Handles parsing of command-line arguments and provides a clean
interface for defining CLI commands and their options.
"""

import argparse
from argparse import Namespace
from collections.abc import Sequence

from macup.domain.models import InstallSource
from macup.types import GlobalConfig


class CLIParser:
    """Command-line argument parser for macup."""

    def __init__(self, global_config: GlobalConfig) -> None:
        """Initialize the CLI parser with global configuration.

        Args:
            global_config: Global configuration dictionary.

        """
        self.global_config = global_config

    def parse_args(self, argv: Sequence[str] | None = None) -> Namespace:
        """Parse command-line arguments.

        Args:
            argv: Arguments to parse (defaults to ``sys.argv[1:]``)

        Returns:
            Parsed arguments namespace.

        """
        parser = self._create_main_parser()
        # --version is handled by the runner before any command runs
        self._add_global_options(parser)
        self._add_subcommands(parser)
        return parser.parse_args(argv)

    def _create_main_parser(self) -> argparse.ArgumentParser:
        return argparse.ArgumentParser(
            prog="macup",
            description="macup: keep macOS applications up to date",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Register an application
  %(prog)s add /Applications/Firefox.app
  %(prog)s add /Applications/iTerm.app --cask iterm2

  # Look for updates (all apps, or some)
  %(prog)s check
  %(prog)s check org.mozilla.firefox

  # Install pending updates
  %(prog)s update
  %(prog)s update org.mozilla.firefox com.googlecode.iterm2

  # See what every update source says about one app
  %(prog)s debug org.mozilla.firefox

  # GitHub token (raises the API rate limit)
  %(prog)s token --save
            """,
        )

    def _add_global_options(self, parser: argparse.ArgumentParser) -> None:
        parser.add_argument(
            "--version",
            action="store_true",
            help="Show macup version and exit",
        )

    def _add_subcommands(self, parser: argparse.ArgumentParser) -> None:
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands"
        )
        self._add_add_command(subparsers)
        self._add_list_command(subparsers)
        self._add_check_command(subparsers)
        self._add_update_command(subparsers)
        self._add_debug_command(subparsers)
        self._add_token_command(subparsers)

    def _add_add_command(self, subparsers) -> None:
        add_parser = subparsers.add_parser(
            "add", help="Register an application bundle"
        )
        add_parser.add_argument("path", help="Path to the .app bundle")
        add_parser.add_argument(
            "--cask", help="Homebrew cask token managing the app"
        )
        add_parser.add_argument("--formula", help="Homebrew formula name")
        add_parser.add_argument(
            "--feed", help="Sparkle appcast URL (overrides Info.plist)"
        )
        add_parser.add_argument(
            "--source",
            choices=[s.value for s in InstallSource],
            help="How the app was installed (detected when omitted)",
        )
        add_parser.add_argument(
            "--repo", help="GitHub repository as owner/repo"
        )
        add_parser.add_argument(
            "--mas-id", dest="mas_id", help="Mac App Store numeric app id"
        )

    def _add_list_command(self, subparsers) -> None:
        list_parser = subparsers.add_parser(
            "list", help="List registered applications"
        )
        list_parser.add_argument(
            "--pending",
            action="store_true",
            help="Only show apps with a pending update",
        )

    def _add_check_command(self, subparsers) -> None:
        check_parser = subparsers.add_parser(
            "check", help="Check applications for updates"
        )
        check_parser.add_argument(
            "bundle_ids", nargs="*", help="Bundle ids to check (default: all)"
        )
        check_parser.add_argument(
            "--refresh-index",
            action="store_true",
            dest="refresh_index",
            help="Re-download the Homebrew cask index even if it is fresh",
        )

    def _add_update_command(self, subparsers) -> None:
        update_parser = subparsers.add_parser(
            "update", help="Install pending updates"
        )
        update_parser.add_argument(
            "bundle_ids",
            nargs="*",
            help="Bundle ids to update (default: every pending update)",
        )

    def _add_debug_command(self, subparsers) -> None:
        debug_parser = subparsers.add_parser(
            "debug", help="Show every checker's verdict for one app"
        )
        debug_parser.add_argument("bundle_id", help="Bundle id to inspect")

    def _add_token_command(self, subparsers) -> None:
        token_parser = subparsers.add_parser(
            "token", help="Manage the GitHub API token"
        )
        group = token_parser.add_mutually_exclusive_group(required=True)
        group.add_argument(
            "--save", action="store_true", help="Save a token to the keyring"
        )
        group.add_argument(
            "--remove",
            action="store_true",
            help="Remove the token from the keyring",
        )
        group.add_argument(
            "--status",
            action="store_true",
            help="Show token and rate-limit status",
        )
