"""Token command handler: manage the GitHub token in the keyring."""

import getpass
import sys
from argparse import Namespace

import keyring.errors

from macup.cli.commands.base import BaseCommandHandler
from macup.core.token import validate_github_token
from macup.logger import get_logger

logger = get_logger(__name__)


class TokenHandler(BaseCommandHandler):
    """Handler for token command operations."""

    async def execute(self, args: Namespace) -> None:
        """Execute the token command."""
        if args.save:
            self._save_token()
        elif args.remove:
            self._remove_token()
        else:
            self._show_status()

    def _save_token(self) -> None:
        try:
            token = getpass.getpass("Enter your GitHub token (input hidden): ")
            confirm = getpass.getpass("Confirm token: ")
        except (EOFError, KeyboardInterrupt):
            logger.error("Token input aborted by user")  # noqa: TRY400
            sys.exit(1)

        if not token.strip():
            print("❌ Token cannot be empty")
            sys.exit(1)
        if token != confirm:
            print("❌ Tokens do not match")
            sys.exit(1)
        if not validate_github_token(token):
            print("❌ That does not look like a GitHub token")
            sys.exit(1)

        self.auth_manager.token_store.set(token.strip())
        logger.info("GitHub token saved")
        print("✅ GitHub token saved to the keyring")

    def _remove_token(self) -> None:
        try:
            self.auth_manager.token_store.delete()
        except keyring.errors.PasswordDeleteError:
            logger.warning("No GitHub token found in keyring")
            print("ℹ️  No GitHub token stored")
            return
        logger.info("GitHub token removed")
        print("✅ GitHub token removed")

    def _show_status(self) -> None:
        if self.auth_manager.is_authenticated():
            print("🔑 GitHub token: stored")
        else:
            print("🔑 GitHub token: not set (60 requests/hour limit)")
