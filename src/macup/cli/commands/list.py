"""List command handler: show registered apps and pending updates."""

from argparse import Namespace

from macup.cli.commands.base import BaseCommandHandler
from macup.logger import get_logger

logger = get_logger(__name__)

MAX_VERSION_DISPLAY_LENGTH = 16


def format_version(version: str | None) -> str:
    """Truncate long version strings for column display."""
    if not version:
        return "-"
    if len(version) > MAX_VERSION_DISPLAY_LENGTH:
        return version[: MAX_VERSION_DISPLAY_LENGTH - 3] + "..."
    return version


class ListHandler(BaseCommandHandler):
    """Handler for the list command."""

    async def execute(self, args: Namespace) -> None:
        """Print registered apps with any pending update."""
        apps = self.store.list_apps()
        pending = {u.bundle_id: u for u in self.store.list_pending_updates()}
        if args.pending:
            apps = [app for app in apps if app.bundle_id in pending]
        logger.info("Listing %d registered apps", len(apps))
        print("📦 Registered applications:")

        if not apps:
            print("  None found")
            return

        for app in apps:
            update = pending.get(app.bundle_id)
            line = (
                f"  {app.name:<24} {format_version(app.installed_version):<16}"
                f" {app.install_source.value:<16}"
            )
            if update is not None:
                line += (
                    f" → {format_version(update.available_version)}"
                    f" ({update.source.value})"
                )
            print(line)
