"""Check command handler: look for updates and record them."""

from argparse import Namespace

from macup.cli.commands.base import BaseCommandHandler
from macup.cli.commands.list import format_version
from macup.logger import get_logger

logger = get_logger(__name__)


class CheckHandler(BaseCommandHandler):
    """Handler for the check command."""

    async def execute(self, args: Namespace) -> None:
        """Run a check cycle and print the pending updates it left."""
        bundle_ids = args.bundle_ids or None
        async with self.create_services() as services:
            cycle = services.create_check_cycle(
                refresh_index=args.refresh_index
            )
            summary = await cycle.run(bundle_ids)

        print(
            f"🔍 Checked {summary.apps_checked} app(s), "
            f"found {summary.updates_found} update(s)"
        )
        if summary.purged:
            print(f"  Removed {summary.purged} outdated pending update(s)")

        updates = self.store.list_pending_updates()
        if bundle_ids:
            wanted = set(bundle_ids)
            updates = [u for u in updates if u.bundle_id in wanted]
        if not updates:
            print("✅ Everything is up to date")
            return

        print("Updates available:")
        for update in updates:
            paid = " (paid upgrade)" if update.is_paid_upgrade else ""
            print(
                f"  {update.bundle_id}: "
                f"{format_version(update.current_version)} → "
                f"{update.available_version} [{update.source.value}]{paid}"
            )
