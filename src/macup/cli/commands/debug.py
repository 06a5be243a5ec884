"""Debug command handler: per-checker diagnostics for one app."""

import sys
from argparse import Namespace

from macup.cli.commands.base import BaseCommandHandler
from macup.logger import get_logger

logger = get_logger(__name__)


class DebugHandler(BaseCommandHandler):
    """Handler for the debug command."""

    async def execute(self, args: Namespace) -> None:
        """Print what every checker concluded for ``args.bundle_id``."""
        app = self.store.get_app(args.bundle_id)
        if app is None:
            print(f"❌ Not registered: {args.bundle_id}")
            sys.exit(1)

        async with self.create_services() as services:
            diagnostics = await services.create_check_cycle().diagnose(app)

        print(f"🔧 {app.name} ({app.bundle_id})")
        print(f"  Installed: {app.installed_version or '-'}")
        print(f"  Source:    {app.install_source.value}")
        for diag in diagnostics:
            status = diag.result if diag.can_check else "skipped"
            print(f"  {diag.source.value:<18} {status}")
