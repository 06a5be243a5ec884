"""Update command handler: install pending updates.

Progress from every running executor is funnelled through one queue and
printed by a single consumer task, one line per phase change, so
concurrent downloads do not flood the terminal.
"""

import asyncio
import contextlib
from argparse import Namespace

from macup.cli.commands.base import BaseCommandHandler
from macup.core.protocols.progress import ProgressEvent, QueueProgressReporter
from macup.domain.models import UpdateResult
from macup.logger import get_logger

logger = get_logger(__name__)


async def render_progress(queue: asyncio.Queue[ProgressEvent]) -> None:
    """Print phase changes until cancelled."""
    last_phase: dict[str, str] = {}
    while True:
        event = await queue.get()
        try:
            if last_phase.get(event.bundle_id) != event.phase:
                last_phase[event.bundle_id] = event.phase
                print(
                    f"  [{event.bundle_id}] {event.percent:>3}% {event.phase}"
                )
        finally:
            queue.task_done()


def summarize(results: list[UpdateResult]) -> None:
    """Print one line per result and a closing tally."""
    for result in results:
        if not result.success:
            icon = "❌"
        elif result.delegated:
            icon = "↗️ "
        else:
            icon = "✅"
        print(f"{icon} {result.bundle_id}: {result.message}")
    succeeded = sum(1 for r in results if r.success and not r.delegated)
    delegated = sum(1 for r in results if r.success and r.delegated)
    failed = len(results) - succeeded - delegated
    print(
        f"\n{succeeded} updated, {delegated} handed off to the app, "
        f"{failed} failed"
    )


class UpdateHandler(BaseCommandHandler):
    """Handler for the update command."""

    async def execute(self, args: Namespace) -> None:
        """Update the requested apps, or every app with a pending update."""
        targets = list(args.bundle_ids) or [
            update.bundle_id for update in self.store.list_pending_updates()
        ]
        if not targets:
            print("✅ No pending updates. Run 'macup check' first.")
            return

        logger.info("Updating %d app(s): %s", len(targets), ", ".join(targets))
        queue: asyncio.Queue[ProgressEvent] = asyncio.Queue()
        consumer = asyncio.create_task(render_progress(queue))
        try:
            async with self.create_services() as services:
                results = await services.create_batch_updater().run(
                    targets,
                    progress_factory=lambda bundle_id: QueueProgressReporter(
                        queue, bundle_id
                    ),
                )
            await queue.join()
        finally:
            consumer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await consumer

        summarize(results)
