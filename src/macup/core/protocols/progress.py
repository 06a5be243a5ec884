"""Progress reporting protocol for executors.

Executors report progress as ``(percent, phase, byte_counts)`` triples
through a :class:`ProgressReporter`. Reporting is fire-and-forget: the
executor never awaits the consumer, so a slow presentation layer cannot
stall an install.

Usage in executors::

    class HomebrewExecutor:
        async def execute(self, app, update, progress):
            progress.report(20, "Running brew upgrade...")

"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

ByteCounts = tuple[int, int | None]


@dataclass(frozen=True)
class ProgressEvent:
    """One progress update for one execution.

    Attributes:
        bundle_id: Application being updated
        percent: Completion in the range 0-100
        phase: Human-readable phase text
        byte_counts: ``(downloaded, total)`` while a download runs

    """

    bundle_id: str
    percent: int
    phase: str
    byte_counts: ByteCounts | None = None


@runtime_checkable
class ProgressReporter(Protocol):
    """Receives progress from an executor.

    Implementations must return immediately; ``report`` is called from
    inside the install path and is never awaited.
    """

    def is_active(self) -> bool:
        """Return True if anyone consumes the reported progress."""
        ...

    def report(
        self,
        percent: int,
        phase: str,
        byte_counts: ByteCounts | None = None,
    ) -> None:
        """Publish one progress update.

        Args:
            percent: Completion in the range 0-100
            phase: Human-readable phase text
            byte_counts: ``(downloaded, total)`` for downloads

        """
        ...


class NullProgressReporter:
    """No-op progress reporter for when progress display is disabled."""

    def is_active(self) -> bool:
        """Always returns False for the null implementation."""
        return False

    def report(
        self,
        percent: int,  # noqa: ARG002
        phase: str,  # noqa: ARG002
        byte_counts: ByteCounts | None = None,  # noqa: ARG002
    ) -> None:
        """Discard the update."""


class QueueProgressReporter:
    """Pushes progress events onto an unbounded asyncio queue.

    ``put_nowait`` on an unbounded queue never blocks, so producers never
    wait for the consumer. One reporter is bound to one bundle id; many
    reporters may share a queue.
    """

    def __init__(
        self, queue: asyncio.Queue[ProgressEvent], bundle_id: str
    ) -> None:
        """Initialize the reporter.

        Args:
            queue: Unbounded queue drained by the presentation layer
            bundle_id: Application whose execution reports here

        """
        self.queue = queue
        self.bundle_id = bundle_id

    def is_active(self) -> bool:
        """Return True; a queue always has a consumer."""
        return True

    def report(
        self,
        percent: int,
        phase: str,
        byte_counts: ByteCounts | None = None,
    ) -> None:
        """Enqueue one event without waiting."""
        self.queue.put_nowait(
            ProgressEvent(
                bundle_id=self.bundle_id,
                percent=max(0, min(100, percent)),
                phase=phase,
                byte_counts=byte_counts,
            )
        )
