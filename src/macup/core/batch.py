"""Batch update orchestration.

Updates for many apps run with bounded concurrency. When two or more of
them are likely to hit the escalation ladder, the user is prompted once
up front and the sudo timestamp is kept warm for the rest of the batch,
so the executors' ``sudo -A`` retries succeed silently instead of
prompting per app. The keep-alive is torn down when the batch ends,
whatever happened to the individual updates.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence

from macup.constants import (
    DEFAULT_KEEPALIVE_SECONDS,
    DEFAULT_MAX_CONCURRENT_UPDATES,
)
from macup.core.elevation import ElevatedRunner, ElevationSession
from macup.core.executors.router import ExecutorRouter
from macup.core.protocols.ports import AppRegistry
from macup.core.protocols.progress import (
    NullProgressReporter,
    ProgressReporter,
)
from macup.domain.models import (
    AppRecord,
    InstallSource,
    SourceKind,
    UpdateInfo,
    UpdateResult,
)
from macup.logger import get_logger

logger = get_logger(__name__)

ELEVATION_LIKELY_SOURCES = frozenset(
    {
        SourceKind.HOMEBREW,
        SourceKind.HOMEBREW_API,
        SourceKind.SPARKLE,
        SourceKind.GITHUB,
        SourceKind.MICROSOFT,
        SourceKind.MAS,
    }
)
# Creative Cloud applies its own updates
ELEVATION_UNLIKELY_SOURCES = frozenset({SourceKind.ADOBE_CC})
PRE_AUTH_THRESHOLD = 2

ProgressFactory = Callable[[str], ProgressReporter]


def may_need_elevation(app: AppRecord, update: UpdateInfo | None) -> bool:
    """Guess whether updating ``app`` will need administrator rights."""
    if update is not None:
        if update.source in ELEVATION_LIKELY_SOURCES:
            return True
        if update.source in ELEVATION_UNLIKELY_SOURCES:
            return False
    return app.install_source in (
        InstallSource.HOMEBREW,
        InstallSource.HOMEBREW_FORMULA,
    )


class BatchUpdater:
    """Runs the router over many apps with one shared elevation grant."""

    def __init__(
        self,
        registry: AppRegistry,
        router: ExecutorRouter,
        runner: ElevatedRunner,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_UPDATES,
        keepalive_interval: float = DEFAULT_KEEPALIVE_SECONDS,
    ) -> None:
        """Initialize the batch updater.

        Args:
            registry: Persistence port for apps and pending updates
            router: Executes one app's update
            runner: Privileged runner used for the shared grant
            max_concurrent: Simultaneous installs
            keepalive_interval: Seconds between sudo timestamp refreshes

        """
        self.registry = registry
        self.router = router
        self.runner = runner
        self.max_concurrent = max_concurrent
        self.keepalive_interval = keepalive_interval

    def count_elevation_candidates(self, apps: Sequence[AppRecord]) -> int:
        """Return how many apps will probably need elevation."""
        return sum(
            1
            for app in apps
            if may_need_elevation(
                app, self.registry.get_pending_update(app.bundle_id)
            )
        )

    async def _update_one(
        self,
        app: AppRecord,
        semaphore: asyncio.Semaphore,
        progress_factory: ProgressFactory | None,
    ) -> UpdateResult:
        progress = (
            progress_factory(app.bundle_id)
            if progress_factory
            else NullProgressReporter()
        )
        async with semaphore:
            try:
                return await self.router.execute(app, progress)
            except Exception as e:
                logger.exception("Update task failed for %s", app.bundle_id)
                return UpdateResult.failed(
                    app.bundle_id,
                    SourceKind.DELEGATED,
                    f"Update task failed: {e}",
                )

    async def run(
        self,
        bundle_ids: Sequence[str],
        progress_factory: ProgressFactory | None = None,
    ) -> list[UpdateResult]:
        """Update every app in ``bundle_ids``.

        Args:
            bundle_ids: Apps to update
            progress_factory: Builds a progress reporter per bundle id

        Returns:
            One result per requested bundle id, in request order

        """
        results: dict[str, UpdateResult] = {}
        apps: list[AppRecord] = []
        for bundle_id in bundle_ids:
            app = self.registry.get_app(bundle_id)
            if app is None:
                results[bundle_id] = UpdateResult.failed(
                    bundle_id, SourceKind.DELEGATED, "App is not registered"
                )
            else:
                apps.append(app)

        candidates = self.count_elevation_candidates(apps)
        session: ElevationSession | None = None
        if candidates >= PRE_AUTH_THRESHOLD:
            logger.info(
                "%d of %d updates may need administrator access, "
                "authenticating once for the batch",
                candidates,
                len(apps),
            )
            session = ElevationSession(self.runner, self.keepalive_interval)
            await session.start()

        semaphore = asyncio.Semaphore(self.max_concurrent)
        try:
            outcomes = await asyncio.gather(
                *(
                    self._update_one(app, semaphore, progress_factory)
                    for app in apps
                ),
                return_exceptions=True,
            )
        finally:
            if session is not None:
                await session.stop()

        for app, outcome in zip(apps, outcomes, strict=True):
            if isinstance(outcome, UpdateResult):
                results[app.bundle_id] = outcome
            else:
                logger.error("Update task failed: %s", outcome)
                results[app.bundle_id] = UpdateResult.failed(
                    app.bundle_id,
                    SourceKind.DELEGATED,
                    f"Critical error: {outcome}",
                )

        succeeded = sum(1 for r in results.values() if r.success)
        logger.info(
            "Batch finished: %d of %d succeeded", succeeded, len(results)
        )
        return [results[bundle_id] for bundle_id in bundle_ids]
