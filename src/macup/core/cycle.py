"""One full update-check cycle over the registered apps.

The cycle pre-fetches everything that is shared between apps (brew
outdated lists, the cask index, the CLT check) exactly once, builds a
read-only :class:`~macup.domain.models.CheckContext` per app and then
checks the apps with bounded concurrency. Found updates are persisted as
they arrive; stale pending updates are purged at the end.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace

import aiohttp

from macup.constants import (
    DEFAULT_ETAG_SAVE_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENT_CHECKS,
)
from macup.core.brew import (
    check_xcode_clt,
    fetch_brew_outdated,
    fetch_brew_outdated_formulae,
)
from macup.core.cache.cask_index import CaskIndex, CaskIndexCache
from macup.core.cache.fingerprint import FingerprintChecker
from macup.core.checkers.dispatcher import Dispatcher
from macup.core.github import GitHubReleaseClient
from macup.core.protocols.ports import AppRegistry
from macup.domain.models import (
    AppRecord,
    BrewOutdatedCask,
    BrewOutdatedFormula,
    CheckContext,
    CheckerDiagnostic,
    CycleSummary,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.logger import get_logger

logger = get_logger(__name__)


class CheckCycle:
    """Checks every registered app for updates."""

    def __init__(
        self,
        registry: AppRegistry,
        session: aiohttp.ClientSession,
        dispatcher: Dispatcher,
        cask_cache: CaskIndexCache,
        github: GitHubReleaseClient,
        fingerprints: FingerprintChecker | None = None,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT_CHECKS,
        etag_save_timeout: float = DEFAULT_ETAG_SAVE_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize the cycle.

        Args:
            registry: Persistence port for apps and pending updates
            session: Shared HTTP session
            dispatcher: Runs the checkers for one app
            cask_cache: Homebrew cask index cache
            github: Release client whose ETag cache is saved at the end
            fingerprints: Change detector for unversioned casks
            max_concurrent: Apps checked at the same time
            etag_save_timeout: Upper bound for persisting the ETag cache

        """
        self.registry = registry
        self.session = session
        self.dispatcher = dispatcher
        self.cask_cache = cask_cache
        self.github = github
        self.fingerprints = fingerprints
        self.max_concurrent = max_concurrent
        self.etag_save_timeout = etag_save_timeout

    async def _prefetch(
        self,
    ) -> tuple[
        dict[str, BrewOutdatedCask],
        dict[str, BrewOutdatedFormula],
        CaskIndex | None,
    ]:
        casks, formulae, index = await asyncio.gather(
            fetch_brew_outdated(),
            fetch_brew_outdated_formulae(),
            self.cask_cache.get(self.session),
            return_exceptions=True,
        )
        if isinstance(casks, BaseException):
            logger.warning("brew outdated (casks) failed: %s", casks)
            casks = {}
        if isinstance(formulae, BaseException):
            logger.warning("brew outdated (formulae) failed: %s", formulae)
            formulae = {}
        if isinstance(index, BaseException):
            logger.warning("Cask index unavailable: %s", index)
            index = None
        logger.info(
            "Pre-fetched %d outdated cask(s), %d outdated formula(e), "
            "cask index %s",
            len(casks),
            len(formulae),
            "loaded" if index is not None else "unavailable",
        )
        return casks, formulae, index

    def _backfill(self, app: AppRecord, index: CaskIndex | None) -> AppRecord:
        """Fill a missing cask token or GitHub repo from the index."""
        if index is None:
            return app
        changes: dict[str, str] = {}
        if not app.homebrew_cask_token:
            token = index.lookup_token(app.bundle_id, app.path)
            if token:
                changes["homebrew_cask_token"] = token
        if not app.github_repo:
            repo = index.github_repo(app.bundle_id)
            if repo:
                changes["github_repo"] = repo
        if not changes:
            return app

        logger.debug("Backfilled %s for %s", changes, app.bundle_id)
        updated = replace(app, **changes)
        self.registry.update_app(updated)
        return updated

    def _context(
        self,
        app: AppRecord,
        casks: dict[str, BrewOutdatedCask],
        formulae: dict[str, BrewOutdatedFormula],
        index: CaskIndex | None,
        clt_installed: bool,
    ) -> CheckContext:
        return CheckContext(
            install_source=app.install_source,
            homebrew_cask_token=app.homebrew_cask_token,
            homebrew_formula_name=app.homebrew_formula_name,
            sparkle_feed_url=app.sparkle_feed_url,
            obtained_from=app.obtained_from,
            github_repo=app.github_repo,
            brew_outdated=casks,
            brew_outdated_formulae=formulae,
            cask_index=index,
            xcode_clt_installed=clt_installed,
            fingerprints=self.fingerprints,
            github=self.github,
        )

    async def _check_one(
        self,
        app: AppRecord,
        context: CheckContext,
        semaphore: asyncio.Semaphore,
    ) -> UpdateInfo | None:
        async with semaphore:
            try:
                update = await self.dispatcher.check(
                    app.bundle_id,
                    app.path,
                    app.installed_version,
                    self.session,
                    context,
                )
            except Exception:
                logger.exception("Update check crashed for %s", app.bundle_id)
                return None
        if update is not None:
            self.registry.save_pending_update(update)
        return update

    async def _save_etags(self) -> None:
        try:
            await asyncio.wait_for(
                self.github.etag_cache.save(), timeout=self.etag_save_timeout
            )
        except TimeoutError:
            logger.warning(
                "Saving the ETag cache took longer than %ss, skipped",
                self.etag_save_timeout,
            )

    def purge_stale(self) -> int:
        """Drop pending updates that are no longer newer than installed.

        Returns:
            Number of pending updates removed

        """
        purged = 0
        for update in self.registry.list_pending_updates():
            app = self.registry.get_app(update.bundle_id)
            if app is None:
                purged += self.registry.clear_pending_update(update.bundle_id)
                continue
            installed = app.installed_version
            if installed and not is_newer(installed, update.available_version):
                logger.info(
                    "Pending update %s for %s is stale (installed %s)",
                    update.available_version,
                    update.bundle_id,
                    installed,
                )
                purged += self.registry.clear_pending_update(update.bundle_id)
        return purged

    async def run(
        self, bundle_ids: Sequence[str] | None = None
    ) -> CycleSummary:
        """Check the given apps, or every registered app.

        Args:
            bundle_ids: Restrict the cycle to these apps

        Returns:
            Counts of checked apps, found and purged updates

        """
        self.github.reset_rate_limit()
        if self.fingerprints is not None:
            self.fingerprints.reset()

        apps = list(self.registry.list_apps())
        if bundle_ids:
            wanted = set(bundle_ids)
            apps = [app for app in apps if app.bundle_id in wanted]
            missing = wanted - {app.bundle_id for app in apps}
            for bundle_id in sorted(missing):
                logger.warning("Not registered, skipped: %s", bundle_id)

        casks, formulae, index = await self._prefetch()
        clt_installed = await check_xcode_clt()
        if not clt_installed:
            logger.info("Xcode Command Line Tools are not installed")

        semaphore = asyncio.Semaphore(self.max_concurrent)
        tasks = []
        for app in apps:
            app = self._backfill(app, index)  # noqa: PLW2901
            context = self._context(
                app, casks, formulae, index, clt_installed
            )
            tasks.append(self._check_one(app, context, semaphore))
        results = await asyncio.gather(*tasks)
        found = sum(1 for update in results if update is not None)

        await self._save_etags()
        purged = self.purge_stale()

        summary = CycleSummary(
            apps_checked=len(apps), updates_found=found, purged=purged
        )
        logger.info(
            "Check cycle finished: %d app(s) checked, %d update(s) found, "
            "%d stale pending update(s) purged",
            summary.apps_checked,
            summary.updates_found,
            summary.purged,
        )
        return summary

    async def diagnose(self, app: AppRecord) -> list[CheckerDiagnostic]:
        """Run every checker for ``app`` and report each verdict.

        Nothing is persisted apart from backfilled tokens.
        """
        self.github.reset_rate_limit()
        casks, formulae, index = await self._prefetch()
        clt_installed = await check_xcode_clt()
        app = self._backfill(app, index)
        context = self._context(app, casks, formulae, index, clt_installed)
        return await self.dispatcher.debug_check(
            app.bundle_id,
            app.path,
            app.installed_version,
            self.session,
            context,
        )
