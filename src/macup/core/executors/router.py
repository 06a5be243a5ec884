"""Executor selection and post-update bookkeeping.

Routing precedence:

1. the pending update's source kind, each kind trying its most specific
   executor first
2. the app's recorded install source
3. opening the app and letting it update itself (delegated)

Every execution is recorded in history. After a verified (not delegated)
success the installed version is refreshed from disk, pending updates for
the app and for any app sharing its cask token are cleared, and an app
that was running before the update is relaunched.
"""

from __future__ import annotations

import asyncio
import re

import aiohttp

from macup.core.bundle import PlistBundleReader, is_app_running, relaunch_app
from macup.core.elevation import ElevatedRunner
from macup.core.executors.base import Executor
from macup.core.executors.delegated import (
    CREATIVE_CLOUD_BUNDLE_ID,
    DelegatedExecutor,
)
from macup.core.executors.direct import DirectDownloadExecutor
from macup.core.executors.formula import HomebrewFormulaExecutor
from macup.core.executors.homebrew import HomebrewExecutor
from macup.core.executors.mas import MasExecutor
from macup.core.executors.microsoft import MicrosoftAutoUpdateExecutor
from macup.core.protocols.ports import AppRegistry, BundleReader
from macup.core.protocols.progress import NullProgressReporter, ProgressReporter
from macup.domain.models import (
    AppRecord,
    InstallSource,
    SourceKind,
    UpdateInfo,
    UpdateResult,
)
from macup.exceptions import MacupError, UserCancelledError
from macup.logger import get_logger

logger = get_logger(__name__)

RELAUNCH_DELAY_SECONDS = 2.0

DOWNLOAD_SOURCES = frozenset(
    {
        SourceKind.SPARKLE,
        SourceKind.GITHUB,
        SourceKind.ELECTRON,
        SourceKind.JETBRAINS,
        SourceKind.MOZILLA,
        SourceKind.HOMEBREW,
        SourceKind.HOMEBREW_API,
    }
)
CASK_SOURCES = frozenset({SourceKind.KEYSTONE})

_INSTALLER_SUFFIX = re.compile(r"\.(dmg|zip|pkg|tar\.gz|tbz)(\?|$)")
_STORE_HOSTS = ("apps.apple.com", "itunes.apple.com")


def is_downloadable_url(url: str | None) -> bool:
    """Return True if ``url`` points at an installer file.

    Examples:
        >>> is_downloadable_url("https://example.com/App-2.0.dmg")
        True
        >>> is_downloadable_url("https://example.com/App.zip?sig=abc")
        True
        >>> is_downloadable_url("https://apps.apple.com/app/id123")
        False

    """
    if not url:
        return False
    lowered = url.lower()
    if any(host in lowered for host in _STORE_HOSTS):
        return False
    return bool(_INSTALLER_SUFFIX.search(lowered)) or "/download/" in lowered


class ExecutorRouter:
    """Picks and runs one executor per app, then reconciles state."""

    def __init__(
        self,
        registry: AppRegistry,
        runner: ElevatedRunner,
        session: aiohttp.ClientSession,
        bundle_reader: BundleReader | None = None,
        download_timeout: aiohttp.ClientTimeout | None = None,
        relaunch_delay: float = RELAUNCH_DELAY_SECONDS,
    ) -> None:
        """Initialize the router.

        Args:
            registry: Persistence port for apps, pending updates and history
            runner: Privileged command runner shared by all executors
            session: HTTP session for direct downloads
            bundle_reader: Reads on-disk installed versions
            download_timeout: Timeout for installer downloads
            relaunch_delay: Seconds to wait before relaunching an app

        """
        self.registry = registry
        self.runner = runner
        self.session = session
        self.bundle_reader = bundle_reader or PlistBundleReader()
        self.download_timeout = download_timeout
        self.relaunch_delay = relaunch_delay

    def _homebrew(self, app: AppRecord, token: str) -> HomebrewExecutor:
        return HomebrewExecutor(
            token,
            self.runner,
            pre_version=app.installed_version,
            bundle_reader=self.bundle_reader,
        )

    def _direct(
        self, app: AppRecord, url: str, source: SourceKind
    ) -> DirectDownloadExecutor:
        return DirectDownloadExecutor(
            url,
            app.name,
            self.session,
            self.runner,
            source=source,
            pre_version=app.installed_version,
            bundle_reader=self.bundle_reader,
            timeout=self.download_timeout,
        )

    def _by_update(
        self, app: AppRecord, update: UpdateInfo
    ) -> Executor | None:
        source = update.source
        token = app.homebrew_cask_token
        downloadable = is_downloadable_url(update.download_url)

        if source in CASK_SOURCES:
            if token:
                return self._homebrew(app, token)
            if downloadable:
                return self._direct(app, update.download_url, source)
            return None
        if source in DOWNLOAD_SOURCES:
            if downloadable:
                return self._direct(app, update.download_url, source)
            if token:
                return self._homebrew(app, token)
            return None
        if source is SourceKind.HOMEBREW_FORMULA and app.homebrew_formula_name:
            return HomebrewFormulaExecutor(
                app.homebrew_formula_name,
                self.runner,
                pre_version=app.installed_version,
            )
        if source is SourceKind.MAS:
            return MasExecutor(
                app.mas_app_id,
                self.runner,
                pre_version=app.installed_version,
                bundle_reader=self.bundle_reader,
            )
        if source is SourceKind.MICROSOFT:
            return MicrosoftAutoUpdateExecutor(
                app.name,
                self.runner,
                cask_token=token,
                pre_version=app.installed_version,
                bundle_reader=self.bundle_reader,
            )
        if source is SourceKind.ADOBE_CC:
            if token:
                return self._homebrew(app, token)
            return DelegatedExecutor(
                CREATIVE_CLOUD_BUNDLE_ID,
                "Adobe Creative Cloud",
                source=SourceKind.ADOBE_CC,
            )
        return None

    def _by_install_source(self, app: AppRecord) -> Executor:
        match app.install_source:
            case InstallSource.MAS:
                return MasExecutor(
                    app.mas_app_id,
                    self.runner,
                    pre_version=app.installed_version,
                    bundle_reader=self.bundle_reader,
                )
            case InstallSource.HOMEBREW if app.homebrew_cask_token:
                return self._homebrew(app, app.homebrew_cask_token)
            case InstallSource.HOMEBREW_FORMULA if app.homebrew_formula_name:
                return HomebrewFormulaExecutor(
                    app.homebrew_formula_name,
                    self.runner,
                    pre_version=app.installed_version,
                )
            case _:
                return DelegatedExecutor()

    def select(self, app: AppRecord, update: UpdateInfo | None) -> Executor:
        """Choose the executor for ``app``."""
        if update is not None:
            executor = self._by_update(app, update)
            if executor is not None:
                return executor
            logger.debug(
                "No %s executor for %s, using install source %s",
                update.source.value,
                app.bundle_id,
                app.install_source.value,
            )
        return self._by_install_source(app)

    async def _run(
        self,
        executor: Executor,
        app: AppRecord,
        progress: ProgressReporter,
    ) -> UpdateResult:
        try:
            return await executor.execute(app.bundle_id, app.path, progress)
        except UserCancelledError:
            message = (
                "Update cancelled: administrator approval required for "
                f"{app.name}"
            )
        except MacupError as e:
            message = str(e)
        except Exception as e:
            logger.exception("Unexpected error updating %s", app.bundle_id)
            message = f"Update failed: {e}"
        logger.warning("Update of %s failed: %s", app.bundle_id, message)
        progress.report(100, message)
        return UpdateResult(
            bundle_id=app.bundle_id,
            success=False,
            message=message,
            source=executor.source,
            from_version=app.installed_version,
        )

    async def _reconcile(
        self,
        app: AppRecord,
        update: UpdateInfo | None,
        result: UpdateResult,
        was_running: bool,
    ) -> None:
        on_disk = await self.bundle_reader.read_version(app.path)
        fallback = update.available_version if update else result.to_version
        self.registry.update_app(app.with_version(on_disk or fallback))

        cleared = self.registry.clear_pending_update(app.bundle_id)
        if app.homebrew_cask_token:
            cleared += self.registry.clear_pending_updates_for_token(
                app.homebrew_cask_token
            )
        logger.debug(
            "Cleared %d pending update(s) after updating %s",
            cleared,
            app.bundle_id,
        )

        if was_running and not result.handled_relaunch:
            await asyncio.sleep(self.relaunch_delay)
            await relaunch_app(app.path)

    async def execute(
        self,
        app: AppRecord,
        progress: ProgressReporter | None = None,
    ) -> UpdateResult:
        """Update one app and record the outcome.

        Args:
            app: Registered application
            progress: Progress observer (discarded when None)

        Returns:
            The executor's result; never raises for a failed update

        """
        progress = progress or NullProgressReporter()
        update = self.registry.get_pending_update(app.bundle_id)
        executor = self.select(app, update)
        logger.info(
            "Updating %s with %s executor",
            app.bundle_id,
            executor.source.value,
        )

        was_running = await is_app_running(app.bundle_id)
        entry_id = self.registry.record_history_start(
            app.bundle_id, app.installed_version
        )
        result = await self._run(executor, app, progress)
        self.registry.record_history_finish(entry_id, result)

        if result.success and not result.delegated:
            await self._reconcile(app, update, result, was_running)
        logger.info(
            "Update of %s finished: success=%s delegated=%s (%s)",
            app.bundle_id,
            result.success,
            result.delegated,
            result.message,
        )
        return result
