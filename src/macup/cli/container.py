"""Service wiring for CLI commands.

:class:`ServiceContainer` builds the engine's collaborators from the
global configuration and owns the lifetime of the shared HTTP session.
Services are created lazily, so ``macup list`` never opens a session or
touches the cask index.

Usage::

    async with ServiceContainer(config_manager, auth_manager) as services:
        summary = await services.check_cycle.run()
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from types import TracebackType

import aiohttp

from macup.config import ConfigManager, Paths
from macup.core.auth import GitHubAuthManager
from macup.core.batch import BatchUpdater
from macup.core.bundle import PlistBundleReader
from macup.core.cache.cask_index import CaskIndexCache
from macup.core.cache.etag import ETagCache
from macup.core.cache.fingerprint import FingerprintChecker
from macup.core.checkers.dispatcher import Dispatcher
from macup.core.cycle import CheckCycle
from macup.core.elevation import ElevatedRunner, resolve_askpass
from macup.core.executors.router import ExecutorRouter
from macup.core.github import GitHubReleaseClient
from macup.core.http_session import create_http_session, download_timeout
from macup.infrastructure.store import JsonAppStore
from macup.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """Lazily built services sharing one session and one registry."""

    def __init__(
        self,
        config_manager: ConfigManager,
        auth_manager: GitHubAuthManager,
        store: JsonAppStore | None = None,
    ) -> None:
        """Initialize the container.

        Args:
            config_manager: Configuration access
            auth_manager: GitHub token and rate-limit tracking
            store: App registry (built from the state directory if None)

        """
        self.config_manager = config_manager
        self.global_config = config_manager.load_global_config()
        self.auth_manager = auth_manager
        self._store = store
        self._stack = AsyncExitStack()
        self._session: aiohttp.ClientSession | None = None
        self._bundle_reader = PlistBundleReader()
        self._runner: ElevatedRunner | None = None
        self._github: GitHubReleaseClient | None = None

    async def __aenter__(self) -> ServiceContainer:
        """Open the shared HTTP session."""
        self._session = await self._stack.enter_async_context(
            create_http_session(self.global_config)
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Close the session."""
        await self._stack.aclose()
        self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        """Shared HTTP session; only valid inside ``async with``."""
        if self._session is None:
            msg = "ServiceContainer used outside 'async with'"
            raise RuntimeError(msg)
        return self._session

    @property
    def store(self) -> JsonAppStore:
        """App registry backed by apps.json."""
        if self._store is None:
            state_dir = self.global_config["directory"]["state"]
            self._store = JsonAppStore(Paths.state_file(state_dir))
        return self._store

    @property
    def runner(self) -> ElevatedRunner:
        """Privileged command runner."""
        if self._runner is None:
            askpass = resolve_askpass(
                self.global_config["elevation"]["askpass_path"],
                self.config_manager.config_dir,
            )
            self._runner = ElevatedRunner(askpass)
        return self._runner

    @property
    def github(self) -> GitHubReleaseClient:
        """GitHub release client with a persistent ETag cache."""
        if self._github is None:
            cache_dir = self.global_config["directory"]["cache"]
            self._github = GitHubReleaseClient(
                self.session,
                ETagCache(Paths.etag_cache_file(cache_dir)),
                self.auth_manager,
            )
        return self._github

    def create_check_cycle(self, *, refresh_index: bool = False) -> CheckCycle:
        """Build a check cycle over the registry."""
        cache_dir = self.global_config["directory"]["cache"]
        cask_cache = CaskIndexCache(
            Paths.cask_index_file(cache_dir),
            ttl_hours=self.global_config["cache"]["cask_index_ttl_hours"],
        )
        if refresh_index:
            cask_cache.invalidate()
        return CheckCycle(
            self.store,
            self.session,
            Dispatcher(bundle_reader=self._bundle_reader),
            cask_cache,
            self.github,
            fingerprints=FingerprintChecker(self.session, self.store),
            max_concurrent=self.global_config["max_concurrent_checks"],
            etag_save_timeout=self.global_config["cache"][
                "etag_save_timeout_seconds"
            ],
        )

    def create_batch_updater(self) -> BatchUpdater:
        """Build the batch updater and its executor router."""
        router = ExecutorRouter(
            self.store,
            self.runner,
            self.session,
            bundle_reader=self._bundle_reader,
            download_timeout=download_timeout(self.global_config),
        )
        return BatchUpdater(
            self.store,
            router,
            self.runner,
            max_concurrent=self.global_config["max_concurrent_updates"],
            keepalive_interval=self.global_config["elevation"][
                "keepalive_seconds"
            ],
        )
