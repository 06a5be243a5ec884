"""Checkers backed by pre-fetched Homebrew data.

All three read only what the cycle fetched up front (``brew outdated``
and the cask index), so they form the local tier and never touch the
network.
"""

from __future__ import annotations

from pathlib import Path

import aiohttp

from macup.core.bundle import is_browser_extension
from macup.core.checkers.base import Checker, github_releases_url
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.logger import get_logger

logger = get_logger(__name__)

XCODE_CLT_NOTE = (
    "Requires Xcode Command Line Tools (run: xcode-select --install)"
)


class HomebrewCaskChecker(Checker):
    """Reports casks that ``brew outdated --greedy`` lists."""

    @property
    def source(self) -> SourceKind:
        return SourceKind.HOMEBREW

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return install_source is not InstallSource.MAS

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        token = context.homebrew_cask_token
        if not token:
            logger.debug("No cask token for %s, skipping Homebrew", bundle_id)
            return None
        if context.brew_outdated is None:
            logger.debug("No brew outdated data for %s, skipping", bundle_id)
            return None

        outdated = context.brew_outdated.get(token)
        if outdated is None:
            return None
        # brew compares against its own receipt; the bundle may be newer
        if current_version and not is_newer(
            current_version, outdated.current_version
        ):
            logger.debug(
                "Homebrew lists %s as outdated but %s is not newer than %s",
                token,
                outdated.current_version,
                current_version,
            )
            return None

        download_url = None
        if context.cask_index is not None:
            download_url = context.cask_index.url_by_token.get(token)
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=outdated.current_version,
            source=SourceKind.HOMEBREW,
            download_url=download_url,
            release_notes_url=github_releases_url(context.github_repo),
        )


class HomebrewApiChecker(Checker):
    """Compares the installed version with the cask index."""

    @property
    def source(self) -> SourceKind:
        return SourceKind.HOMEBREW_API

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return install_source is not InstallSource.MAS

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        # Web-app shims share names with real casks
        if is_browser_extension(bundle_id):
            return None
        if context.cask_index is None or current_version is None:
            return None

        info = context.cask_index.lookup(bundle_id, app_path)
        if info is None:
            return None

        # A known cask missing from brew outdated is up to date; the raw
        # index comparison misfires for casks shipping several bundles
        if (
            context.homebrew_cask_token
            and context.brew_outdated is not None
            and info.token not in context.brew_outdated
        ):
            return None

        if not is_newer(current_version, info.version):
            return None

        logger.debug(
            "Homebrew API: %s has update %s -> %s (cask: %s)",
            bundle_id,
            current_version,
            info.version,
            info.token,
        )
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=info.version,
            source=SourceKind.HOMEBREW_API,
            download_url=info.url,
            release_notes_url=github_releases_url(context.github_repo),
        )


class HomebrewFormulaChecker(Checker):
    """Reports formulae that ``brew outdated --formula`` lists."""

    @property
    def source(self) -> SourceKind:
        return SourceKind.HOMEBREW_FORMULA

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return install_source is InstallSource.HOMEBREW_FORMULA

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        name = context.homebrew_formula_name
        if not name or context.brew_outdated_formulae is None:
            return None
        outdated = context.brew_outdated_formulae.get(name)
        if outdated is None:
            return None
        if current_version and not is_newer(
            current_version, outdated.current_version
        ):
            return None

        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=outdated.current_version,
            source=SourceKind.HOMEBREW_FORMULA,
            notes=None if context.xcode_clt_installed else XCODE_CLT_NOTE,
        )
