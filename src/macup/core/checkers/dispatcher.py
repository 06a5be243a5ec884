"""Checker registry and two-tier dispatch.

For one app the dispatcher:

1. re-reads the installed version from the bundle (a stored version may
   be stale) and prefers it over the caller's
2. keeps the checkers whose ``can_handle`` accepts the app
3. runs the local tier (pre-fetched Homebrew data) one by one in
   registration order and stops at the first hit
4. otherwise runs the whole network tier concurrently, waits for every
   checker, and takes the first hit in registration order
5. enriches a hit that has no release notes

A checker that raises is logged and counts as "nothing found".
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import replace
from pathlib import Path

import aiohttp

from macup.core.bundle import PlistBundleReader
from macup.core.checkers.adobe import AdobeCCChecker
from macup.core.checkers.base import Checker, github_releases_url
from macup.core.checkers.electron import ElectronChecker
from macup.core.checkers.github import GitHubReleasesChecker
from macup.core.checkers.homebrew import (
    HomebrewApiChecker,
    HomebrewCaskChecker,
    HomebrewFormulaChecker,
)
from macup.core.checkers.jetbrains import JetBrainsChecker
from macup.core.checkers.keystone import KeystoneChecker
from macup.core.checkers.mas import MacAppStoreChecker
from macup.core.checkers.microsoft import MicrosoftChecker
from macup.core.checkers.mozilla import MozillaChecker
from macup.core.checkers.sparkle import SparkleChecker, fetch_sparkle_description
from macup.core.protocols.ports import BundleReader
from macup.domain.models import CheckContext, CheckerDiagnostic, UpdateInfo
from macup.domain.sanitize import sanitize_release_notes
from macup.logger import get_logger

logger = get_logger(__name__)


def default_checkers() -> list[Checker]:
    """Return every checker in registration (precedence) order."""
    return [
        SparkleChecker(),
        HomebrewCaskChecker(),
        HomebrewApiChecker(),
        MacAppStoreChecker(),
        MozillaChecker(),
        GitHubReleasesChecker(),
        ElectronChecker(),
        KeystoneChecker(),
        MicrosoftChecker(),
        JetBrainsChecker(),
        AdobeCCChecker(),
        HomebrewFormulaChecker(),
    ]


class _Outcome:
    """Result of running one checker: an update, nothing, or an error."""

    __slots__ = ("checker", "error", "update")

    def __init__(
        self,
        checker: Checker,
        update: UpdateInfo | None = None,
        error: Exception | None = None,
    ) -> None:
        self.checker = checker
        self.update = update
        self.error = error


class Dispatcher:
    """Runs the applicable checkers for an app and picks one result."""

    def __init__(
        self,
        checkers: Sequence[Checker] | None = None,
        bundle_reader: BundleReader | None = None,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            checkers: Checkers in precedence order (defaults to all)
            bundle_reader: Source of on-disk installed versions

        """
        self.checkers = (
            list(checkers) if checkers is not None else default_checkers()
        )
        self.bundle_reader = bundle_reader or PlistBundleReader()

    async def _effective_version(
        self, app_path: Path, supplied: str | None
    ) -> str | None:
        on_disk = await self.bundle_reader.read_version(app_path)
        if on_disk and on_disk != supplied:
            logger.debug(
                "Installed version of %s is %s (stored: %s)",
                app_path,
                on_disk,
                supplied,
            )
        return on_disk or supplied

    async def _run(
        self,
        checker: Checker,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> _Outcome:
        try:
            update = await checker.check(
                bundle_id, app_path, current_version, session, context
            )
        except Exception as e:
            logger.info(
                "%s check failed for %s: %s", checker.source.value, bundle_id, e
            )
            return _Outcome(checker, error=e)
        return _Outcome(checker, update=update)

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        """Find an update for one app.

        Returns:
            The winning, enriched UpdateInfo, or None

        """
        version = await self._effective_version(app_path, current_version)
        applicable = [
            c
            for c in self.checkers
            if c.can_handle(bundle_id, app_path, context.install_source)
        ]
        tried: list[str] = []

        found: UpdateInfo | None = None
        for checker in (c for c in applicable if c.is_local):
            tried.append(checker.source.value)
            outcome = await self._run(
                checker, bundle_id, app_path, version, session, context
            )
            if outcome.update is not None:
                found = outcome.update
                break

        if found is None:
            network = [c for c in applicable if not c.is_local]
            tried.extend(c.source.value for c in network)
            outcomes = await asyncio.gather(
                *(
                    self._run(c, bundle_id, app_path, version, session, context)
                    for c in network
                )
            )
            hits = [o for o in outcomes if o.update is not None]
            if hits:
                found = hits[0].update
                others = {
                    o.update.available_version
                    for o in hits[1:]
                    if o.update.available_version != found.available_version
                }
                if others:
                    logger.debug(
                        "Sources disagree for %s: %s chose %s, others %s",
                        bundle_id,
                        hits[0].checker.source.value,
                        found.available_version,
                        ", ".join(sorted(others)),
                    )

        if found is None:
            logger.info(
                "Update check for %s: no update found (tried: %s)",
                bundle_id,
                ", ".join(tried),
            )
            return None

        logger.info(
            "Update check for %s: %s -> found %s (tried: %s)",
            bundle_id,
            found.source.value,
            found.available_version,
            ", ".join(tried),
        )
        return await self.enrich(found, session, context)

    async def enrich(
        self,
        update: UpdateInfo,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo:
        """Attach sanitized release notes when the source gave none.

        Never fails: a found update stays found whatever happens here.
        """
        if update.release_notes:
            return replace(
                update, release_notes=sanitize_release_notes(update.release_notes)
            )

        try:
            if context.github_repo and context.github is not None:
                notes = await context.github.fetch_release_notes(
                    context.github_repo
                )
                if notes:
                    return replace(
                        update,
                        release_notes=sanitize_release_notes(notes),
                        release_notes_url=update.release_notes_url
                        or github_releases_url(context.github_repo),
                    )
            if context.sparkle_feed_url:
                notes = await fetch_sparkle_description(
                    context.sparkle_feed_url, session
                )
                if notes:
                    return replace(
                        update, release_notes=sanitize_release_notes(notes)
                    )
        except Exception as e:
            logger.debug("Release notes enrichment failed: %s", e)
        return update

    async def debug_check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> list[CheckerDiagnostic]:
        """Run every checker and report what each one concluded."""
        version = await self._effective_version(app_path, current_version)
        diagnostics = []
        for checker in self.checkers:
            if not checker.can_handle(
                bundle_id, app_path, context.install_source
            ):
                diagnostics.append(
                    CheckerDiagnostic(checker.source, False, "skipped")
                )
                continue
            outcome = await self._run(
                checker, bundle_id, app_path, version, session, context
            )
            if outcome.error is not None:
                result = f"error: {outcome.error}"
            elif outcome.update is not None:
                result = f"found: {outcome.update.available_version}"
            else:
                result = "not_found"
            diagnostics.append(CheckerDiagnostic(checker.source, True, result))
        return diagnostics
