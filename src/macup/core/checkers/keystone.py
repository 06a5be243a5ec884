"""Google (Keystone-updated) apps.

Chrome releases are published on Chromium Dash; other Google apps fall
back to the cask index.
"""

from __future__ import annotations

from pathlib import Path

import aiohttp

from macup.constants import CHROMIUM_DASH_URL
from macup.core.checkers.base import Checker, fetch_json
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.logger import get_logger

logger = get_logger(__name__)

KEYSTONE_BUNDLE_IDS = frozenset(
    {
        "com.google.Chrome",
        "com.google.Chrome.canary",
        "com.google.drivefs",
        "com.google.GoogleUpdater",
    }
)
CHROME_CHANNELS = {
    "com.google.Chrome": "Stable",
    "com.google.Chrome.canary": "Canary",
}
CHROME_RELEASES_BLOG = "https://chromereleases.googleblog.com/"


class KeystoneChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.KEYSTONE

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return (
            install_source is not InstallSource.MAS
            and bundle_id in KEYSTONE_BUNDLE_IDS
        )

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        if current_version is None:
            return None

        channel = CHROME_CHANNELS.get(bundle_id)
        if channel is not None:
            releases = await fetch_json(
                session,
                CHROMIUM_DASH_URL,
                {"channel": channel, "platform": "Mac", "num": "1"},
            )
            if not releases:
                return None
            latest = releases[0].get("version")
            if not isinstance(latest, str) or not is_newer(
                current_version, latest
            ):
                return None
            logger.info(
                "Keystone: %s has update %s -> %s",
                bundle_id,
                current_version,
                latest,
            )
            return UpdateInfo(
                bundle_id=bundle_id,
                current_version=current_version,
                available_version=latest,
                source=SourceKind.KEYSTONE,
                release_notes_url=CHROME_RELEASES_BLOG,
            )

        if context.cask_index is None:
            return None
        info = context.cask_index.lookup(bundle_id, app_path)
        if info is None or not is_newer(current_version, info.version):
            return None
        logger.info(
            "Keystone (cask index): %s has update %s -> %s",
            bundle_id,
            current_version,
            info.version,
        )
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=info.version,
            source=SourceKind.KEYSTONE,
        )
