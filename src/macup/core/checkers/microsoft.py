"""Microsoft Office, Teams, OneDrive, Edge and VS Code.

Sources, first hit wins:

1. the community-maintained macadmins.software ``latest.xml`` feed
2. the cask index
3. ``brew outdated`` via the app's (or a well-known) cask token
4. a changed cask fingerprint, reported as ``"<current> (newer build)"``
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from pathlib import Path

import aiohttp

from macup.constants import MACADMINS_OFFICE_FEED_URL
from macup.core.cache.fingerprint import FingerprintVerdict
from macup.core.checkers.base import Checker, fetch_text, github_releases_url
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.logger import get_logger

logger = get_logger(__name__)

# bundle id -> package title keyword in latest.xml
MICROSOFT_APPS = {
    "com.microsoft.Word": "word",
    "com.microsoft.Excel": "excel",
    "com.microsoft.Powerpoint": "powerpoint",
    "com.microsoft.Outlook": "outlook",
    "com.microsoft.onenote.mac": "onenote",
    "com.microsoft.teams2": "teams",
    "com.microsoft.teams": "teams",
    "com.microsoft.OneDrive": "onedrive",
    "com.microsoft.edgemac": "edge",
    "com.microsoft.VSCode": "vscode",
}

MICROSOFT_CASK_TOKENS = {
    "com.microsoft.Word": "microsoft-word",
    "com.microsoft.Excel": "microsoft-excel",
    "com.microsoft.Powerpoint": "microsoft-powerpoint",
    "com.microsoft.Outlook": "microsoft-outlook",
    "com.microsoft.onenote.mac": "microsoft-onenote",
    "com.microsoft.teams2": "microsoft-teams",
    "com.microsoft.OneDrive": "microsoft-onedrive",
    "com.microsoft.edgemac": "microsoft-edge",
    "com.microsoft.VSCode": "visual-studio-code",
}

_OFFICE_NOTES = (
    "https://learn.microsoft.com/en-us/officeupdates/"
    "release-notes-office-for-mac"
)
RELEASE_NOTES_URLS = {
    "com.microsoft.Word": _OFFICE_NOTES,
    "com.microsoft.Excel": _OFFICE_NOTES,
    "com.microsoft.Powerpoint": _OFFICE_NOTES,
    "com.microsoft.Outlook": _OFFICE_NOTES,
    "com.microsoft.onenote.mac": _OFFICE_NOTES,
    "com.microsoft.teams2": (
        "https://learn.microsoft.com/en-us/officeupdates/teams-app-versioning"
    ),
    "com.microsoft.teams": (
        "https://learn.microsoft.com/en-us/officeupdates/teams-app-versioning"
    ),
    "com.microsoft.edgemac": (
        "https://learn.microsoft.com/en-us/deployedge/"
        "microsoft-edge-relnote-stable-channel"
    ),
    "com.microsoft.VSCode": "https://code.visualstudio.com/updates",
    "com.microsoft.OneDrive": (
        "https://support.microsoft.com/en-us/office/"
        "onedrive-release-notes-845dcf18-f921-435e-bf28-4e24b95e5fc0"
    ),
}


def find_feed_version(xml: str, app_key: str, bundle_id: str) -> str | None:
    """Return the version of the first matching ``<package>`` in the feed.

    A package matches when its title contains ``app_key`` or its
    ``cfbundleidentifier`` equals ``bundle_id`` (both case-insensitive).
    """
    try:
        root = ET.fromstring(xml)  # noqa: S314
    except ET.ParseError as e:
        logger.warning("macadmins feed is not valid XML: %s", e)
        return None

    key = app_key.lower()
    for package in root.iter("package"):
        title = (package.findtext("title") or "").strip().lower()
        cf_bundle = (package.findtext("cfbundleidentifier") or "").strip()
        version = (package.findtext("version") or "").strip()
        if not version:
            continue
        if key in title or (
            cf_bundle and cf_bundle.lower() == bundle_id.lower()
        ):
            return version
    return None


class MicrosoftChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.MICROSOFT

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return (
            install_source is not InstallSource.MAS
            and bundle_id in MICROSOFT_APPS
        )

    def _update(
        self,
        bundle_id: str,
        current_version: str,
        available: str,
        *,
        release_notes_url: str | None = None,
        notes: str | None = None,
    ) -> UpdateInfo:
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=available,
            source=SourceKind.MICROSOFT,
            release_notes_url=release_notes_url
            or RELEASE_NOTES_URLS.get(bundle_id),
            notes=notes,
        )

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        app_key = MICROSOFT_APPS.get(bundle_id)
        if app_key is None:
            return None
        if current_version is None:
            logger.info("Microsoft: no current version for %s", bundle_id)
            return None

        try:
            feed = await fetch_text(session, MACADMINS_OFFICE_FEED_URL)
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.info("macadmins feed unavailable for %s: %s", bundle_id, e)
            feed = None
        if feed is not None:
            version = find_feed_version(feed, app_key, bundle_id)
            if version and is_newer(current_version, version):
                logger.info(
                    "Microsoft: %s update found via macadmins feed: %s -> %s",
                    bundle_id,
                    current_version,
                    version,
                )
                return self._update(bundle_id, current_version, version)

        if context.cask_index is not None:
            info = context.cask_index.lookup(bundle_id, app_path)
            if info is not None and is_newer(current_version, info.version):
                logger.info(
                    "Microsoft (cask index): %s has update %s -> %s",
                    bundle_id,
                    current_version,
                    info.version,
                )
                return self._update(
                    bundle_id,
                    current_version,
                    info.version,
                    release_notes_url=github_releases_url(context.github_repo),
                )

        token = context.homebrew_cask_token or MICROSOFT_CASK_TOKENS.get(
            bundle_id
        )
        if token and context.brew_outdated is not None:
            outdated = context.brew_outdated.get(token)
            if outdated is not None and is_newer(
                current_version, outdated.current_version
            ):
                logger.info(
                    "Microsoft (brew outdated): %s via '%s' "
                    "(installed: %s, available: %s)",
                    bundle_id,
                    token,
                    outdated.installed_versions,
                    outdated.current_version,
                )
                return self._update(
                    bundle_id,
                    current_version,
                    outdated.current_version,
                    notes="Update available via Homebrew",
                )

        if token and context.fingerprints is not None:
            verdict = await context.fingerprints.check(token)
            if verdict is FingerprintVerdict.CHANGED:
                logger.info(
                    "Microsoft: %s cask hash changed, update likely", bundle_id
                )
                return self._update(
                    bundle_id,
                    current_version,
                    f"{current_version} (newer build)",
                    notes="Update detected via cask SHA change",
                )

        logger.info("Microsoft: %s is up to date (%s)", bundle_id, current_version)
        return None
