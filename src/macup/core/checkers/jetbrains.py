"""JetBrains IDE checker using the products releases API."""

from __future__ import annotations

from pathlib import Path

import aiohttp

from macup.constants import JETBRAINS_RELEASES_URL
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

JETBRAINS_PRODUCT_CODES = {
    "com.jetbrains.intellij": "IIU",
    "com.jetbrains.intellij.ce": "IIC",
    "com.jetbrains.WebStorm": "WS",
    "com.jetbrains.PhpStorm": "PS",
    "com.jetbrains.CLion": "CL",
    "com.jetbrains.goland": "GO",
    "com.jetbrains.rider": "RD",
    "com.jetbrains.pycharm": "PY",
    "com.jetbrains.pycharm.ce": "PC",
    "com.jetbrains.rubymine": "RM",
    "com.jetbrains.datagrip": "DG",
    "com.jetbrains.fleet": "FL",
    "com.jetbrains.toolbox": "TBA",
}


class JetBrainsChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.JETBRAINS

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return bundle_id in JETBRAINS_PRODUCT_CODES

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        code = JETBRAINS_PRODUCT_CODES.get(bundle_id)
        if code is None or current_version is None:
            return None

        payload = await fetch_json(
            session,
            JETBRAINS_RELEASES_URL,
            {"code": code, "latest": "true", "type": "release"},
        )
        # {"IIU": [{"version": "2024.3", "downloads": {"mac": {...}}}]}
        releases = (payload or {}).get(code) or []
        if not releases:
            return None
        release = releases[0]
        latest = release.get("version")
        if not isinstance(latest, str) or not is_newer(
            current_version, latest
        ):
            return None

        downloads = release.get("downloads") or {}
        download_url = (downloads.get("macM1") or downloads.get("mac") or {}).get(
            "link"
        )
        logger.info(
            "JetBrains: %s has update %s -> %s (%s)",
            bundle_id,
            current_version,
            latest,
            code,
        )
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=latest,
            source=SourceKind.JETBRAINS,
            download_url=download_url,
            release_notes_url=release.get("notesLink"),
        )
