"""Mac App Store checker using the public iTunes lookup API."""

from __future__ import annotations

from pathlib import Path

import aiohttp

from macup.constants import ITUNES_LOOKUP_URL
from macup.core.bundle import has_mas_receipt
from macup.core.checkers.base import Checker, fetch_json
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.exceptions import CheckerError


class MacAppStoreChecker(Checker):
    """Looks the bundle id up in the US storefront."""

    @property
    def source(self) -> SourceKind:
        return SourceKind.MAS

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return install_source is InstallSource.MAS or has_mas_receipt(
            app_path
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
        data = await fetch_json(
            session, ITUNES_LOOKUP_URL, {"bundleId": bundle_id, "country": "US"}
        )
        if not data or not data.get("resultCount") or not data.get("results"):
            return None

        result = data["results"][0]
        version = result.get("version")
        if not isinstance(version, str):
            raise CheckerError("lookup result has no version", target=bundle_id)
        if not is_newer(current_version, version):
            return None

        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=version,
            source=SourceKind.MAS,
            download_url=result.get("trackViewUrl"),
            release_notes=result.get("releaseNotes"),
        )
