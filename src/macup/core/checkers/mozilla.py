"""Firefox and Thunderbird checker using Mozilla's product-details feed."""

from __future__ import annotations

from pathlib import Path
from typing import NamedTuple

import aiohttp

from macup.constants import MOZILLA_PRODUCT_DETAILS_URL
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


class MozillaProduct(NamedTuple):
    feed: str
    version_key: str
    notes_path: str


MOZILLA_PRODUCTS: dict[str, MozillaProduct] = {
    "org.mozilla.firefox": MozillaProduct(
        "firefox_versions.json", "LATEST_FIREFOX_VERSION", "firefox"
    ),
    "org.mozilla.nightly": MozillaProduct(
        "firefox_versions.json", "LATEST_FIREFOX_NIGHTLY_VERSION", "firefox"
    ),
    "org.mozilla.firefoxdeveloperedition": MozillaProduct(
        "firefox_versions.json", "LATEST_FIREFOX_DEVEL_VERSION", "firefox"
    ),
    "org.mozilla.thunderbird": MozillaProduct(
        "thunderbird_versions.json",
        "LATEST_THUNDERBIRD_VERSION",
        "thunderbird",
    ),
}


class MozillaChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.MOZILLA

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return bundle_id in MOZILLA_PRODUCTS

    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        product = MOZILLA_PRODUCTS.get(bundle_id)
        if product is None or current_version is None:
            return None

        versions = await fetch_json(
            session, f"{MOZILLA_PRODUCT_DETAILS_URL}/{product.feed}"
        )
        available = (versions or {}).get(product.version_key)
        if not isinstance(available, str) or not is_newer(
            current_version, available
        ):
            return None

        logger.info(
            "Mozilla: %s has update %s -> %s",
            bundle_id,
            current_version,
            available,
        )
        return UpdateInfo(
            bundle_id=bundle_id,
            current_version=current_version,
            available_version=available,
            source=SourceKind.MOZILLA,
            release_notes_url=(
                f"https://www.mozilla.org/en-US/{product.notes_path}/"
                f"{available}/releasenotes/"
            ),
        )
