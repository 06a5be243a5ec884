"""Electron apps updated through electron-updater.

electron-builder writes the app's update feed configuration into
``Contents/Resources/app-update.yml``. GitHub-hosted feeds are checked
through the releases API; ``generic`` feeds publish ``latest-mac.yml``
next to the installers. S3 and other authenticated providers are skipped.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import aiohttp
import yaml

from macup.core.bundle import is_electron_app
from macup.core.checkers.base import Checker, fetch_text
from macup.core.checkers.github import check_github_release
from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.domain.version import is_newer
from macup.logger import get_logger

logger = get_logger(__name__)

UPDATE_CONFIG_FILES = ("app-update.yml", "dev-app-update.yml")


def load_update_config(app_path: Path) -> dict[str, Any] | None:
    """Read the electron-updater feed configuration of a bundle."""
    resources = app_path / "Contents" / "Resources"
    for name in UPDATE_CONFIG_FILES:
        config_path = resources / name
        if not config_path.is_file():
            continue
        try:
            with config_path.open(encoding="utf-8") as fh:
                data = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as e:
            logger.debug("Cannot read %s: %s", config_path, e)
            return None
        if isinstance(data, dict) and data.get("provider"):
            return data
        return None
    return None


def parse_latest_mac(body: str, base_url: str) -> tuple[str, str | None] | None:
    """Extract ``(version, download_url)`` from a ``latest-mac.yml``.

    Raises:
        yaml.YAMLError: If the body is not YAML

    """
    data = yaml.safe_load(body)
    if not isinstance(data, dict) or data.get("version") is None:
        return None
    version = str(data["version"]).strip()

    files = data.get("files") or []
    relative = None
    if files and isinstance(files[0], dict):
        relative = files[0].get("url")
    relative = relative or data.get("path")
    download_url = None
    if relative:
        relative = str(relative)
        download_url = (
            relative
            if relative.startswith(("http://", "https://"))
            else f"{base_url}/{relative}"
        )
    return version, download_url


class ElectronChecker(Checker):
    @property
    def source(self) -> SourceKind:
        return SourceKind.ELECTRON

    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        return is_electron_app(app_path)

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
        config = await asyncio.to_thread(load_update_config, app_path)
        if config is None:
            return None

        provider = str(config["provider"])
        if provider == "github":
            owner, repo = config.get("owner"), config.get("repo")
            if not owner or not repo or context.github is None:
                return None
            return await check_github_release(
                context.github,
                f"{owner}/{repo}",
                bundle_id,
                current_version,
                source=SourceKind.ELECTRON,
            )

        if provider == "generic":
            base_url = str(config.get("url") or "").rstrip("/")
            if not base_url:
                return None
            try:
                body = await fetch_text(session, f"{base_url}/latest-mac.yml")
            except (aiohttp.ClientError, TimeoutError) as e:
                logger.debug("latest-mac.yml for %s: %s", bundle_id, e)
                return None
            if body is None:
                return None
            parsed = parse_latest_mac(body, base_url)
            if parsed is None:
                return None
            available, download_url = parsed
            if not is_newer(current_version, available):
                return None
            logger.info(
                "Electron (generic): %s has update %s -> %s",
                bundle_id,
                current_version,
                available,
            )
            return UpdateInfo(
                bundle_id=bundle_id,
                current_version=current_version,
                available_version=available,
                source=SourceKind.ELECTRON,
                download_url=download_url,
            )

        logger.debug(
            "Electron: %s uses unsupported provider %s", bundle_id, provider
        )
        return None
