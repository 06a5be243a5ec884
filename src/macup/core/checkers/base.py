"""Base checker abstract class."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import aiohttp
import orjson

from macup.domain.models import (
    CheckContext,
    InstallSource,
    SourceKind,
    UpdateInfo,
)
from macup.logger import get_logger

logger = get_logger(__name__)


class Checker(ABC):
    """One update ecosystem's way of finding a newer version.

    ``can_handle`` must stay cheap and synchronous: it only looks at the
    bundle id, the bundle on disk and the install provenance. ``check``
    may perform I/O and is expected to raise on unusable payloads; the
    dispatcher turns any error into "nothing found".
    """

    @property
    @abstractmethod
    def source(self) -> SourceKind:
        """Return the source kind this checker reports."""

    @abstractmethod
    def can_handle(
        self, bundle_id: str, app_path: Path, install_source: InstallSource
    ) -> bool:
        """Return True if this checker applies to the app."""

    @abstractmethod
    async def check(
        self,
        bundle_id: str,
        app_path: Path,
        current_version: str | None,
        session: aiohttp.ClientSession,
        context: CheckContext,
    ) -> UpdateInfo | None:
        """Look for a newer version of the app.

        Args:
            bundle_id: App bundle identifier
            app_path: Path of the ``.app`` bundle
            current_version: Installed version, if known
            session: Shared HTTP session
            context: Per-cycle pre-fetched data

        Returns:
            UpdateInfo when a strictly newer version exists, else None

        """

    @property
    def is_local(self) -> bool:
        """Return True when the checker only reads pre-fetched data."""
        return self.source.is_local


def github_releases_url(repo: str | None) -> str | None:
    """Return the releases page of ``owner/repo``, if a repo is known."""
    return f"https://github.com/{repo}/releases" if repo else None


async def fetch_json(
    session: aiohttp.ClientSession,
    url: str,
    params: dict[str, str] | None = None,
) -> Any | None:
    """GET ``url`` and decode the JSON body.

    Returns:
        Decoded payload, or None for a non-200 response

    Raises:
        orjson.JSONDecodeError: If a 200 body is not JSON

    """
    async with session.get(url, params=params) as response:
        if response.status != 200:  # noqa: PLR2004
            logger.debug("GET %s returned HTTP %d", url, response.status)
            return None
        return orjson.loads(await response.read())


async def fetch_text(session: aiohttp.ClientSession, url: str) -> str | None:
    """GET ``url`` as text, or None for a non-200 response."""
    async with session.get(url) as response:
        if response.status != 200:  # noqa: PLR2004
            logger.debug("GET %s returned HTTP %d", url, response.status)
            return None
        return await response.text()
