"""GitHub Releases client with ETag revalidation and rate-limit tracking.

Only ``releases/latest`` is queried. Every response with an ETag is kept
in the :class:`~macup.core.cache.etag.ETagCache`; a later 304 is served
from the stored body. When GitHub answers 403 with no requests left, the
client stops calling the API for the rest of the cycle.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import aiohttp
import orjson

from macup.constants import GITHUB_API_URL
from macup.core.auth import GitHubAuthManager
from macup.core.cache.etag import ETagCache
from macup.logger import get_logger

logger = get_logger(__name__)

MACOS_KEYWORDS = (
    "macos",
    "mac",
    "darwin",
    "osx",
    "universal",
    "arm64",
    "aarch64",
    "x86_64",
)
PREFERRED_ARCH_KEYWORDS = ("universal", "arm64", "aarch64")
INSTALLER_EXTENSIONS = (".dmg", ".zip", ".pkg")
NON_MAC_MARKERS = ("linux", "windows", ".exe", ".deb", ".rpm")


@dataclass(frozen=True)
class ReleaseAsset:
    """Downloadable file attached to a release."""

    name: str
    browser_download_url: str
    content_type: str | None = None


@dataclass(frozen=True)
class GitHubRelease:
    """The fields of a GitHub release macup uses."""

    tag_name: str
    html_url: str
    prerelease: bool = False
    draft: bool = False
    body: str | None = None
    assets: tuple[ReleaseAsset, ...] = field(default_factory=tuple)

    @property
    def version(self) -> str:
        """Tag name without a leading ``v``."""
        return self.tag_name.removeprefix("v")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GitHubRelease:
        """Build a release from the REST API payload.

        Raises:
            KeyError: If ``tag_name`` or ``html_url`` is missing

        """
        return cls(
            tag_name=data["tag_name"],
            html_url=data["html_url"],
            prerelease=bool(data.get("prerelease", False)),
            draft=bool(data.get("draft", False)),
            body=data.get("body"),
            assets=tuple(
                ReleaseAsset(
                    name=asset["name"],
                    browser_download_url=asset["browser_download_url"],
                    content_type=asset.get("content_type"),
                )
                for asset in data.get("assets") or []
                if "name" in asset and "browser_download_url" in asset
            ),
        )


def find_macos_asset(assets: tuple[ReleaseAsset, ...]) -> ReleaseAsset | None:
    """Pick the best macOS installer from a release's assets.

    Order of preference:
        1. macOS keyword, installer extension and a universal/arm64 build
        2. macOS keyword and installer extension
        3. any ``.dmg`` or ``.pkg`` not marked for another OS
    """

    def mac_installer(name: str) -> bool:
        return any(kw in name for kw in MACOS_KEYWORDS) and name.endswith(
            INSTALLER_EXTENSIONS
        )

    lowered = [(asset, asset.name.lower()) for asset in assets]

    for asset, name in lowered:
        if mac_installer(name) and any(
            kw in name for kw in PREFERRED_ARCH_KEYWORDS
        ):
            return asset

    for asset, name in lowered:
        if mac_installer(name):
            return asset

    for asset, name in lowered:
        if name.endswith((".dmg", ".pkg")) and not any(
            marker in name for marker in NON_MAC_MARKERS
        ):
            return asset

    return None


class GitHubReleaseClient:
    """Fetches the latest release of a repository, once per cycle per repo."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        etag_cache: ETagCache,
        auth_manager: GitHubAuthManager | None = None,
        api_url: str = GITHUB_API_URL,
    ) -> None:
        """Initialize the client.

        Args:
            session: Shared HTTP session
            etag_cache: Conditional-request cache keyed by ``owner/repo``
            auth_manager: Applies the stored token and tracks rate limits
            api_url: GitHub REST API root

        """
        self.session = session
        self.etag_cache = etag_cache
        self.auth_manager = auth_manager or GitHubAuthManager()
        self.api_url = api_url.rstrip("/")
        self.rate_limited = False

    def reset_rate_limit(self) -> None:
        """Clear the rate-limit flag at the start of a cycle."""
        self.rate_limited = False

    async def latest_release(self, repo: str) -> GitHubRelease | None:
        """Return the latest published release of ``owner/repo``.

        Returns:
            The release, or None when rate limited, not found, or on any
            transient failure

        Raises:
            orjson.JSONDecodeError: If a 200 body is not JSON
            KeyError: If the release payload lacks required fields

        """
        if self.rate_limited:
            logger.debug("Skipping GitHub check for %s: rate limited", repo)
            return None

        headers = {"Accept": "application/vnd.github+json"}
        self.auth_manager.apply_auth(headers)
        await self.etag_cache.load()
        cached = self.etag_cache.get(repo)
        if cached is not None:
            headers["If-None-Match"] = cached.etag

        url = f"{self.api_url}/repos/{repo}/releases/latest"
        try:
            async with self.session.get(url, headers=headers) as response:
                self.auth_manager.update_rate_limit_info(response.headers)
                status = response.status
                if status == 403:  # noqa: PLR2004
                    if response.headers.get("X-RateLimit-Remaining") == "0":
                        logger.warning(
                            "GitHub API rate limit reached, skipping "
                            "remaining GitHub checks"
                        )
                        self.rate_limited = True
                    return None
                if status == 304:  # noqa: PLR2004
                    if cached is None:
                        return None
                    logger.debug("GitHub %s not modified (304)", repo)
                    body = cached.response_body
                elif status == 200:  # noqa: PLR2004
                    body = await response.text()
                    etag = response.headers.get("ETag")
                    if etag:
                        self.etag_cache.put(repo, etag, body)
                else:
                    logger.debug("GitHub %s returned HTTP %d", repo, status)
                    return None
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.debug("GitHub API request failed for %s: %s", repo, e)
            return None

        return GitHubRelease.from_dict(orjson.loads(body))

    async def fetch_release_notes(self, repo: str) -> str | None:
        """Return the body of the latest release, reusing the ETag cache.

        Never raises; notes are a best-effort enrichment.
        """
        try:
            release = await self.latest_release(repo)
        except (orjson.JSONDecodeError, KeyError, TypeError) as e:
            logger.debug("Unusable release payload for %s: %s", repo, e)
            return None
        if release is None or not release.body:
            return None
        return release.body
