"""Homebrew cask index built from ``formulae.brew.sh/api/cask.json``.

The index answers "which cask manages this app, and what version does it
ship" by bundle id or by ``.app`` filename. Snapshots are immutable: a
refresh builds a complete new :class:`CaskIndex` and swaps the reference,
so checkers reading the previous snapshot never see a half-built one.

Refresh policy:
    * a snapshot younger than the TTL is returned without any request
    * otherwise a conditional GET is sent with the last ETag
    * 304 only refreshes the timestamp of the current snapshot
    * any network or parse failure returns the previous snapshot
"""

from __future__ import annotations

import asyncio
import contextlib
import re
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any

import aiohttp
import orjson

from macup.constants import (
    CASK_INDEX_URL,
    DEFAULT_CASK_INDEX_TTL_HOURS,
    UNVERSIONED_SENTINEL,
)
from macup.domain.models import CaskVersionInfo
from macup.domain.version import strip_qualifier
from macup.logger import get_logger

logger = get_logger(__name__)

_GITHUB_PREFIX = "https://github.com/"
_NON_ALNUM_RE = re.compile(r"[\W_]+")
_SNAPSHOT_FORMAT = 1


def normalize_app_name(name: str) -> str:
    """Normalize an app name for matching.

    Examples:
        >>> normalize_app_name(" Firefox.app ")
        'firefox'

    """
    name = name.strip()
    name = name.removesuffix(".app")
    return name.lower()


def display_name_to_token(name: str) -> str:
    """Turn a display name into cask-token form.

    Examples:
        >>> display_name_to_token("Visual Studio Code")
        'visual-studio-code'

    """
    return _NON_ALNUM_RE.sub("-", name.lower()).strip("-")


def github_slug_from_url(url: str) -> str | None:
    """Extract ``owner/repo`` from a GitHub release or archive URL."""
    if not url.startswith(_GITHUB_PREFIX):
        return None
    parts = url[len(_GITHUB_PREFIX) :].split("/", 3)
    if (
        len(parts) >= 3  # noqa: PLR2004
        and parts[2] in ("releases", "archive")
        and parts[0]
        and parts[1]
    ):
        return f"{parts[0]}/{parts[1]}"
    return None


def github_slug_from_homepage(url: str) -> str | None:
    """Extract ``owner/repo`` from a homepage that is a repository root."""
    if not url.startswith(_GITHUB_PREFIX):
        return None
    parts = url[len(_GITHUB_PREFIX) :].rstrip("/").split("/", 2)
    if len(parts) == 2 and parts[0] and parts[1]:  # noqa: PLR2004
        return f"{parts[0]}/{parts[1]}"
    return None


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, list):
        return value
    if value is None:
        return []
    return [value]


def _quit_bundle_ids(artifact: dict[str, Any]) -> Iterable[str]:
    """Yield lower-cased bundle ids from ``uninstall``/``zap`` quit stanzas."""
    for stanza_name in ("uninstall", "zap"):
        for stanza in _as_list(artifact.get(stanza_name)):
            if not isinstance(stanza, dict):
                continue
            for bundle_id in _as_list(stanza.get("quit")):
                if isinstance(bundle_id, str) and bundle_id:
                    yield bundle_id.lower()


def _freeze(mapping: dict[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(mapping)


@dataclass(frozen=True)
class CaskIndex:
    """Immutable lookup tables derived from one cask payload.

    Attributes:
        by_bundle_id: Bundle id to version info, versioned casks only
        by_app_name: Normalized app name to version info, versioned only
        all_tokens_by_bundle_id: Bundle id to token, including ``latest``
        all_tokens_by_app_name: App name to token, including ``latest``
        url_by_token: Cask token to download URL
        github_repo_by_bundle_id: Bundle id to ``owner/repo`` slug

    """

    by_bundle_id: Mapping[str, CaskVersionInfo]
    by_app_name: Mapping[str, CaskVersionInfo]
    all_tokens_by_bundle_id: Mapping[str, str]
    all_tokens_by_app_name: Mapping[str, str]
    url_by_token: Mapping[str, str]
    github_repo_by_bundle_id: Mapping[str, str]

    @classmethod
    def empty(cls) -> CaskIndex:
        """Return an index with no entries."""
        return cls.build([])

    @classmethod
    def build(cls, casks: Iterable[dict[str, Any]]) -> CaskIndex:
        """Build the index from the parsed ``cask.json`` array.

        Records with no token or no version are skipped. Unversioned
        (``latest``) casks only populate the token and URL maps.
        """
        by_bundle_id: dict[str, CaskVersionInfo] = {}
        by_app_name: dict[str, CaskVersionInfo] = {}
        tokens_by_bundle_id: dict[str, str] = {}
        tokens_by_app_name: dict[str, str] = {}
        url_by_token: dict[str, str] = {}
        github_repos: dict[str, str] = {}
        total = 0

        for cask in casks:
            total += 1
            token = cask.get("token")
            raw_version = cask.get("version")
            if not isinstance(token, str) or not isinstance(raw_version, str):
                continue
            version = strip_qualifier(raw_version)
            url = cask.get("url") if isinstance(cask.get("url"), str) else None
            if url:
                url_by_token[token] = url

            is_unversioned = version == UNVERSIONED_SENTINEL
            slug = None
            if not is_unversioned:
                slug = github_slug_from_url(url or "")
                homepage = cask.get("homepage")
                if slug is None and isinstance(homepage, str):
                    slug = github_slug_from_homepage(homepage)

            artifacts = cask.get("artifacts")
            if not isinstance(artifacts, list):
                continue

            info = (
                None
                if is_unversioned
                else CaskVersionInfo(
                    token=token,
                    version=version,
                    url=url,
                    sha256=cask.get("sha256")
                    if isinstance(cask.get("sha256"), str)
                    else None,
                )
            )

            cask_bundle_ids: list[str] = []
            for artifact in artifacts:
                if not isinstance(artifact, dict):
                    continue
                for app_name in _as_list(artifact.get("app")):
                    if not isinstance(app_name, str):
                        continue
                    normalized = normalize_app_name(app_name)
                    if not normalized:
                        continue
                    tokens_by_app_name.setdefault(normalized, token)
                    if info is not None:
                        by_app_name.setdefault(normalized, info)
                for bundle_id in _quit_bundle_ids(artifact):
                    tokens_by_bundle_id.setdefault(bundle_id, token)
                    if info is not None:
                        by_bundle_id.setdefault(bundle_id, info)
                    cask_bundle_ids.append(bundle_id)

            if slug:
                for bundle_id in cask_bundle_ids:
                    github_repos.setdefault(bundle_id, slug)

        logger.info(
            "Homebrew cask index: %d casks, %d by bundle id "
            "(%d incl. latest), %d by app name (%d incl. latest), "
            "%d GitHub repos discovered",
            total,
            len(by_bundle_id),
            len(tokens_by_bundle_id),
            len(by_app_name),
            len(tokens_by_app_name),
            len(github_repos),
        )
        return cls(
            by_bundle_id=_freeze(by_bundle_id),
            by_app_name=_freeze(by_app_name),
            all_tokens_by_bundle_id=_freeze(tokens_by_bundle_id),
            all_tokens_by_app_name=_freeze(tokens_by_app_name),
            url_by_token=_freeze(url_by_token),
            github_repo_by_bundle_id=_freeze(github_repos),
        )

    def lookup(self, bundle_id: str, app_path: Path) -> CaskVersionInfo | None:
        """Find versioned cask info by bundle id, then by app filename."""
        info = self.by_bundle_id.get(bundle_id.lower())
        if info is not None:
            return info
        return self.by_app_name.get(normalize_app_name(app_path.name))

    def lookup_token(self, bundle_id: str, app_path: Path) -> str | None:
        """Find the managing cask token, including unversioned casks.

        Tries the bundle id, the app filename, then the filename rewritten
        in cask-token style (``Visual Studio Code`` -> ``visual-studio-code``).
        """
        token = self.all_tokens_by_bundle_id.get(bundle_id.lower())
        if token is not None:
            return token
        normalized = normalize_app_name(app_path.name)
        if not normalized:
            return None
        token = self.all_tokens_by_app_name.get(normalized)
        if token is not None:
            return token
        return self.all_tokens_by_app_name.get(
            display_name_to_token(normalized)
        )

    def github_repo(self, bundle_id: str) -> str | None:
        """Return the GitHub slug discovered for ``bundle_id``."""
        return self.github_repo_by_bundle_id.get(bundle_id.lower())

    def to_dict(self) -> dict[str, Any]:
        """Serialize the index for the on-disk snapshot."""

        def infos(mapping: Mapping[str, CaskVersionInfo]) -> dict[str, Any]:
            return {
                key: {
                    "token": info.token,
                    "version": info.version,
                    "url": info.url,
                    "sha256": info.sha256,
                }
                for key, info in mapping.items()
            }

        return {
            "by_bundle_id": infos(self.by_bundle_id),
            "by_app_name": infos(self.by_app_name),
            "all_tokens_by_bundle_id": dict(self.all_tokens_by_bundle_id),
            "all_tokens_by_app_name": dict(self.all_tokens_by_app_name),
            "url_by_token": dict(self.url_by_token),
            "github_repo_by_bundle_id": dict(self.github_repo_by_bundle_id),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> CaskIndex:
        """Rebuild an index written by :meth:`to_dict`.

        Raises:
            KeyError: If a table is missing
            TypeError: If a table has the wrong shape

        """

        def infos(raw: Mapping[str, Any]) -> dict[str, CaskVersionInfo]:
            return {key: CaskVersionInfo(**value) for key, value in raw.items()}

        return cls(
            by_bundle_id=_freeze(infos(data["by_bundle_id"])),
            by_app_name=_freeze(infos(data["by_app_name"])),
            all_tokens_by_bundle_id=_freeze(
                dict(data["all_tokens_by_bundle_id"])
            ),
            all_tokens_by_app_name=_freeze(
                dict(data["all_tokens_by_app_name"])
            ),
            url_by_token=_freeze(dict(data["url_by_token"])),
            github_repo_by_bundle_id=_freeze(
                dict(data["github_repo_by_bundle_id"])
            ),
        )


@dataclass(frozen=True)
class _Snapshot:
    index: CaskIndex
    etag: str | None
    fetched_at: float


def _build_from_payload(body: bytes) -> CaskIndex:
    casks = orjson.loads(body)
    if not isinstance(casks, list):
        msg = "cask index payload is not a JSON array"
        raise TypeError(msg)
    return CaskIndex.build(casks)


class CaskIndexCache:
    """TTL and ETag cache holding the current :class:`CaskIndex` snapshot.

    Readers take :attr:`index` without locking. Refreshes are serialized
    by an ``asyncio.Lock`` and publish a new snapshot by reference swap.
    """

    def __init__(
        self,
        cache_file: Path | None = None,
        ttl_hours: float = DEFAULT_CASK_INDEX_TTL_HOURS,
        url: str = CASK_INDEX_URL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the cache.

        Args:
            cache_file: Snapshot persisted between runs; None keeps it in
                memory only
            ttl_hours: Age below which no request is made
            url: Endpoint serving the full cask array
            clock: Wall-clock source, replaceable in tests

        """
        self.cache_file = cache_file
        self.ttl_seconds = ttl_hours * 3600
        self.url = url
        self._clock = clock
        self._snapshot: _Snapshot | None = None
        self._loaded = cache_file is None
        self._lock = asyncio.Lock()

    @property
    def index(self) -> CaskIndex | None:
        """Current snapshot, or None before the first successful fetch."""
        snapshot = self._snapshot
        return snapshot.index if snapshot else None

    @property
    def etag(self) -> str | None:
        """ETag of the current snapshot."""
        snapshot = self._snapshot
        return snapshot.etag if snapshot else None

    def is_fresh(self) -> bool:
        """Return True while the snapshot is younger than the TTL."""
        snapshot = self._snapshot
        return (
            snapshot is not None
            and self._clock() - snapshot.fetched_at < self.ttl_seconds
        )

    def invalidate(self) -> None:
        """Force the next :meth:`get` to revalidate with the server."""
        snapshot = self._snapshot
        if snapshot is not None:
            self._snapshot = replace(snapshot, fetched_at=0.0)

    async def get(self, session: aiohttp.ClientSession) -> CaskIndex | None:
        """Return a current index, refreshing it when the TTL has expired.

        Args:
            session: HTTP session used for the conditional fetch

        Returns:
            The freshest available index, or None if none was ever built

        """
        if not self._loaded:
            await self._load_from_disk()
        if self.is_fresh():
            logger.info("Homebrew cask index cache hit")
            return self.index

        async with self._lock:
            # Another task may have refreshed while we waited
            if self.is_fresh():
                return self.index
            await self._refresh(session)
        return self.index

    async def _refresh(self, session: aiohttp.ClientSession) -> None:
        previous = self._snapshot
        headers = {}
        if previous is not None and previous.etag:
            headers["If-None-Match"] = previous.etag

        try:
            async with session.get(self.url, headers=headers) as response:
                if response.status == 304 and previous is not None:  # noqa: PLR2004
                    logger.info("Homebrew cask index unchanged (304)")
                    self._snapshot = replace(
                        previous, fetched_at=self._clock()
                    )
                    await self._save_to_disk()
                    return
                if response.status != 200:  # noqa: PLR2004
                    logger.warning(
                        "Homebrew cask index returned status %d",
                        response.status,
                    )
                    return
                new_etag = response.headers.get("ETag")
                body = await response.read()
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.warning("Failed to fetch Homebrew cask index: %s", e)
            return

        logger.info("Fetched Homebrew cask index from %s (fresh)", self.url)
        try:
            index = await asyncio.to_thread(_build_from_payload, body)
        except (orjson.JSONDecodeError, TypeError) as e:
            logger.warning("Failed to parse Homebrew cask index JSON: %s", e)
            return

        self._snapshot = _Snapshot(
            index=index, etag=new_etag, fetched_at=self._clock()
        )
        await self._save_to_disk()

    async def _load_from_disk(self) -> None:
        self._loaded = True
        if self.cache_file is None or not self.cache_file.exists():
            return
        try:
            raw = await asyncio.to_thread(self.cache_file.read_bytes)
            data = orjson.loads(raw)
            if data.get("format") != _SNAPSHOT_FORMAT:
                logger.debug("Ignoring cask index snapshot in old format")
                return
            snapshot = _Snapshot(
                index=CaskIndex.from_dict(data["index"]),
                etag=data.get("etag"),
                fetched_at=float(data["fetched_at"]),
            )
        except (OSError, ValueError, KeyError, TypeError) as e:
            # orjson raises JSONDecodeError, a ValueError subclass
            logger.warning("Cask index snapshot unreadable, ignoring: %s", e)
            return
        # A fetch that finished first wins over the disk copy
        if self._snapshot is None:
            self._snapshot = snapshot

    async def _save_to_disk(self) -> None:
        snapshot = self._snapshot
        if self.cache_file is None or snapshot is None:
            return
        document = {
            "format": _SNAPSHOT_FORMAT,
            "etag": snapshot.etag,
            "fetched_at": snapshot.fetched_at,
            "index": snapshot.index.to_dict(),
        }
        try:
            await asyncio.to_thread(_atomic_write, self.cache_file, document)
        except (OSError, TypeError) as e:
            logger.warning("Failed to save cask index snapshot: %s", e)


def _atomic_write(path: Path, document: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_file = path.with_suffix(".tmp")
    try:
        temp_file.write_bytes(orjson.dumps(document))
        temp_file.replace(path)
    except OSError:
        with contextlib.suppress(OSError):
            temp_file.unlink()
        raise
