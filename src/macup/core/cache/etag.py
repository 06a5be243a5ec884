"""Entity-tag cache for GitHub release lookups.

Each entry keeps the ETag and the raw body of the last successful
``releases/latest`` response for one ``owner/repo``. A later 304 is
answered from the stored body, and 304s do not count against the API
rate limit. The cache is read from disk off the event loop before the first lookup
and written back once at the end of a check cycle.
"""

from __future__ import annotations

import asyncio
import contextlib
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType

import orjson

from macup.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ETagEntry:
    """ETag and raw body of the last successful response."""

    etag: str
    response_body: str


class ETagCache:
    """Copy-on-write map of ``owner/repo`` to :class:`ETagEntry`.

    Writers replace the whole mapping, so a reader holding the previous
    mapping keeps a consistent view.
    """

    def __init__(self, cache_file: Path | None = None) -> None:
        """Initialize the cache.

        Args:
            cache_file: JSON file persisted between runs; None keeps the
                cache in memory only

        """
        self.cache_file = cache_file
        self._entries: MappingProxyType[str, ETagEntry] = MappingProxyType({})
        self._loaded = cache_file is None
        self._dirty = False
        self._load_lock = asyncio.Lock()

    async def load(self) -> None:
        """Read the cache file once; later calls return immediately.

        Entries put before loading win over those on disk.
        """
        if self._loaded:
            return
        async with self._load_lock:
            if self._loaded:
                return
            await self._load_from_disk()
            self._loaded = True

    async def _load_from_disk(self) -> None:
        cache_file = self.cache_file
        if cache_file is None or not cache_file.exists():
            return
        try:
            raw = orjson.loads(await asyncio.to_thread(cache_file.read_bytes))
            entries = {
                key: ETagEntry(
                    etag=value["etag"], response_body=value["response_body"]
                )
                for key, value in raw.items()
            }
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning("ETag cache unreadable, starting empty: %s", e)
            return
        self._entries = MappingProxyType({**entries, **self._entries})
        logger.debug("Loaded %d ETag cache entries", len(entries))

    def get(self, key: str) -> ETagEntry | None:
        """Return the entry for ``key`` among the loaded entries."""
        return self._entries.get(key)

    def put(self, key: str, etag: str, response_body: str) -> None:
        """Store a new entry by publishing a new mapping."""
        updated = dict(self._entries)
        updated[key] = ETagEntry(etag=etag, response_body=response_body)
        self._entries = MappingProxyType(updated)
        self._dirty = True

    def __len__(self) -> int:
        """Return the number of loaded repositories."""
        return len(self._entries)

    async def save(self) -> None:
        """Persist the cache if it changed since it was loaded."""
        cache_file = self.cache_file
        if cache_file is None or not self._dirty or not self._entries:
            return
        await self.load()
        entries = self._entries
        document = {
            key: {"etag": entry.etag, "response_body": entry.response_body}
            for key, entry in entries.items()
        }
        try:
            await asyncio.to_thread(_write, cache_file, document)
        except OSError as e:
            logger.warning("Failed to save ETag cache: %s", e)
            return
        self._dirty = False
        logger.debug("Saved %d ETag cache entries", len(document))


def _write(cache_file: Path, document: dict[str, dict[str, str]]) -> None:
    cache_file.parent.mkdir(parents=True, exist_ok=True)
    temp_file = cache_file.with_suffix(".tmp")
    try:
        temp_file.write_bytes(orjson.dumps(document))
        temp_file.replace(cache_file)
    except OSError:
        with contextlib.suppress(OSError):
            temp_file.unlink()
        raise
