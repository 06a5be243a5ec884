"""Change detection for casks that publish no version number.

Casks declared ``version :latest`` cannot be compared by version. Their
Ruby definition still pins a ``sha256`` of the download, so a changed
hash since the last check is a strong hint that the vendor shipped a new
build. The last-seen hash per token lives behind a
:class:`~macup.core.protocols.ports.FingerprintStore`.

Two apps can share one cask token. Within a cycle every token is fetched
and compared at most once; later callers get the first verdict, so the
second app does not see ``UNCHANGED`` right after the first recorded the
new hash.
"""

from __future__ import annotations

import asyncio
import re
from enum import Enum

import aiohttp

from macup.constants import CASK_SOURCE_URL
from macup.core.protocols.ports import FingerprintStore
from macup.logger import get_logger

logger = get_logger(__name__)

_SHA256_RE = re.compile(r'sha256\s+"([a-f0-9]{64})"')


class FingerprintVerdict(Enum):
    """Outcome of comparing a cask's current hash with the stored one."""

    FIRST_SEEN = "first_seen"
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    NO_CHECK = "no_check"
    ERROR = "error"


def extract_sha256(ruby_source: str) -> str | None:
    """Return the pinned hash from a cask definition, if any."""
    match = _SHA256_RE.search(ruby_source)
    return match.group(1) if match else None


def cask_source_url(token: str) -> str:
    """Return the raw URL of a cask's Ruby definition."""
    return f"{CASK_SOURCE_URL}/{token[0]}/{token}.rb"


class FingerprintChecker:
    """Per-cycle fingerprint comparison with per-token de-duplication."""

    def __init__(
        self, session: aiohttp.ClientSession, store: FingerprintStore
    ) -> None:
        """Initialize the checker.

        Args:
            session: HTTP session for fetching cask sources
            store: Persistent last-seen hashes

        """
        self.session = session
        self.store = store
        self._verdicts: dict[str, asyncio.Future[FingerprintVerdict]] = {}
        self._lock = asyncio.Lock()

    def reset(self) -> None:
        """Forget this cycle's verdicts."""
        self._verdicts = {}

    async def check(self, token: str) -> FingerprintVerdict:
        """Compare the current hash of ``token`` with the stored one.

        Concurrent and repeated calls for the same token share one fetch
        and one verdict.
        """
        async with self._lock:
            future = self._verdicts.get(token)
            owner = future is None
            if owner:
                future = asyncio.get_running_loop().create_future()
                self._verdicts[token] = future
        if not owner:
            return await asyncio.shield(future)

        try:
            verdict = await self._compare(token)
        except BaseException:
            future.set_result(FingerprintVerdict.ERROR)
            raise
        future.set_result(verdict)
        return verdict

    async def _compare(self, token: str) -> FingerprintVerdict:
        if not token:
            logger.debug("Fingerprint check skipped: empty cask token")
            return FingerprintVerdict.ERROR

        url = cask_source_url(token)
        try:
            async with self.session.get(url) as response:
                if response.status != 200:  # noqa: PLR2004
                    logger.debug(
                        "Fingerprint check for %s: HTTP %d",
                        token,
                        response.status,
                    )
                    return FingerprintVerdict.ERROR
                body = await response.text()
        except (aiohttp.ClientError, TimeoutError) as e:
            logger.debug("Fingerprint fetch for %s failed: %s", token, e)
            return FingerprintVerdict.ERROR

        sha = extract_sha256(body)
        if sha is None:
            if ":no_check" in body:
                logger.info(
                    "Fingerprint check for %s: sha256 :no_check, "
                    "cannot detect updates",
                    token,
                )
                return FingerprintVerdict.NO_CHECK
            logger.debug("No sha256 line found in cask %s", token)
            return FingerprintVerdict.ERROR

        previous = self.store.get_fingerprint(token)
        if previous is None:
            self.store.set_fingerprint(token, sha)
            logger.info(
                "Fingerprint check for %s: first seen, stored %s...%s",
                token,
                sha[:8],
                sha[56:],
            )
            return FingerprintVerdict.FIRST_SEEN
        if previous == sha:
            logger.info(
                "Fingerprint check for %s: unchanged (%s...)", token, sha[:8]
            )
            return FingerprintVerdict.UNCHANGED

        self.store.set_fingerprint(token, sha)
        logger.info(
            "Fingerprint check for %s: changed (%s... -> %s...)",
            token,
            previous[:8],
            sha[:8],
        )
        return FingerprintVerdict.CHANGED
