"""HTTP session utilities for macup.

This module provides utilities for creating configured HTTP sessions
with proper timeout and connection settings. Every request issued by a
checker inherits the session's hard timeout.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import aiohttp

from macup.constants import (
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENT_CHECKS,
    DEFAULT_TIMEOUT_SECONDS,
    USER_AGENT,
)
from macup.types import GlobalConfig


@asynccontextmanager
async def create_http_session(
    global_config: GlobalConfig,
) -> AsyncIterator[aiohttp.ClientSession]:
    """Create configured HTTP session.

    Args:
        global_config: Global configuration dictionary

    Yields:
        Configured aiohttp.ClientSession

    """
    network_cfg = global_config.get("network", {})
    timeout_seconds = int(
        network_cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    )
    connect_seconds = int(
        network_cfg.get(
            "connect_timeout_seconds", DEFAULT_CONNECT_TIMEOUT_SECONDS
        )
    )
    max_concurrent = int(
        global_config.get(
            "max_concurrent_checks", DEFAULT_MAX_CONCURRENT_CHECKS
        )
    )

    timeout = aiohttp.ClientTimeout(
        total=timeout_seconds,
        sock_read=timeout_seconds,
        sock_connect=connect_seconds,
    )
    connector = aiohttp.TCPConnector(
        limit=max_concurrent * 2,
        limit_per_host=max_concurrent,
    )

    async with aiohttp.ClientSession(
        timeout=timeout,
        connector=connector,
        headers={"User-Agent": USER_AGENT},
    ) as session:
        yield session


def download_timeout(global_config: GlobalConfig) -> aiohttp.ClientTimeout:
    """Return the per-request timeout used for large file downloads.

    Installers can be hundreds of megabytes, so the total deadline is
    scaled up while the read and connect deadlines stay strict.
    """
    network_cfg = global_config.get("network", {})
    timeout_seconds = int(
        network_cfg.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    )
    return aiohttp.ClientTimeout(
        total=timeout_seconds * 60,
        sock_read=timeout_seconds * 3,
        sock_connect=timeout_seconds,
    )
