"""Application bundle metadata and process lifecycle helpers.

``Info.plist`` is the ground truth for the installed version. Plist reads
are synchronous file I/O, so the async entry points hand them to the
default thread pool.
"""

from __future__ import annotations

import asyncio
import plistlib
from dataclasses import dataclass
from pathlib import Path

from macup.core.command import run_command
from macup.exceptions import CommandError
from macup.logger import get_logger

logger = get_logger(__name__)

QUIT_GRACE_SECONDS = 3.0
KILL_GRACE_SECONDS = 0.5

BROWSER_EXTENSION_PREFIXES = (
    "com.google.Chrome.app.",
    "com.brave.Browser.app.",
    "com.microsoft.Edge.app.",
    "org.chromium.Chromium.app.",
)


@dataclass(frozen=True)
class BundleInfo:
    """Subset of ``Info.plist`` macup cares about."""

    bundle_id: str
    display_name: str
    path: Path
    short_version: str | None = None
    bundle_version: str | None = None
    sparkle_feed_url: str | None = None

    @property
    def installed_version(self) -> str | None:
        """Marketing version, falling back to the build number."""
        return self.short_version or self.bundle_version


def _string(plist: dict, key: str) -> str | None:
    value = plist.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def read_info_plist(app_path: Path) -> dict | None:
    """Load ``Contents/Info.plist`` of a bundle, or None if unreadable."""
    plist_path = app_path / "Contents" / "Info.plist"
    try:
        with plist_path.open("rb") as fh:
            data = plistlib.load(fh)
    except (OSError, plistlib.InvalidFileException, ValueError) as e:
        logger.debug("Cannot read %s: %s", plist_path, e)
        return None
    return data if isinstance(data, dict) else None


def read_bundle(app_path: Path) -> BundleInfo | None:
    """Read bundle metadata from an ``.app`` directory."""
    plist = read_info_plist(app_path)
    if plist is None:
        return None
    bundle_id = _string(plist, "CFBundleIdentifier")
    if bundle_id is None:
        return None
    return BundleInfo(
        bundle_id=bundle_id,
        display_name=(
            _string(plist, "CFBundleDisplayName")
            or _string(plist, "CFBundleName")
            or app_path.stem
        ),
        path=app_path,
        short_version=_string(plist, "CFBundleShortVersionString"),
        bundle_version=_string(plist, "CFBundleVersion"),
        sparkle_feed_url=_string(plist, "SUFeedURL"),
    )


def read_installed_version(app_path: Path) -> str | None:
    """Return the on-disk installed version of a bundle."""
    info = read_bundle(app_path)
    return info.installed_version if info else None


class PlistBundleReader:
    """Reads installed versions straight from ``Info.plist``."""

    async def read_version(self, app_path: Path) -> str | None:
        """Return the on-disk version without blocking the event loop."""
        return await asyncio.to_thread(read_installed_version, app_path)


def has_sparkle_framework(app_path: Path) -> bool:
    """Return True if the bundle embeds Sparkle."""
    return (app_path / "Contents/Frameworks/Sparkle.framework").exists()


def has_mas_receipt(app_path: Path) -> bool:
    """Return True if the bundle carries a Mac App Store receipt."""
    return (app_path / "Contents/_MASReceipt/receipt").exists()


def is_electron_app(app_path: Path) -> bool:
    """Return True if the bundle is built on Electron."""
    return (
        app_path / "Contents/Frameworks/Electron Framework.framework"
    ).exists()


def is_browser_extension(bundle_id: str) -> bool:
    """Return True for Chromium web-app shims, which are not real apps."""
    return bundle_id.startswith(BROWSER_EXTENSION_PREFIXES)


async def is_app_running(bundle_id: str) -> bool:
    """Return True if a GUI app with ``bundle_id`` is running."""
    try:
        output = await run_command("lsappinfo", "list", timeout=10.0)
    except CommandError:
        return False
    return bundle_id in output.stdout


async def quit_app(app_name: str, bundle_id: str) -> bool:
    """Quit an app via AppleScript, then ``pkill -x`` if it lingers.

    Returns:
        True if the app is no longer running

    """
    try:
        await run_command(
            "osascript",
            "-e",
            f'tell application id "{bundle_id}" to quit',
            timeout=15.0,
        )
    except CommandError as e:
        logger.debug("AppleScript quit failed for %s: %s", bundle_id, e)

    await asyncio.sleep(QUIT_GRACE_SECONDS)
    if not await is_app_running(bundle_id):
        return True

    logger.info("%s did not quit, sending SIGTERM", app_name)
    try:
        await run_command("pkill", "-x", app_name, timeout=10.0)
    except CommandError as e:
        logger.debug("pkill failed for %s: %s", app_name, e)
    await asyncio.sleep(KILL_GRACE_SECONDS)
    return not await is_app_running(bundle_id)


async def relaunch_app(app_path: Path) -> None:
    """Reopen an app in the background without bringing it to front."""
    try:
        await run_command("open", "-g", str(app_path), timeout=30.0)
    except CommandError as e:
        logger.warning("Could not relaunch %s: %s", app_path, e)


async def open_target(*args: str) -> bool:
    """Run ``open`` with ``args`` and return whether it succeeded."""
    try:
        output = await run_command("open", *args, timeout=30.0)
    except CommandError as e:
        logger.warning("open %s failed: %s", " ".join(args), e)
        return False
    if not output.ok:
        logger.warning("open %s failed: %s", " ".join(args), output.stderr)
    return output.ok
