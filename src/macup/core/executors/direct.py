"""Direct download executor for Sparkle, GitHub and vendor downloads.

The installer is streamed to a temporary directory, its type is sniffed,
and the bundle inside replaces the installed one:

* ``.dmg``: mounted with ``hdiutil`` and the ``.app`` copied out
* ``.zip``: expanded with ``ditto -xk``
* ``.pkg``: installed as root with ``installer(8)``

A running app is quit first and relaunched afterwards. The old bundle is
moved to the Trash so a bad update can be undone by hand.
"""

from __future__ import annotations

import asyncio
import shlex
import shutil
import tempfile
import time
from enum import Enum
from pathlib import Path
from urllib.parse import unquote, urlparse

import aiofiles
import aiohttp

from macup.core.bundle import (
    PlistBundleReader,
    is_app_running,
    quit_app,
    relaunch_app,
)
from macup.core.command import CommandOutput, run_command
from macup.core.elevation import ElevatedRunner, applescript_quote
from macup.core.executors.base import INSTALLER_PATH, Executor, version_changed
from macup.core.protocols.ports import BundleReader
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult
from macup.exceptions import CommandError, ExecutorError, UserCancelledError
from macup.logger import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 65536
PROGRESS_INTERVAL = 0.15
QUIT_NOTICE_SECONDS = 2.0
HDIUTIL_TIMEOUT = 300.0
COPY_TIMEOUT = 600.0
QUARANTINE_ATTR = "com.apple.quarantine"
COPY_ELEVATION_MARKERS = ("Permission denied", "Operation not permitted")


class ArchiveType(Enum):
    """Installer container formats the executor can unpack."""

    DMG = "dmg"
    ZIP = "zip"
    PKG = "pkg"
    UNKNOWN = "unknown"


def detect_file_type(content_type: str, filename: str, head: bytes) -> ArchiveType:
    """Identify an installer by content type, then extension, then magic.

    Examples:
        >>> detect_file_type("application/x-apple-diskimage", "x", b"")
        <ArchiveType.DMG: 'dmg'>
        >>> detect_file_type("application/octet-stream", "App.zip", b"")
        <ArchiveType.ZIP: 'zip'>
        >>> detect_file_type("", "download", b"xar!....")
        <ArchiveType.PKG: 'pkg'>

    """
    content_type = content_type.lower()
    if content_type and content_type != "application/octet-stream":
        if "apple-diskimage" in content_type or "x-diskcopy" in content_type:
            return ArchiveType.DMG
        if "zip" in content_type:
            return ArchiveType.ZIP
        if "apple.installer" in content_type:
            return ArchiveType.PKG

    lowered = filename.lower()
    for suffix, kind in (
        (".dmg", ArchiveType.DMG),
        (".zip", ArchiveType.ZIP),
        (".pkg", ArchiveType.PKG),
    ):
        if lowered.endswith(suffix):
            return kind

    if head.startswith(b"PK\x03\x04"):
        return ArchiveType.ZIP
    if head.startswith(b"xar!"):
        return ArchiveType.PKG
    # Compressed disk images usually open with a bzip2 block
    if head.startswith(b"BZ"):
        return ArchiveType.DMG
    return ArchiveType.UNKNOWN


def download_filename(content_disposition: str | None, url: str) -> str:
    """Pick a file name from ``Content-Disposition`` or the URL path."""
    if content_disposition and "filename=" in content_disposition:
        name = content_disposition.split("filename=", 1)[1]
        name = name.split(";", 1)[0].strip().strip('"')
        if name:
            return Path(name).name
    name = Path(unquote(urlparse(url).path)).name
    return name or "update"


def find_app_in_dir(directory: Path) -> Path:
    """Return the first ``.app`` at the top level or one level below.

    Raises:
        ExecutorError: If the directory holds no application bundle

    """
    children = sorted(directory.iterdir())
    for child in children:
        if child.suffix == ".app" and child.is_dir():
            return child
    for child in children:
        if not child.is_dir() or child.suffix == ".app":
            continue
        for nested in sorted(child.iterdir()):
            if nested.suffix == ".app" and nested.is_dir():
                return nested
    raise ExecutorError("No .app bundle found in archive", target=str(directory))


class DirectDownloadExecutor(Executor):
    """Downloads an installer and swaps the app bundle in place."""

    def __init__(
        self,
        download_url: str,
        app_name: str,
        session: aiohttp.ClientSession,
        runner: ElevatedRunner,
        source: SourceKind = SourceKind.SPARKLE,
        pre_version: str | None = None,
        bundle_reader: BundleReader | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            download_url: Installer URL
            app_name: Display name used in progress and messages
            session: Shared HTTP session
            runner: Privileged command runner
            source: Source kind reported in the result
            pre_version: Installed version known by the caller
            bundle_reader: Reads the on-disk version for verification
            timeout: Per-download timeout overriding the session's

        """
        self.download_url = download_url
        self.app_name = app_name
        self.session = session
        self.runner = runner
        self._source = source
        self.pre_version = pre_version
        self.bundle_reader = bundle_reader or PlistBundleReader()
        self.timeout = timeout

    @property
    def source(self) -> SourceKind:
        return self._source

    def _result(
        self,
        bundle_id: str,
        success: bool,
        message: str,
        to_version: str | None = None,
        handled_relaunch: bool = False,
    ) -> UpdateResult:
        return UpdateResult(
            bundle_id=bundle_id,
            success=success,
            message=message,
            source=self.source,
            from_version=self.pre_version,
            to_version=to_version,
            handled_relaunch=handled_relaunch,
        )

    def _fail(
        self, bundle_id: str, message: str, progress: ProgressReporter
    ) -> UpdateResult:
        logger.info("Direct update of %s failed: %s", bundle_id, message)
        progress.report(100, message)
        return self._result(bundle_id, False, message)

    async def _download(
        self, dest_dir: Path, progress: ProgressReporter
    ) -> tuple[Path, str] | str:
        """Stream the installer to ``dest_dir``.

        Returns:
            ``(path, content_type)`` on success, or a failure message

        Raises:
            ExecutorError: On network failure

        """
        progress.report(2, "Requesting download...")
        kwargs = {"timeout": self.timeout} if self.timeout else {}
        try:
            async with self.session.get(self.download_url, **kwargs) as response:
                if response.status != 200:  # noqa: PLR2004
                    return f"Download returned HTTP {response.status}"
                content_type = response.headers.get("Content-Type", "").lower()
                if "text/html" in content_type or "text/plain" in content_type:
                    return (
                        "Download URL returned HTML instead of an installer file"
                    )

                filename = download_filename(
                    response.headers.get("Content-Disposition"),
                    str(response.url),
                )
                total = response.content_length
                dest = dest_dir / filename
                downloaded = 0
                last_emit = time.monotonic()
                async with aiofiles.open(dest, mode="wb") as f:
                    async for chunk in response.content.iter_chunked(
                        CHUNK_SIZE
                    ):
                        await f.write(chunk)
                        downloaded += len(chunk)
                        now = time.monotonic()
                        if now - last_emit < PROGRESS_INTERVAL:
                            continue
                        last_emit = now
                        pct = downloaded * 100 // total if total else 0
                        progress.report(
                            5 + min(pct, 100) * 45 // 100,
                            f"Downloading update for {self.app_name}",
                            (downloaded, total),
                        )
        except (aiohttp.ClientError, TimeoutError) as e:
            msg = f"Download failed: {e}"
            raise ExecutorError(msg, target=self.download_url) from e

        logger.debug("Downloaded %s (%d bytes)", dest.name, downloaded)
        return dest, content_type

    async def _extract_dmg(
        self, dmg: Path, work_dir: Path, progress: ProgressReporter
    ) -> Path:
        mount_point = work_dir / "dmg_mount"
        mount_point.mkdir()
        progress.report(52, f"Mounting disk image for {self.app_name}...")
        # "Y" accepts an embedded license agreement
        output = await run_command(
            "hdiutil",
            "attach",
            "-nobrowse",
            "-noverify",
            "-noautoopen",
            "-mountpoint",
            str(mount_point),
            str(dmg),
            timeout=HDIUTIL_TIMEOUT,
            stdin_data=b"Y\n",
        )
        if not output.ok:
            msg = f"hdiutil attach failed: {output.error_text.strip()}"
            raise ExecutorError(msg, target=str(dmg))

        try:
            app = await asyncio.to_thread(find_app_in_dir, mount_point)
            progress.report(60, f"Copying {self.app_name} from disk image...")
            dest = work_dir / app.name
            copied = await run_command(
                "cp", "-R", str(app), str(dest), timeout=COPY_TIMEOUT
            )
            if not copied.ok:
                msg = f"cp from DMG failed: {copied.error_text.strip()}"
                raise ExecutorError(msg, target=str(dmg))
        finally:
            progress.report(68, "Unmounting disk image...")
            try:
                await run_command(
                    "hdiutil",
                    "detach",
                    str(mount_point),
                    "-quiet",
                    timeout=60.0,
                )
            except CommandError as e:
                logger.warning("Could not detach %s: %s", mount_point, e)
        return dest

    async def _extract_zip(self, archive: Path, work_dir: Path) -> Path:
        extract_dir = work_dir / "zip_extract"
        extract_dir.mkdir()
        output = await run_command(
            "ditto",
            "-xk",
            str(archive),
            str(extract_dir),
            timeout=COPY_TIMEOUT,
        )
        if not output.ok:
            msg = f"ditto extract failed: {output.error_text.strip()}"
            raise ExecutorError(msg, target=str(archive))
        return await asyncio.to_thread(find_app_in_dir, extract_dir)

    async def _install_pkg(
        self,
        bundle_id: str,
        app_path: Path,
        pkg: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        progress.report(
            60, "Installing package (requesting admin privileges)..."
        )
        try:
            output = await self.runner.run(
                INSTALLER_PATH, "-pkg", str(pkg), "-target", "/"
            )
        except UserCancelledError:
            return self._fail(
                bundle_id,
                "Update cancelled: administrator approval is required to "
                "install this package",
                progress,
            )
        except CommandError as e:
            return self._fail(
                bundle_id, f"Failed to request admin privileges: {e}", progress
            )
        if not output.ok:
            return self._fail(
                bundle_id,
                f"Package installation failed: {output.error_text.strip()}",
                progress,
            )

        new_version = await self.bundle_reader.read_version(app_path)
        if not version_changed(self.pre_version, new_version):
            return self._fail(
                bundle_id,
                f"Package installed but {self.app_name} is still at version "
                f"{self.pre_version}. Reinstall it from the vendor's site.",
                progress,
            )
        progress.report(100, f"{self.app_name} installed successfully")
        return self._result(
            bundle_id,
            True,
            f"{self.app_name} installed successfully via PKG",
            to_version=new_version,
        )

    async def _move_to_trash(self, app_path: Path) -> None:
        script = (
            'tell application "Finder" to move POSIX file '
            f'"{applescript_quote(str(app_path))}" to trash'
        )
        try:
            output = await run_command("osascript", "-e", script, timeout=60.0)
        except CommandError as e:
            output = CommandOutput(-1, "", str(e))
        if output.ok:
            return
        logger.info(
            "Could not trash %s (%s), removing it",
            app_path,
            output.error_text.strip(),
        )
        try:
            await asyncio.to_thread(shutil.rmtree, app_path)
        except OSError as e:
            # The copy below will surface the permission problem
            logger.info("Could not remove %s: %s", app_path, e)

    async def _replace_bundle(
        self,
        bundle_id: str,
        app_path: Path,
        new_app: Path,
        progress: ProgressReporter,
    ) -> UpdateResult | None:
        """Swap the bundle, escalating if the copy is refused.

        Returns:
            A failure result, or None when the new bundle is in place

        """
        if app_path.exists():
            await self._move_to_trash(app_path)

        try:
            output = await run_command(
                "cp", "-R", str(new_app), str(app_path), timeout=COPY_TIMEOUT
            )
        except CommandError as e:
            return self._fail(bundle_id, f"Failed to copy app: {e}", progress)
        if output.ok:
            return None

        error_text = output.error_text.strip()
        if not any(marker in error_text for marker in COPY_ELEVATION_MARKERS):
            return self._fail(
                bundle_id, f"Failed to replace app: {error_text}", progress
            )

        progress.report(80, "Requesting administrator privileges...")
        target = shlex.quote(str(app_path))
        shell_cmd = (
            f"rm -rf {target} && cp -R {shlex.quote(str(new_app))} {target}"
        )
        try:
            elevated = await self.runner.run_shell(shell_cmd)
        except UserCancelledError:
            return self._fail(
                bundle_id,
                "Update cancelled: administrator approval is required to "
                "replace this app",
                progress,
            )
        except CommandError as e:
            return self._fail(
                bundle_id, f"Failed to request admin privileges: {e}", progress
            )
        if not elevated.ok:
            return self._fail(
                bundle_id,
                "Failed to replace app (elevated): "
                f"{elevated.error_text.strip()}",
                progress,
            )
        return None

    async def _clear_quarantine(self, app_path: Path) -> None:
        args = ("-rd", QUARANTINE_ATTR, str(app_path))
        try:
            output = await run_command("xattr", *args, timeout=60.0)
            if output.ok:
                return
            await self.runner.run("xattr", *args, timeout=60.0)
        except (CommandError, UserCancelledError) as e:
            logger.info("Quarantine flag left on %s: %s", app_path, e)

    async def execute(
        self,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        if self.pre_version is None:
            self.pre_version = await self.bundle_reader.read_version(app_path)

        work_dir = Path(
            await asyncio.to_thread(tempfile.mkdtemp, prefix="macup-")
        )
        try:
            downloaded = await self._download(work_dir, progress)
            if isinstance(downloaded, str):
                return self._fail(bundle_id, downloaded, progress)
            archive, content_type = downloaded

            progress.report(50, "Download complete, extracting...")
            async with aiofiles.open(archive, mode="rb") as f:
                head = await f.read(16)
            kind = detect_file_type(content_type, archive.name, head)
            logger.debug("%s detected as %s", archive.name, kind.value)

            if kind is ArchiveType.PKG:
                return await self._install_pkg(
                    bundle_id, app_path, archive, progress
                )
            if kind is ArchiveType.UNKNOWN:
                return self._fail(
                    bundle_id,
                    f"Unsupported archive format: {archive.name}",
                    progress,
                )
            if kind is ArchiveType.DMG:
                new_app = await self._extract_dmg(archive, work_dir, progress)
            else:
                new_app = await self._extract_zip(archive, work_dir)

            was_running = await is_app_running(bundle_id)
            if was_running:
                progress.report(
                    60, f"{self.app_name} is open, closing to update..."
                )
                await asyncio.sleep(QUIT_NOTICE_SECONDS)
                progress.report(65, f"Quitting {self.app_name}")
                await quit_app(self.app_name, bundle_id)
            else:
                progress.report(65, f"Preparing to replace {self.app_name}")

            progress.report(75, f"Replacing {self.app_name}")
            failure = await self._replace_bundle(
                bundle_id, app_path, new_app, progress
            )
            if failure is not None:
                return failure
        finally:
            await asyncio.to_thread(
                shutil.rmtree, work_dir, ignore_errors=True
            )

        await self._clear_quarantine(app_path)
        if was_running:
            progress.report(95, f"Relaunching {self.app_name}")
            await relaunch_app(app_path)

        new_version = await self.bundle_reader.read_version(app_path)
        if not version_changed(self.pre_version, new_version):
            return self._fail(
                bundle_id,
                f"Installed the download but {self.app_name} is still at "
                f"version {self.pre_version}. The feed may point at an "
                "older build; update from inside the app.",
                progress,
            )

        progress.report(100, f"{self.app_name} updated successfully")
        return self._result(
            bundle_id,
            True,
            f"{self.app_name} updated successfully via direct download",
            to_version=new_version,
            handled_relaunch=was_running,
        )
