"""Mac App Store executor.

``mas upgrade`` is tried as the current user first, then as root (it talks
to ``installd``, which sometimes refuses unprivileged callers). When
neither moves the installed version, the App Store itself is opened on
the app's page and the result is reported as delegated.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from macup.core.brew import mas_path
from macup.core.bundle import PlistBundleReader, open_target
from macup.core.command import run_command
from macup.core.elevation import ElevatedRunner
from macup.core.executors.base import Executor, version_changed
from macup.core.protocols.ports import BundleReader
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult
from macup.exceptions import CommandError, ExecutorError, UserCancelledError
from macup.logger import get_logger

logger = get_logger(__name__)

MAS_TIMEOUT = 120.0
APP_STORE_UPDATES_URL = "macappstore://showUpdatesPage"
APP_STORE_APP_URL = "macappstore://apps.apple.com/app/id{app_id}"

MAS_ELEVATION_MARKERS = (
    "installd",
    "PKInstallErrorDomain",
    "Operation not permitted",
    "connection to the installation service",
    "Permission denied",
)


def mas_needs_elevation(text: str) -> bool:
    """Return True if ``mas`` output points at an installd permission issue."""
    return any(marker in text for marker in MAS_ELEVATION_MARKERS)


class MasExecutor(Executor):
    """Updates App Store apps through the ``mas`` CLI."""

    def __init__(
        self,
        mas_app_id: str | None,
        runner: ElevatedRunner,
        pre_version: str | None = None,
        bundle_reader: BundleReader | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            mas_app_id: Numeric App Store id, if known
            runner: Privileged command runner
            pre_version: Installed version known by the caller
            bundle_reader: Reads the on-disk version for verification

        """
        self.mas_app_id = mas_app_id
        self.runner = runner
        self.pre_version = pre_version
        self.bundle_reader = bundle_reader or PlistBundleReader()

    @property
    def source(self) -> SourceKind:
        return SourceKind.MAS

    async def _open_store(
        self, bundle_id: str, url: str, progress: ProgressReporter
    ) -> UpdateResult:
        if not await open_target(url):
            raise ExecutorError("Failed to open Mac App Store", target=bundle_id)
        progress.report(100, "Opened Mac App Store")
        return replace(
            UpdateResult.delegated_to(
                bundle_id, self.source, f"Opened Mac App Store for {bundle_id}"
            ),
            from_version=self.pre_version,
        )

    async def _verified(
        self, app_path: Path
    ) -> tuple[bool, str | None]:
        new_version = await self.bundle_reader.read_version(app_path)
        return version_changed(self.pre_version, new_version), new_version

    def _success(
        self, bundle_id: str, message: str, new_version: str | None
    ) -> UpdateResult:
        return UpdateResult(
            bundle_id=bundle_id,
            success=True,
            message=message,
            source=self.source,
            from_version=self.pre_version,
            to_version=new_version,
        )

    async def execute(
        self,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        # SIP-protected system apps can only be updated by the App Store
        if str(app_path).startswith("/System/") or self.mas_app_id is None:
            if self.mas_app_id is None:
                logger.info(
                    "MAS: no app id for %s, opening the App Store", bundle_id
                )
            progress.report(0, "Opening Mac App Store...")
            url = (
                APP_STORE_APP_URL.format(app_id=self.mas_app_id)
                if self.mas_app_id
                else APP_STORE_UPDATES_URL
            )
            return await self._open_store(bundle_id, url, progress)

        app_id = self.mas_app_id
        store_url = APP_STORE_APP_URL.format(app_id=app_id)
        if self.pre_version is None:
            self.pre_version = await self.bundle_reader.read_version(app_path)

        mas = mas_path()
        if mas is None:
            logger.info("MAS: mas CLI not found, opening the App Store")
            return await self._open_store(bundle_id, store_url, progress)

        progress.report(0, f"Starting Mac App Store upgrade for app {app_id}")
        try:
            output = await run_command(
                mas, "upgrade", app_id, timeout=MAS_TIMEOUT
            )
        except CommandError as e:
            logger.info("MAS: mas upgrade %s failed: %s", app_id, e)
        else:
            if output.ok:
                progress.report(50, "mas upgrade completed, verifying...")
                changed, new_version = await self._verified(app_path)
                if changed:
                    progress.report(100, "Mac App Store upgrade completed")
                    return self._success(
                        bundle_id,
                        "Successfully upgraded via Mac App Store",
                        new_version,
                    )
                logger.info(
                    "MAS: version of %s unchanged after mas upgrade", bundle_id
                )
            elif mas_needs_elevation(output.stderr + output.stdout):
                logger.info("MAS: mas upgrade %s needs elevation", app_id)
            else:
                logger.info(
                    "MAS: mas upgrade %s exited %d: %s",
                    app_id,
                    output.returncode,
                    output.error_text.strip(),
                )

        progress.report(10, "Retrying with administrator privileges...")
        try:
            output = await self.runner.run(
                mas, "upgrade", app_id, timeout=MAS_TIMEOUT
            )
        except UserCancelledError:
            message = (
                "Upgrade cancelled: administrator approval required for "
                f"{bundle_id}"
            )
            progress.report(100, message)
            return UpdateResult(
                bundle_id=bundle_id,
                success=False,
                message=message,
                source=self.source,
                from_version=self.pre_version,
            )
        except CommandError as e:
            logger.info("MAS: elevated mas upgrade %s failed: %s", app_id, e)
        else:
            if output.ok:
                progress.report(
                    50, "Elevated mas upgrade completed, verifying..."
                )
                changed, new_version = await self._verified(app_path)
                if changed:
                    progress.report(
                        100, "Mac App Store upgrade completed (elevated)"
                    )
                    return self._success(
                        bundle_id,
                        "Successfully upgraded via Mac App Store "
                        "(with admin privileges)",
                        new_version,
                    )
                logger.info(
                    "MAS: version of %s unchanged after elevated upgrade",
                    bundle_id,
                )
            else:
                logger.info(
                    "MAS: elevated mas upgrade %s exited %d: %s",
                    app_id,
                    output.returncode,
                    output.error_text.strip(),
                )

        progress.report(80, "Opening Mac App Store...")
        return await self._open_store(bundle_id, store_url, progress)
