"""Microsoft apps: Homebrew, then Microsoft AutoUpdate, then hand-off.

Tiers, first success wins:

1. the Homebrew cask executor, when a cask token is known
2. ``msupdate --install --apps <id>``, verified against the bundle
3. open Microsoft AutoUpdate for the user (delegated)
4. open the app itself (delegated)
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

from macup.constants import MSUPDATE_PATH
from macup.core.bundle import PlistBundleReader, open_target
from macup.core.checkers.microsoft import MICROSOFT_CASK_TOKENS
from macup.core.command import run_command
from macup.core.elevation import ElevatedRunner
from macup.core.executors.base import Executor, version_changed
from macup.core.executors.homebrew import HomebrewExecutor
from macup.core.protocols.ports import BundleReader
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult
from macup.exceptions import CommandError, ExecutorError, MacupError
from macup.logger import get_logger

logger = get_logger(__name__)

MAU_BUNDLE_ID = "com.microsoft.autoupdate2"
MSUPDATE_TIMEOUT = 900.0

# bundle id -> msupdate --apps identifier
MSUPDATE_APP_IDS = {
    "com.microsoft.Word": "MSWD2019",
    "com.microsoft.Excel": "XCEL2019",
    "com.microsoft.Powerpoint": "PPT32019",
    "com.microsoft.Outlook": "OPIM2019",
    "com.microsoft.onenote.mac": "ONMC2019",
    "com.microsoft.teams2": "TEAMS21",
    "com.microsoft.teams": "TEAMS10",
    "com.microsoft.OneDrive": "ONDR18",
    "com.microsoft.edgemac": "EDGE01",
    "com.microsoft.VSCode": "VSCO01",
}


def mau_installed() -> bool:
    """Return True if Microsoft AutoUpdate's CLI is present."""
    return Path(MSUPDATE_PATH).exists()


class MicrosoftAutoUpdateExecutor(Executor):
    def __init__(
        self,
        display_name: str,
        runner: ElevatedRunner,
        cask_token: str | None = None,
        pre_version: str | None = None,
        bundle_reader: BundleReader | None = None,
    ) -> None:
        self.display_name = display_name
        self.runner = runner
        self.cask_token = cask_token
        self.pre_version = pre_version
        self.bundle_reader = bundle_reader or PlistBundleReader()

    @property
    def source(self) -> SourceKind:
        return SourceKind.MICROSOFT

    def _delegated(self, bundle_id: str, message: str) -> UpdateResult:
        return replace(
            UpdateResult.delegated_to(bundle_id, self.source, message),
            from_version=self.pre_version,
        )

    async def _try_homebrew(
        self,
        token: str,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult | None:
        progress.report(5, "Trying Homebrew update...")
        executor = HomebrewExecutor(
            token,
            self.runner,
            pre_version=self.pre_version,
            bundle_reader=self.bundle_reader,
        )
        try:
            result = await executor.execute(bundle_id, app_path, progress)
        except MacupError as e:
            logger.info("Microsoft: Homebrew tier failed for %s: %s", bundle_id, e)
            return None
        if result.success:
            return result
        logger.info(
            "Microsoft: Homebrew tier failed for %s (%s)",
            bundle_id,
            result.message,
        )
        return None

    async def _try_msupdate(
        self,
        app_id: str,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult | None:
        progress.report(30, "Trying Microsoft AutoUpdate CLI...")
        try:
            output = await run_command(
                MSUPDATE_PATH,
                "--install",
                "--apps",
                app_id,
                timeout=MSUPDATE_TIMEOUT,
            )
        except CommandError as e:
            logger.info("Microsoft: msupdate failed for %s: %s", bundle_id, e)
            return None
        if not output.ok:
            logger.info(
                "Microsoft: msupdate exited %d for %s: %s",
                output.returncode,
                bundle_id,
                output.error_text.strip(),
            )
            return None

        new_version = await self.bundle_reader.read_version(app_path)
        if not version_changed(self.pre_version, new_version):
            logger.info(
                "Microsoft: msupdate left %s at %s", bundle_id, new_version
            )
            return None
        progress.report(100, "Microsoft AutoUpdate completed")
        return UpdateResult(
            bundle_id=bundle_id,
            success=True,
            message=f"Updated {self.display_name} via Microsoft AutoUpdate",
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
        if self.pre_version is None:
            self.pre_version = await self.bundle_reader.read_version(app_path)

        token = self.cask_token or MICROSOFT_CASK_TOKENS.get(bundle_id)
        if token:
            result = await self._try_homebrew(
                token, bundle_id, app_path, progress
            )
            if result is not None:
                return result
        else:
            logger.info("Microsoft: no cask token for %s", bundle_id)

        app_id = MSUPDATE_APP_IDS.get(bundle_id)
        if mau_installed() and app_id:
            result = await self._try_msupdate(
                app_id, bundle_id, app_path, progress
            )
            if result is not None:
                return result

        progress.report(50, "Opening Microsoft AutoUpdate...")
        if mau_installed() and await open_target("-b", MAU_BUNDLE_ID):
            progress.report(100, "Opened Microsoft AutoUpdate")
            return self._delegated(
                bundle_id,
                "Opened Microsoft AutoUpdate: apply the update for "
                f"{self.display_name}",
            )

        if not await open_target(str(app_path)):
            raise ExecutorError(f"Failed to open {app_path}", target=bundle_id)
        progress.report(100, "App opened for self-update")
        return self._delegated(
            bundle_id,
            f"Opened {self.display_name}: check for updates within the app",
        )
