"""Homebrew cask executor.

Casks already managed by brew are upgraded. Apps installed some other way
are adopted with ``brew install --cask --force``, which overwrites the
existing bundle. Both go through the escalation ladder because many cask
installers run nested ``sudo`` or write into protected locations.
"""

from __future__ import annotations

import os
import re
from abc import abstractmethod
from pathlib import Path

from macup.core.brew import (
    brew_path,
    installed_cask_version,
    is_cask_installed,
    run_brew,
)
from macup.core.bundle import PlistBundleReader
from macup.core.elevation import ElevatedRunner, shell_join
from macup.core.executors.base import (
    APP_MANAGEMENT_MESSAGE,
    CommandPlan,
    EscalationLadder,
    Executor,
    LadderOutcome,
    LadderStatus,
    Rung,
    is_app_management_block,
)
from macup.core.protocols.ports import BundleReader
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult
from macup.exceptions import CommandError, ExecutorError
from macup.logger import get_logger

logger = get_logger(__name__)

CASKROOM_PKG_PATTERN = re.compile(
    r"(/opt/homebrew/Caskroom/[^\s'\"]+\.pkg|/usr/local/Caskroom/[^\s'\"]+\.pkg)"
)

RUNG_SUFFIXES = {
    Rung.UNPRIVILEGED: "",
    Rung.PACKAGE: " (pkg installed with admin privileges)",
    Rung.ASKPASS: " (with askpass helper)",
    Rung.PROMPT: " (with admin privileges)",
}


def elevated_brew_command(brew: str, args: tuple[str, ...]) -> str:
    """Shell snippet that runs brew as the invoking user from a root shell.

    brew refuses to run as root, so the prompt rung drops back to the
    current user with ``sudo -u``.
    """
    command = shell_join(brew, args)
    user = os.environ.get("USER", "")
    if user:
        return f"cd /tmp && sudo -u {user} {command}"
    return f"cd /tmp && {command}"


def require_brew() -> str:
    """Return the brew path or fail the update."""
    brew = brew_path()
    if brew is None:
        raise ExecutorError("Homebrew not found")
    return brew


class BrewLadderExecutor(Executor):
    """Common result handling for executors that drive ``brew``."""

    protected_target = "/Applications"

    def __init__(
        self,
        runner: ElevatedRunner,
        pre_version: str | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            runner: Privileged command runner
            pre_version: Installed version known by the caller

        """
        self.runner = runner
        self.pre_version = pre_version
        self.ladder = EscalationLadder(runner)

    @property
    @abstractmethod
    def package(self) -> str:
        """Cask token or formula name."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """``"cask"`` or ``"formula"``, used in messages."""

    @abstractmethod
    def manual_command(self, action: str) -> str:
        """Command the user can run themselves to finish the update."""

    async def cleanup(self, brew: str, progress: ProgressReporter) -> None:
        """Drop old versions once an update is confirmed."""
        progress.report(90, "Running cleanup...")
        try:
            output = await run_brew(brew, "cleanup", self.package, timeout=300)
        except CommandError as e:
            logger.debug("brew cleanup %s failed: %s", self.package, e)
            return
        if not output.ok:
            logger.debug(
                "brew cleanup %s exited %d", self.package, output.returncode
            )

    def _result(
        self,
        bundle_id: str,
        success: bool,
        message: str,
        outcome: LadderOutcome | None = None,
    ) -> UpdateResult:
        return UpdateResult(
            bundle_id=bundle_id,
            success=success,
            message=message,
            source=self.source,
            from_version=self.pre_version,
            to_version=outcome.new_version if outcome else None,
        )

    def failure_message(self, action: str, outcome: LadderOutcome) -> str:
        """Turn a failed or cancelled climb into a user-facing message."""
        manual = self.manual_command(action)
        if outcome.status is LadderStatus.CANCELLED:
            return (
                f"{action.capitalize()} cancelled: administrator approval "
                f"required for {self.package}"
            )
        if outcome.status is LadderStatus.UNCHANGED:
            version = self.pre_version or "unknown"
            if outcome.rung is Rung.PACKAGE:
                return (
                    f"Package installed but {self.package} is still at "
                    f"version {version}. Run '{manual}' in Terminal.app to "
                    "complete this update."
                )
            return (
                f"Homebrew reported success but {self.package} is still at "
                f"version {version}. Try running '{manual}' manually."
            )
        if outcome.rung is Rung.PACKAGE:
            return (
                f"Package installation failed. Run '{manual}' in Terminal.app "
                "to complete this update."
            )
        if is_app_management_block(outcome.error_text):
            return APP_MANAGEMENT_MESSAGE.format(target=self.protected_target)
        if outcome.elevated:
            return (
                f"Homebrew {action} failed (elevated): "
                f"{outcome.error_text.strip()}"
            )
        return (
            f"Failed to {action} {self.kind} '{self.package}': "
            f"{outcome.error_text.strip()}"
        )

    async def finish(
        self,
        brew: str,
        bundle_id: str,
        action: str,
        past: str,
        outcome: LadderOutcome,
        progress: ProgressReporter,
    ) -> UpdateResult:
        """Map a ladder outcome onto an :class:`UpdateResult`."""
        if outcome.status is LadderStatus.CHANGED:
            await self.cleanup(brew, progress)
            progress.report(100, f"Homebrew {action} completed successfully")
            logger.info(
                "brew %s %s succeeded (%s -> %s, %s)",
                action,
                self.package,
                self.pre_version,
                outcome.new_version,
                outcome.rung.value,
            )
            return self._result(
                bundle_id,
                True,
                f"Successfully {past} {self.kind} '{self.package}'"
                f"{RUNG_SUFFIXES[outcome.rung]}",
                outcome,
            )

        message = self.failure_message(action, outcome)
        logger.info("brew %s %s: %s", action, self.package, message)
        progress.report(100, message)
        return self._result(bundle_id, False, message, outcome)


class HomebrewExecutor(BrewLadderExecutor):
    """Upgrades or adopts an app through its Homebrew cask."""

    def __init__(
        self,
        cask_token: str,
        runner: ElevatedRunner,
        pre_version: str | None = None,
        bundle_reader: BundleReader | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            cask_token: Cask to upgrade or install
            runner: Privileged command runner
            pre_version: Installed version known by the caller
            bundle_reader: Reads the on-disk version for verification

        """
        super().__init__(runner, pre_version)
        self.cask_token = cask_token
        self.bundle_reader = bundle_reader or PlistBundleReader()

    @property
    def source(self) -> SourceKind:
        return SourceKind.HOMEBREW

    @property
    def package(self) -> str:
        return self.cask_token

    @property
    def kind(self) -> str:
        return "cask"

    def manual_command(self, action: str) -> str:
        return f"brew {action} --cask {self.cask_token}"

    async def execute(
        self,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        brew = require_brew()
        if self.pre_version is None:
            self.pre_version = await self.bundle_reader.read_version(app_path)

        progress.report(5, "Checking cask status...")
        if await is_cask_installed(brew, self.cask_token):
            action, past = "upgrade", "upgraded"
            args: tuple[str, ...] = ("upgrade", "--cask", self.cask_token)
        else:
            # Overwrite a bundle that brew did not install
            action, past = "install", "installed"
            args = ("install", "--cask", self.cask_token, "--force")
        progress.report(10, f"Preparing to {action} cask...")
        progress.report(20, f"Running brew {' '.join(args)}...")

        plan = CommandPlan(
            program=brew,
            args=args,
            shell_cmd=elevated_brew_command(brew, args),
            label="Brew",
            pkg_pattern=CASKROOM_PKG_PATTERN,
            env=self.runner.askpass_env() or None,
        )

        async def read_version() -> str | None:
            # Casks may rename the bundle; fall back to brew's receipt
            version = await self.bundle_reader.read_version(app_path)
            if version is None:
                version = await installed_cask_version(brew, self.cask_token)
            return version

        outcome = await self.ladder.climb(
            plan, self.pre_version, read_version, progress
        )
        return await self.finish(
            brew, bundle_id, action, past, outcome, progress
        )
