"""Executor interface and the shared privilege escalation ladder.

Every executor that mutates installed software climbs the same ladder:

1. run the command unprivileged
2. if it failed, classify the error text; anything that does not look
   like a permission problem is a terminal failure
3. if the error names an installer package, install it directly with
   ``/usr/sbin/installer`` as root, then re-run step 1 once so the
   package manager can reconcile its bookkeeping
4. otherwise retry through ``sudo -A`` (silent while a batch grant is warm)
5. otherwise run the equivalent shell snippet behind the OS password prompt

Each successful rung re-reads the installed version; a zero exit with an
unchanged version is reported as ``UNCHANGED`` so the executor can turn it
into a soft failure. A cancelled prompt ends the climb immediately.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from macup.core.command import CommandOutput, run_command
from macup.core.elevation import ElevatedRunner
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult
from macup.exceptions import CommandError, UserCancelledError
from macup.logger import get_logger

logger = get_logger(__name__)

INSTALLER_PATH = "/usr/sbin/installer"

ELEVATION_MARKERS = (
    "terminal is required",
    "tty",
    "Operation not permitted",
    "Permission denied",
    "cannot access parent directories",
)
APP_MANAGEMENT_MARKERS = (
    "Operation not permitted",
    "cannot access parent directories",
)
APP_MANAGEMENT_MESSAGE = (
    "macOS blocked Homebrew from modifying {target}. Grant macup "
    "'App Management' permission in System Settings > Privacy & Security "
    "> App Management, then try again."
)

VersionReader = Callable[[], Awaitable[str | None]]


def needs_elevation(error_text: str) -> bool:
    """Return True if a failure looks like a missing-privilege problem."""
    if "sudo" in error_text and "password" in error_text:
        return True
    return any(marker in error_text for marker in ELEVATION_MARKERS)


def is_app_management_block(error_text: str) -> bool:
    """Return True if macOS App Management protection caused a failure."""
    return any(marker in error_text for marker in APP_MANAGEMENT_MARKERS)


def version_changed(before: str | None, after: str | None) -> bool:
    """Compare versions read before and after a mutating step.

    When either side is unknown the step is given the benefit of the
    doubt; there is nothing to compare.
    """
    if before is None or after is None:
        return True
    return before != after


class Rung(Enum):
    """Ladder step that produced an outcome."""

    UNPRIVILEGED = "unprivileged"
    PACKAGE = "package"
    ASKPASS = "askpass"
    PROMPT = "prompt"


class LadderStatus(Enum):
    """How a climb ended."""

    CHANGED = "changed"
    UNCHANGED = "unchanged"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class LadderOutcome:
    """Result of climbing the escalation ladder once."""

    status: LadderStatus
    rung: Rung
    new_version: str | None = None
    error_text: str = ""

    @property
    def elevated(self) -> bool:
        """Return True if any privileged rung was reached."""
        return self.rung is not Rung.UNPRIVILEGED


@dataclass(frozen=True)
class CommandPlan:
    """One mutating command and its privileged equivalents.

    Attributes:
        program: Executable run on the unprivileged and askpass rungs
        args: Its arguments
        shell_cmd: Shell snippet run behind the OS password prompt
        label: Short tool name used in progress phases ("Brew")
        pkg_pattern: Finds an installer package path in error output
        env: Extra environment for the unprivileged run
        timeout: Deadline for each attempt

    """

    program: str
    args: tuple[str, ...]
    shell_cmd: str
    label: str
    pkg_pattern: re.Pattern[str] | None = None
    env: dict[str, str] | None = None
    timeout: float = 1800.0


class Executor(ABC):
    """Applies one update to one installed application."""

    @property
    @abstractmethod
    def source(self) -> SourceKind:
        """Source kind reported in results."""

    @abstractmethod
    async def execute(
        self,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        """Run the update.

        Args:
            bundle_id: Application being updated
            app_path: Installed bundle location
            progress: Fire-and-forget progress observer

        Returns:
            The outcome; failures are results, not exceptions

        Raises:
            ExecutorError: If the update cannot be attempted at all

        """


class EscalationLadder:
    """Runs a :class:`CommandPlan` with least privilege first."""

    def __init__(self, runner: ElevatedRunner) -> None:
        """Initialize the ladder.

        Args:
            runner: Privileged command runner

        """
        self.runner = runner

    async def _run_plain(self, plan: CommandPlan) -> CommandOutput:
        return await run_command(
            plan.program, *plan.args, timeout=plan.timeout, env=plan.env
        )

    async def _verify(
        self,
        rung: Rung,
        pre_version: str | None,
        read_version: VersionReader,
    ) -> LadderOutcome:
        new_version = await read_version()
        status = (
            LadderStatus.CHANGED
            if version_changed(pre_version, new_version)
            else LadderStatus.UNCHANGED
        )
        return LadderOutcome(status, rung, new_version=new_version)

    async def climb(
        self,
        plan: CommandPlan,
        pre_version: str | None,
        read_version: VersionReader,
        progress: ProgressReporter,
    ) -> LadderOutcome:
        """Run ``plan``, escalating only when the failure calls for it.

        Args:
            plan: Command and its privileged equivalents
            pre_version: Installed version before the attempt
            read_version: Re-reads the installed version after a step
            progress: Progress observer

        Returns:
            Outcome of the last rung attempted

        """
        try:
            output = await self._run_plain(plan)
        except CommandError as e:
            return LadderOutcome(
                LadderStatus.FAILED, Rung.UNPRIVILEGED, error_text=str(e)
            )

        if output.ok:
            progress.report(50, f"{plan.label} command completed")
            return await self._verify(
                Rung.UNPRIVILEGED, pre_version, read_version
            )

        error_text = output.error_text
        if not needs_elevation(error_text):
            return LadderOutcome(
                LadderStatus.FAILED, Rung.UNPRIVILEGED, error_text=error_text
            )

        logger.info(
            "%s %s needs elevation: %s",
            plan.label,
            " ".join(plan.args),
            error_text.strip()[:200],
        )
        progress.report(30, "Requesting administrator privileges...")

        match = plan.pkg_pattern.search(error_text) if plan.pkg_pattern else None
        if match:
            return await self._install_package(
                plan, match.group(0), pre_version, read_version, progress
            )

        if self.runner.askpass_available:
            progress.report(30, "Retrying with askpass helper...")
            try:
                retried = await self.runner.run_noninteractive(
                    plan.program, *plan.args, timeout=plan.timeout
                )
            except UserCancelledError as e:
                return LadderOutcome(
                    LadderStatus.CANCELLED, Rung.ASKPASS, error_text=str(e)
                )
            if retried is not None and retried.ok:
                progress.report(60, f"{plan.label} command completed")
                outcome = await self._verify(
                    Rung.ASKPASS, pre_version, read_version
                )
                if outcome.status is LadderStatus.CHANGED:
                    return outcome
                logger.info(
                    "askpass retry left version unchanged, using OS prompt"
                )

        return await self._prompt(plan, pre_version, read_version, progress)

    async def _install_package(
        self,
        plan: CommandPlan,
        pkg_path: str,
        pre_version: str | None,
        read_version: VersionReader,
        progress: ProgressReporter,
    ) -> LadderOutcome:
        progress.report(35, "Installing package directly...")
        logger.info("Installing %s with installer(8)", pkg_path)
        try:
            output = await self.runner.run(
                INSTALLER_PATH,
                "-pkg",
                pkg_path,
                "-target",
                "/",
                timeout=plan.timeout,
            )
        except UserCancelledError as e:
            return LadderOutcome(
                LadderStatus.CANCELLED, Rung.PACKAGE, error_text=str(e)
            )
        except CommandError as e:
            return LadderOutcome(
                LadderStatus.FAILED, Rung.PACKAGE, error_text=str(e)
            )
        if not output.ok:
            return LadderOutcome(
                LadderStatus.FAILED, Rung.PACKAGE, error_text=output.error_text
            )

        progress.report(
            60, f"Package installed, finalizing with {plan.label.lower()}..."
        )
        try:
            reconcile = await self._run_plain(plan)
        except CommandError as e:
            logger.info("Reconcile run after pkg install failed: %s", e)
        else:
            if not reconcile.ok:
                logger.info(
                    "Reconcile run after pkg install exited %d: %s",
                    reconcile.returncode,
                    reconcile.error_text.strip()[:200],
                )
        progress.report(70, "Verifying installation...")
        return await self._verify(Rung.PACKAGE, pre_version, read_version)

    async def _prompt(
        self,
        plan: CommandPlan,
        pre_version: str | None,
        read_version: VersionReader,
        progress: ProgressReporter,
    ) -> LadderOutcome:
        try:
            output = await self.runner.run_shell(
                plan.shell_cmd, timeout=plan.timeout
            )
        except UserCancelledError as e:
            return LadderOutcome(
                LadderStatus.CANCELLED, Rung.PROMPT, error_text=str(e)
            )
        except CommandError as e:
            return LadderOutcome(
                LadderStatus.FAILED,
                Rung.PROMPT,
                error_text=f"could not request admin privileges: {e}",
            )
        if not output.ok:
            return LadderOutcome(
                LadderStatus.FAILED, Rung.PROMPT, error_text=output.error_text
            )
        progress.report(60, f"{plan.label} command completed")
        return await self._verify(Rung.PROMPT, pre_version, read_version)
