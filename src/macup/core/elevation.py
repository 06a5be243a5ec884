"""Privileged command execution.

Two mechanisms are available on macOS:

* ``sudo -A`` with a ``SUDO_ASKPASS`` helper. Once the user has entered a
  password the sudo timestamp stays warm for a few minutes, so later calls
  succeed silently. This is what a batch pre-authentication buys.
* ``osascript -e 'do shell script ... with administrator privileges'``,
  the OS-native password sheet, used when sudo fails for any reason other
  than the user cancelling.

Cancellation is reported as :class:`UserCancelledError` and is never
retried by anything in this module.
"""

from __future__ import annotations

import asyncio
import os
import shlex
import stat
from pathlib import Path
from types import TracebackType

from macup.config.paths import Paths
from macup.core.command import CommandOutput, run_command
from macup.exceptions import (
    CommandError,
    ElevationError,
    UserCancelledError,
)
from macup.logger import get_logger

logger = get_logger(__name__)

SUDO_CANCEL_MARKERS = ("cancelled", "dialog was dismissed", "User canceled")
OSASCRIPT_CANCEL_MARKERS = ("User canceled", "-128")
ELEVATED_TIMEOUT = 900.0
_AUTH_TIMEOUT = 120.0

_ASKPASS_SCRIPT = """#!/bin/sh
# Password prompt used by sudo -A on behalf of macup.
exec /usr/bin/osascript -e 'text returned of (display dialog \
"macup needs administrator access to install updates." default answer "" \
with hidden answer with title "macup" with icon caution)'
"""


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def write_askpass_helper(path: Path) -> Path:
    """Write the askpass helper script and make it executable.

    Args:
        path: Destination of the helper

    Returns:
        The helper path

    """
    path.parent.mkdir(parents=True, exist_ok=True)
    if not path.exists() or path.read_text(encoding="utf-8") != _ASKPASS_SCRIPT:
        path.write_text(_ASKPASS_SCRIPT, encoding="utf-8")
    mode = path.stat().st_mode
    if mode & 0o111 == 0:
        path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def resolve_askpass(
    configured: str | None, config_dir: Path | None = None
) -> Path | None:
    """Resolve the askpass helper to use for ``sudo -A``.

    Order: the configured path, ``$SUDO_ASKPASS``, then the helper written
    into the config directory.

    Args:
        configured: ``askpass_path`` from settings.conf (may be empty)
        config_dir: Directory for the generated helper

    Returns:
        Executable helper path, or None if none could be provided

    """
    for candidate in (configured, os.environ.get("SUDO_ASKPASS")):
        if candidate:
            path = Path(candidate).expanduser()
            if _is_executable(path):
                return path
            logger.warning("askpass helper %s is not executable", path)

    try:
        helper = write_askpass_helper(Paths.askpass_file(config_dir))
    except OSError as e:
        logger.warning("Could not install askpass helper: %s", e)
        return None
    logger.debug("askpass helper ready at %s", helper)
    return helper


def shell_join(program: str, args: tuple[str, ...] | list[str]) -> str:
    """Quote ``program`` and ``args`` into a single shell command line."""
    return " ".join(shlex.quote(part) for part in (program, *args))


def applescript_quote(text: str) -> str:
    """Escape ``text`` for embedding in an AppleScript string literal."""
    return text.replace("\\", "\\\\").replace('"', '\\"')


class ElevatedRunner:
    """Runs commands as root, askpass first and the OS prompt second."""

    def __init__(self, askpass_path: Path | None = None) -> None:
        """Initialize the runner.

        Args:
            askpass_path: Helper used for ``sudo -A``; None disables it

        """
        self.askpass_path = askpass_path

    @property
    def askpass_available(self) -> bool:
        """Return True when ``sudo -A`` can be used."""
        return self.askpass_path is not None and _is_executable(
            self.askpass_path
        )

    def askpass_env(self) -> dict[str, str]:
        """Environment that lets sudo (directly or via brew) prompt."""
        if not self.askpass_available:
            return {}
        return {
            "SUDO_ASKPASS": str(self.askpass_path),
            "SUDO_PROMPT": "macup needs administrator access:",
        }

    async def _run_sudo(
        self, argv: list[str], timeout: float
    ) -> CommandOutput | None:
        """Try ``sudo -A argv``.

        Returns:
            Output when sudo succeeded, None when the caller should fall
            back to the OS prompt

        Raises:
            UserCancelledError: If the askpass dialog was dismissed

        """
        if not self.askpass_available:
            return None
        try:
            output = await run_command(
                "sudo", "-A", *argv, timeout=timeout, env=self.askpass_env()
            )
        except CommandError as e:
            logger.debug("sudo -A unavailable: %s", e)
            return None

        if output.ok:
            return output
        if any(marker in output.stderr for marker in SUDO_CANCEL_MARKERS):
            raise UserCancelledError(
                "administrator password dialog was dismissed", target=argv[0]
            )
        logger.debug("sudo -A %s failed: %s", argv[0], output.stderr.strip())
        return None

    async def _run_osascript(
        self, shell_cmd: str, timeout: float
    ) -> CommandOutput:
        script = (
            f'do shell script "{applescript_quote(shell_cmd)}" '
            "with administrator privileges"
        )
        try:
            output = await run_command(
                "osascript", "-e", script, timeout=timeout
            )
        except CommandError as e:
            raise ElevationError(e.message, target=shell_cmd) from e
        if not output.ok and any(
            marker in output.stderr for marker in OSASCRIPT_CANCEL_MARKERS
        ):
            raise UserCancelledError(
                "administrator prompt was cancelled", target=shell_cmd
            )
        return output

    async def run(
        self, program: str, *args: str, timeout: float = ELEVATED_TIMEOUT
    ) -> CommandOutput:
        """Run one program as root.

        Args:
            program: Executable path
            *args: Arguments
            timeout: Deadline for each attempt

        Returns:
            Output of the attempt that ran to completion (check ``ok``)

        Raises:
            UserCancelledError: If the user dismissed a prompt
            ElevationError: If the OS prompt cannot be run

        """
        output = await self._run_sudo([program, *args], timeout)
        if output is not None:
            return output
        return await self._run_osascript(shell_join(program, args), timeout)

    async def run_shell(
        self, shell_cmd: str, timeout: float = ELEVATED_TIMEOUT
    ) -> CommandOutput:
        """Run a compound shell expression (``a && b``) as root.

        Raises:
            UserCancelledError: If the user dismissed a prompt
            ElevationError: If the OS prompt cannot be run

        """
        output = await self._run_sudo(["sh", "-c", shell_cmd], timeout)
        if output is not None:
            return output
        return await self._run_osascript(shell_cmd, timeout)

    async def run_noninteractive(
        self, program: str, *args: str, timeout: float = ELEVATED_TIMEOUT
    ) -> CommandOutput | None:
        """Run ``program`` through ``sudo -A`` only, without the OS prompt.

        Succeeds silently while a batch grant is warm.

        Returns:
            Output when sudo succeeded, None otherwise

        Raises:
            UserCancelledError: If the askpass dialog was dismissed

        """
        return await self._run_sudo([program, *args], timeout)

    async def pre_authenticate(self) -> bool:
        """Prompt once via ``sudo -A -v`` to warm the sudo timestamp."""
        if not self.askpass_available:
            return False
        try:
            output = await run_command(
                "sudo",
                "-A",
                "-v",
                timeout=_AUTH_TIMEOUT,
                env=self.askpass_env(),
            )
        except CommandError as e:
            logger.debug("Pre-authentication failed: %s", e)
            return False
        return output.ok

    async def refresh_timestamp(self) -> bool:
        """Extend a warm sudo timestamp without prompting."""
        try:
            output = await run_command("sudo", "-n", "-v", timeout=30.0)
        except CommandError:
            return False
        return output.ok


class ElevationSession:
    """One shared elevation grant for a batch, kept warm in the background.

    Usage::

        async with ElevationSession(runner, interval=240) as session:
            ...  # run the batch
        # keep-alive task is cancelled and awaited here, even on error

    """

    def __init__(self, runner: ElevatedRunner, interval: float) -> None:
        """Initialize the session.

        Args:
            runner: Runner used to authenticate and refresh
            interval: Seconds between timestamp refreshes

        """
        self.runner = runner
        self.interval = interval
        self.authenticated = False
        self.stop_count = 0
        self._keepalive: asyncio.Task[None] | None = None

    async def start(self) -> bool:
        """Authenticate once and start the keep-alive loop on success."""
        self.authenticated = await self.runner.pre_authenticate()
        if self.authenticated:
            logger.info("Administrator access granted for this batch")
            self._keepalive = asyncio.create_task(
                self._keep_alive(), name="macup-sudo-keepalive"
            )
        else:
            logger.info("Batch pre-authentication skipped or declined")
        return self.authenticated

    async def _keep_alive(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not await self.runner.refresh_timestamp():
                logger.debug("sudo timestamp refresh failed")

    @property
    def keepalive_running(self) -> bool:
        """Return True while the keep-alive task is alive."""
        return self._keepalive is not None and not self._keepalive.done()

    async def stop(self) -> None:
        """Cancel and join the keep-alive loop."""
        task, self._keepalive = self._keepalive, None
        if task is None:
            return
        self.stop_count += 1
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise

    async def __aenter__(self) -> ElevationSession:
        """Start the session."""
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        """Stop the keep-alive regardless of how the batch ended."""
        await self.stop()
