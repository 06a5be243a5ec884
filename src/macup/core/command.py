"""Async subprocess execution with hard deadlines.

Several macOS utilities (``mas``, ``hdiutil``, ``softwareupdate``) are
known to hang forever under some conditions, so every spawned process is
awaited against a deadline and killed when it is exceeded.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from dataclasses import dataclass

from macup.constants import SUBPROCESS_CWD
from macup.exceptions import CommandError
from macup.logger import get_logger

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 300.0


@dataclass(frozen=True)
class CommandOutput:
    """Captured result of a finished subprocess."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        """Return True when the process exited with status 0."""
        return self.returncode == 0

    @property
    def error_text(self) -> str:
        """Return stderr, or stdout when stderr is empty."""
        return self.stderr if self.stderr.strip() else self.stdout


async def run_command(
    program: str,
    *args: str,
    timeout: float = DEFAULT_COMMAND_TIMEOUT,
    env: Mapping[str, str] | None = None,
    cwd: str | None = SUBPROCESS_CWD,
    stdin_data: bytes | None = None,
) -> CommandOutput:
    """Run ``program`` with ``args`` and capture its output.

    Args:
        program: Executable name or absolute path
        *args: Arguments passed verbatim (no shell)
        timeout: Seconds before the process is killed
        env: Extra environment variables merged over ``os.environ``
        cwd: Working directory; ``/tmp`` avoids "cannot access parent
            directories" errors when the caller's cwd is unreadable
        stdin_data: Bytes written to the process's stdin

    Returns:
        CommandOutput with decoded stdout/stderr

    Raises:
        CommandError: If the process cannot be spawned or times out

    """
    full_env = {**os.environ, **env} if env else None
    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.PIPE if stdin_data is not None else None,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=full_env,
        )
    except OSError as e:
        raise CommandError(str(e), target=program) from e

    try:
        stdout, stderr = await asyncio.wait_for(
            process.communicate(stdin_data), timeout=timeout
        )
    except TimeoutError as e:
        logger.warning("%s timed out after %ss, killing", program, timeout)
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        msg = f"timed out after {timeout:g}s"
        raise CommandError(msg, target=program) from e

    return CommandOutput(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def command_succeeds(
    program: str, *args: str, timeout: float = DEFAULT_COMMAND_TIMEOUT
) -> bool:
    """Return True if the command runs and exits 0; never raises."""
    try:
        output = await run_command(program, *args, timeout=timeout)
    except CommandError as e:
        logger.debug("%s", e)
        return False
    return output.ok
