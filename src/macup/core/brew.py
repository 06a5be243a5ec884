"""Homebrew command-line helpers.

Everything here shells out to ``brew`` with ``cwd=/tmp`` so brew never
complains about an unreadable working directory. When an askpass helper is
configured, ``SUDO_ASKPASS`` is exported so nested ``sudo`` calls made by
cask installers can prompt through a native dialog instead of a TTY.
"""

from __future__ import annotations

import shutil
from functools import cache
from pathlib import Path

import orjson

from macup.constants import (
    BREW_CANDIDATE_PATHS,
    BREW_OUTDATED_BLOCKLIST,
    MAS_CANDIDATE_PATHS,
)
from macup.core.command import CommandOutput, run_command
from macup.domain.models import BrewOutdatedCask, BrewOutdatedFormula
from macup.domain.version import strip_qualifier
from macup.exceptions import CommandError
from macup.logger import get_logger

logger = get_logger(__name__)

BREW_OUTDATED_TIMEOUT = 180.0
BREW_QUERY_TIMEOUT = 60.0
BREW_INSTALL_TIMEOUT = 1800.0
XCODE_SELECT_TIMEOUT = 3.0


def _first_existing(candidates: tuple[str, ...], name: str) -> str | None:
    for candidate in candidates:
        if Path(candidate).exists():
            logger.debug("Found %s at %s", name, candidate)
            return candidate
    found = shutil.which(name)
    if found:
        logger.debug("Found %s via PATH: %s", name, found)
    return found


@cache
def brew_path() -> str | None:
    """Return the absolute path of ``brew``, resolved once per process.

    Well-known prefixes are checked first because GUI launch contexts
    have a minimal ``PATH``.
    """
    path = _first_existing(BREW_CANDIDATE_PATHS, "brew")
    if path is None:
        logger.warning("Homebrew not found on this system")
    return path


@cache
def mas_path() -> str | None:
    """Return the absolute path of the ``mas`` CLI, if installed."""
    return _first_existing(MAS_CANDIDATE_PATHS, "mas")


async def run_brew(
    brew: str,
    *args: str,
    env: dict[str, str] | None = None,
    timeout: float = BREW_INSTALL_TIMEOUT,
) -> CommandOutput:
    """Run one brew subcommand.

    Args:
        brew: Path to the brew executable
        *args: Subcommand and arguments
        env: Extra environment, typically the askpass variables
        timeout: Deadline in seconds

    Raises:
        CommandError: If brew cannot be spawned or times out

    """
    logger.debug("brew %s", " ".join(args))
    return await run_command(brew, *args, timeout=timeout, env=env)


async def _brew_json(brew: str, *args: str) -> dict | None:
    try:
        output = await run_brew(brew, *args, timeout=BREW_OUTDATED_TIMEOUT)
    except CommandError as e:
        logger.warning("Failed to run brew %s: %s", args[0], e)
        return None
    if not output.ok:
        logger.warning("brew %s failed: %s", args[0], output.stderr.strip())
        return None
    try:
        payload = orjson.loads(output.stdout)
    except orjson.JSONDecodeError as e:
        logger.warning(
            "Failed to parse brew %s JSON: %s. Preview: %s",
            args[0],
            e,
            output.stdout[:200],
        )
        return None
    return payload if isinstance(payload, dict) else None


def parse_outdated_casks(payload: dict) -> dict[str, BrewOutdatedCask]:
    """Build the outdated-cask map from ``brew outdated --json=v2`` output.

    The token is read from ``token`` with ``name`` as fallback. Versions
    are stripped of their ``,qualifier`` suffix.
    """
    casks = payload.get("casks")
    if not isinstance(casks, list):
        logger.warning("brew outdated JSON has no 'casks' array")
        return {}

    outdated: dict[str, BrewOutdatedCask] = {}
    for entry in casks:
        token = entry.get("token") or entry.get("name")
        if not token or token in BREW_OUTDATED_BLOCKLIST:
            continue
        installed = entry.get("installed_versions") or []
        if isinstance(installed, str):
            installed = [installed]
        outdated[token] = BrewOutdatedCask(
            current_version=strip_qualifier(entry.get("current_version") or ""),
            installed_versions=", ".join(
                str(v) for v in installed if isinstance(v, str)
            ),
        )
    return outdated


def parse_outdated_formulae(payload: dict) -> dict[str, BrewOutdatedFormula]:
    """Build the outdated-formula map from ``brew outdated --json=v2``."""
    formulae = payload.get("formulae")
    if not isinstance(formulae, list):
        return {}

    outdated: dict[str, BrewOutdatedFormula] = {}
    for entry in formulae:
        name = entry.get("name")
        if not name:
            continue
        installed = entry.get("installed_versions") or []
        outdated[name] = BrewOutdatedFormula(
            current_version=strip_qualifier(entry.get("current_version") or ""),
            installed_version=strip_qualifier(installed[0]) if installed else "",
        )
    return outdated


async def fetch_brew_outdated() -> dict[str, BrewOutdatedCask]:
    """Return outdated casks keyed by token, empty when brew is missing."""
    brew = brew_path()
    if brew is None:
        logger.info("Homebrew not found, skipping brew outdated")
        return {}
    payload = await _brew_json(
        brew, "outdated", "--cask", "--greedy", "--json=v2"
    )
    if payload is None:
        return {}
    outdated = parse_outdated_casks(payload)
    logger.info("brew outdated found %d outdated casks", len(outdated))
    return outdated


async def fetch_brew_outdated_formulae() -> dict[str, BrewOutdatedFormula]:
    """Return outdated formulae keyed by name, empty when brew is missing."""
    brew = brew_path()
    if brew is None:
        return {}
    payload = await _brew_json(brew, "outdated", "--formula", "--json=v2")
    if payload is None:
        return {}
    outdated = parse_outdated_formulae(payload)
    logger.info("brew outdated found %d outdated formulae", len(outdated))
    return outdated


async def check_xcode_clt() -> bool:
    """Return True when the Xcode Command Line Tools are installed.

    ``xcode-select -p`` can block on a fresh system, so it gets a short
    deadline and counts as missing when it is exceeded.
    """
    try:
        output = await run_command(
            "xcode-select", "-p", timeout=XCODE_SELECT_TIMEOUT
        )
    except CommandError as e:
        logger.debug("xcode-select check failed: %s", e)
        return False
    return output.ok


async def is_cask_installed(brew: str, token: str) -> bool:
    """Return True when ``token`` is an installed cask."""
    try:
        output = await run_brew(
            brew, "list", "--cask", token, timeout=BREW_QUERY_TIMEOUT
        )
    except CommandError:
        return False
    return output.ok


async def installed_cask_version(brew: str, token: str) -> str | None:
    """Return the installed cask version from ``brew list --versions``."""
    try:
        output = await run_brew(
            brew,
            "list",
            "--cask",
            "--versions",
            token,
            timeout=BREW_QUERY_TIMEOUT,
        )
    except CommandError:
        return None
    if not output.ok:
        return None
    # Output is "<token> <version> [<version>...]"; the last one is active
    parts = output.stdout.split()
    if len(parts) < 2:  # noqa: PLR2004
        return None
    return strip_qualifier(parts[-1])


async def installed_formula_version(
    brew: str, name: str, env: dict[str, str] | None = None
) -> str | None:
    """Return the newest installed version of formula ``name``.

    Reads ``formulae[0].installed[-1].version`` from ``brew info``.
    """
    try:
        output = await run_brew(
            brew, "info", "--json=v2", name, env=env, timeout=BREW_QUERY_TIMEOUT
        )
    except CommandError:
        return None
    if not output.ok:
        return None
    try:
        payload = orjson.loads(output.stdout)
        installed = payload["formulae"][0]["installed"]
        return installed[-1]["version"] if installed else None
    except (orjson.JSONDecodeError, KeyError, IndexError, TypeError):
        logger.debug("Unexpected brew info output for %s", name)
        return None
