"""Homebrew formula executor for command-line tools."""

from __future__ import annotations

import re
from pathlib import Path

from macup.core.brew import check_xcode_clt, installed_formula_version
from macup.core.elevation import ElevatedRunner
from macup.core.executors.base import CommandPlan
from macup.core.executors.homebrew import (
    BrewLadderExecutor,
    elevated_brew_command,
    require_brew,
)
from macup.core.protocols.progress import ProgressReporter
from macup.domain.models import SourceKind, UpdateResult
from macup.logger import get_logger

logger = get_logger(__name__)

CELLAR_PKG_PATTERN = re.compile(
    r"(/opt/homebrew/Cellar/[^\s'\"]+\.pkg|/usr/local/Cellar/[^\s'\"]+\.pkg)"
)
CLT_REQUIRED_MESSAGE = (
    "Xcode Command Line Tools required. Install with: xcode-select --install"
)


class HomebrewFormulaExecutor(BrewLadderExecutor):
    """Runs ``brew upgrade <formula>``.

    The installed version is read from ``brew info`` rather than a bundle,
    since formulae do not live in ``/Applications``.
    """

    protected_target = "system files"

    def __init__(
        self,
        formula_name: str,
        runner: ElevatedRunner,
        pre_version: str | None = None,
    ) -> None:
        super().__init__(runner, pre_version)
        self.formula_name = formula_name

    @property
    def source(self) -> SourceKind:
        return SourceKind.HOMEBREW_FORMULA

    @property
    def package(self) -> str:
        return self.formula_name

    @property
    def kind(self) -> str:
        return "formula"

    def manual_command(self, action: str) -> str:
        return f"brew {action} {self.formula_name}"

    async def execute(
        self,
        bundle_id: str,
        app_path: Path,
        progress: ProgressReporter,
    ) -> UpdateResult:
        brew = require_brew()

        # Building from source needs the compiler toolchain
        if not await check_xcode_clt():
            progress.report(100, CLT_REQUIRED_MESSAGE)
            return UpdateResult.failed(
                bundle_id, self.source, CLT_REQUIRED_MESSAGE
            )

        env = self.runner.askpass_env() or None
        if self.pre_version is None:
            self.pre_version = await installed_formula_version(
                brew, self.formula_name, env=env
            )

        progress.report(5, "Checking formula status...")
        progress.report(10, f"Preparing to upgrade {self.formula_name}...")
        progress.report(20, f"Running brew upgrade {self.formula_name}...")

        args = ("upgrade", self.formula_name)
        plan = CommandPlan(
            program=brew,
            args=args,
            shell_cmd=elevated_brew_command(brew, args),
            label="Brew",
            pkg_pattern=CELLAR_PKG_PATTERN,
            env=env,
        )

        async def read_version() -> str | None:
            return await installed_formula_version(
                brew, self.formula_name, env=env
            )

        outcome = await self.ladder.climb(
            plan, self.pre_version, read_version, progress
        )
        return await self.finish(
            brew, bundle_id, "upgrade", "upgraded", outcome, progress
        )
